#!/usr/bin/env python3
"""Entry point for the upload-terminal-image CLI."""

from __future__ import annotations

from termimg import cli

if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(cli.main())
