"""Normalisation of input images to PNG via an external converter."""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import Callable, Optional

from .errors import ConversionError

LOGGER = logging.getLogger(__name__)

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"


def is_png(path: Path) -> bool:
    with path.open("rb") as handle:
        return handle.read(len(PNG_SIGNATURE)) == PNG_SIGNATURE


def ensure_png(
    path: Path,
    workdir: Path,
    *,
    converter: str = "convert",
    timeout: float = 120.0,
    announce: Optional[Callable[[str], None]] = None,
) -> Path:
    """Return ``path`` if it is a PNG, otherwise a converted copy in ``workdir``.

    ``announce`` is called with a status message just before the converter runs.
    """
    if is_png(path):
        return path
    if announce is not None:
        announce(f"Converting {path} to png")
    target = workdir / "image.png"
    cmd = [converter, str(path), str(target)]
    LOGGER.info("converting %s: %s", path, " ".join(cmd))
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
    except (OSError, subprocess.TimeoutExpired) as exc:
        raise ConversionError(f"Cannot convert image to png: {exc}") from exc
    if result.returncode != 0:
        LOGGER.error("converter exited with %d: %s", result.returncode, result.stderr.strip())
        raise ConversionError(f"Cannot convert image to png ({converter} exited with {result.returncode})")
    if not target.is_file():
        raise ConversionError(f"Cannot convert image to png ({converter} produced no output)")
    return target
