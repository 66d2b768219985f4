"""Configuration for a single upload-or-reuse run."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional


DEFAULT_COLUMNS = 50
DEFAULT_ROWS = 15


@dataclass(frozen=True)
class Geometry:
    """Target size of the image in terminal cells."""

    columns: int = DEFAULT_COLUMNS
    rows: int = DEFAULT_ROWS

    def __post_init__(self) -> None:
        for name in ("columns", "rows"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise ValueError(f"{name} must be a positive integer (got {value!r})")


@dataclass
class UploadConfig:
    geometry: Geometry = Geometry()
    tty_path: str = "/dev/tty"
    converter: str = "convert"
    chunk_size: int = 4096
    response_timeout: float = 2.0
    drain_timeout: float = 0.1
    progress_every: int = 10
    rate_every: int = 100
    row_colors: bool = True
    # None means "detect from $TMUX/$TERM".
    tmux: Optional[bool] = None

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "UploadConfig":
        env = os.environ if environ is None else environ
        config = cls()
        if env.get("TERMIMG_TTY"):
            config.tty_path = env["TERMIMG_TTY"]
        if env.get("TERMIMG_CONVERTER"):
            config.converter = env["TERMIMG_CONVERTER"]
        if env.get("TERMIMG_TIMEOUT"):
            try:
                config.response_timeout = float(env["TERMIMG_TIMEOUT"])
            except ValueError as exc:
                raise ValueError(f"TERMIMG_TIMEOUT must be a number (got {env['TERMIMG_TIMEOUT']!r})") from exc
        config.tmux = detect_tmux(env)
        return config

    def use_tmux(self) -> bool:
        if self.tmux is None:
            return detect_tmux(os.environ)
        return self.tmux


def detect_tmux(environ: Mapping[str, str]) -> bool:
    """True when commands have to be wrapped in tmux passthrough."""
    if not environ.get("TMUX"):
        return False
    term = environ.get("TERM", "")
    return "screen" in term or "tmux" in term
