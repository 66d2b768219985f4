"""Placeholder glyph grid for an uploaded image.

The terminal draws image ``N`` wherever the codepoint ``N`` appears.  The
foreground color of each line carries its row number so the renderer can tell
which slice of the image belongs in that line.
"""

from __future__ import annotations

from typing import List, TextIO

from .config import Geometry

RESET_STYLE = "\x1b[0m"
MAX_CODEPOINT = 0x10FFFF


def row_color(row: int) -> str:
    return f"\x1b[38;5;{row}m"


def render_grid(handle: int, geometry: Geometry, row_colors: bool = True) -> List[str]:
    if isinstance(handle, bool) or not isinstance(handle, int) or not 0 < handle <= MAX_CODEPOINT:
        raise ValueError(f"handle {handle!r} is not a valid codepoint")
    if 0xD800 <= handle <= 0xDFFF:
        raise ValueError(f"handle {handle:#x} falls in the surrogate range")
    glyphs = chr(handle) * geometry.columns
    lines = []
    for row in range(geometry.rows):
        lines.append(row_color(row) + glyphs if row_colors else glyphs)
    return lines


def write_grid(lines: List[str], sink: TextIO) -> None:
    for line in lines:
        sink.write(line + "\n")
    sink.flush()
