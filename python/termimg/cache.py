"""Content-addressed lookup of images already stored by the terminal."""

from __future__ import annotations

import hashlib
import logging
from typing import Optional

from .channel import ControlChannel
from .config import Geometry
from .errors import ProtocolError
from .response import NoResponse, NotFound, Success


LOGGER = logging.getLogger(__name__)


def dedup_key(data: bytes, geometry: Geometry) -> str:
    """Key identifying ``data`` displayed at ``geometry``.

    The terminal treats the key as base64, so it is padded with ``=`` up to a
    multiple of four characters.  A key that is already aligned still gets a
    full block of padding, which keeps keys identical to the ones bound by
    ``upload-terminal-image.sh`` from vim-terminal-images.
    """
    key = f"{hashlib.md5(data).hexdigest()}x{geometry.rows}x{geometry.columns}"
    return key + "=" * (4 - len(key) % 4)


class ContentCache:
    """Query and populate the terminal's key -> handle table."""

    def __init__(self, channel: ControlChannel, *, timeout: float = 2.0) -> None:
        self.channel = channel
        self.timeout = timeout

    def lookup(self, key: str) -> Optional[int]:
        """Return the handle bound to ``key`` or ``None`` if the terminal has none."""
        self.channel.send({"a": "U", "q": 1}, key.encode("ascii"))
        response = self.channel.read_response(self.timeout)
        if isinstance(response, Success):
            LOGGER.info("image %s found, handle %d", key, response.handle)
            return response.handle
        if isinstance(response, NotFound):
            LOGGER.info("image %s not found", key)
            return None
        if isinstance(response, NoResponse):
            raise ProtocolError("No response from terminal")
        raise ProtocolError("Invalid terminal response", response.raw)

    def bind(self, handle: int, key: str) -> None:
        """Associate ``key`` with an already uploaded image (quiet, no reply)."""
        LOGGER.info("binding %s to handle %d", key, handle)
        self.channel.send({"a": "U", "i": handle, "q": 1}, key.encode("ascii"))
