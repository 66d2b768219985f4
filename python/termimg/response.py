"""Response framing and classification.

A response frame is everything the terminal sends up to the next ``\\``
byte (the final byte of the ``ESC \\`` string terminator).  Frames are
classified into exactly one of :class:`Success`, :class:`NotFound`,
:class:`Malformed` or :class:`NoResponse`.
"""

from __future__ import annotations

import os
import re
import select
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Union

from .errors import ChannelIOError, escape_control


TERMINATOR = b"\\"

_ENVELOPE_RE = re.compile(rb"_G(?P<control>[^;]*);(?P<message>.*)\Z", re.DOTALL)
_NOT_FOUND_RE = re.compile(rb"NOT.*FOUND", re.DOTALL)


@dataclass(frozen=True)
class Success:
    handle: int
    number: Optional[int] = None
    raw: bytes = b""
    kind: str = field(default="success", init=False)

    def describe(self) -> str:
        return escape_control(self.raw)


@dataclass(frozen=True)
class NotFound:
    raw: bytes = b""
    kind: str = field(default="not-found", init=False)

    def describe(self) -> str:
        return escape_control(self.raw)


@dataclass(frozen=True)
class Malformed:
    raw: bytes = b""
    kind: str = field(default="malformed", init=False)

    def describe(self) -> str:
        return escape_control(self.raw)


@dataclass(frozen=True)
class NoResponse:
    raw: bytes = b""
    kind: str = field(default="no-response", init=False)

    def describe(self) -> str:
        return "(no response)"


Response = Union[Success, NotFound, Malformed, NoResponse]


def parse_control(control: bytes) -> Dict[str, str]:
    keys: Dict[str, str] = {}
    for item in control.split(b","):
        key, sep, value = item.partition(b"=")
        if not sep:
            continue
        keys[key.decode("ascii", errors="replace").strip()] = value.decode("ascii", errors="replace").strip()
    return keys


def _to_int(value: Optional[str]) -> Optional[int]:
    if value is None or not value.isdigit():
        return None
    return int(value)


def classify(frame: bytes) -> Response:
    """Classify one complete frame."""
    match = _ENVELOPE_RE.search(frame)
    if not match:
        return Malformed(frame)
    message = match.group("message")
    if message.startswith(b"OK"):
        keys = parse_control(match.group("control"))
        handle = _to_int(keys.get("i"))
        if handle is None:
            return Malformed(frame)
        return Success(handle, _to_int(keys.get("I")), frame)
    if _NOT_FOUND_RE.search(message):
        return NotFound(frame)
    return Malformed(frame)


class FrameTimeout(Exception):
    """No terminator arrived in time; ``partial`` holds what did arrive."""

    def __init__(self, partial: bytes) -> None:
        super().__init__(f"frame timeout after {len(partial)} bytes")
        self.partial = partial


class ResponseReader:
    """Reads terminator-delimited frames from a file descriptor."""

    def __init__(self, fd: int, *, read_size: int = 4096) -> None:
        self.fd = fd
        self.read_size = read_size
        self._buffer = b""

    def read_frame(self, timeout: float) -> bytes:
        deadline = time.monotonic() + timeout
        while TERMINATOR not in self._buffer:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                partial, self._buffer = self._buffer, b""
                raise FrameTimeout(partial)
            try:
                ready, _, _ = select.select([self.fd], [], [], remaining)
                if not ready:
                    continue
                chunk = os.read(self.fd, self.read_size)
            except OSError as exc:
                raise ChannelIOError(f"control channel read failed: {exc}") from exc
            if not chunk:
                raise ChannelIOError("control channel closed")
            self._buffer += chunk
        frame, _, self._buffer = self._buffer.partition(TERMINATOR)
        return frame

    def read(self, timeout: float) -> Response:
        try:
            frame = self.read_frame(timeout)
        except FrameTimeout as exc:
            if not exc.partial:
                return NoResponse()
            return Malformed(exc.partial)
        return classify(frame)

    def drain(self, timeout: float) -> List[bytes]:
        """Discard frames until nothing arrives within ``timeout``."""
        frames: List[bytes] = []
        while True:
            try:
                frames.append(self.read_frame(timeout))
            except FrameTimeout as exc:
                if exc.partial:
                    frames.append(exc.partial)
                return frames
