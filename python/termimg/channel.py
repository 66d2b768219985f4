"""Control channel for graphics commands.

Commands travel inside an APC escape sequence::

    ESC _ G <key>=<value>,<key>=<value>,... [; <payload>] ESC \\

and the terminal answers in the same envelope.  Outgoing bytes go to a
binary stream (normally the controlling tty), responses are read back by a
:class:`~termimg.response.ResponseReader` on the same terminal.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import BinaryIO, List, Mapping, Optional, Tuple, Union

from tabulate import tabulate

from .errors import ChannelIOError, escape_control
from .response import Response, ResponseReader


LOGGER = logging.getLogger(__name__)

APC_START = b"\x1b_G"
ST = b"\x1b\\"

_KEY_RE = re.compile(r"^[A-Za-z]$")
_VALUE_RE = re.compile(r"^[A-Za-z0-9]+$")

ControlValue = Union[str, int]


def serialize_command(control: Mapping[str, ControlValue], payload: Optional[bytes] = None) -> bytes:
    """Build one graphics command.

    Keys must be single ASCII letters and values ASCII alphanumerics; anything
    else is a programming error and raises ``ValueError``.
    """
    if not control:
        raise ValueError("graphics command needs at least one key")
    parts = []
    for key, value in control.items():
        if not _KEY_RE.match(key):
            raise ValueError(f"invalid command key {key!r}")
        if isinstance(value, bool):
            raise ValueError(f"invalid value for {key}: {value!r}")
        text = str(value)
        if not _VALUE_RE.match(text):
            raise ValueError(f"invalid value for {key}: {value!r}")
        parts.append(f"{key}={text}")
    out = APC_START + ",".join(parts).encode("ascii")
    if payload:
        if b"\x1b" in payload:
            raise ValueError("payload must not contain ESC")
        out += b";" + payload
    return out + ST


def wrap_tmux(data: bytes) -> bytes:
    """Wrap a sequence in tmux passthrough (every inner ESC doubled)."""
    return b"\x1bPtmux;" + data.replace(b"\x1b", b"\x1b\x1b") + ST


@dataclass
class TranscriptEntry:
    direction: str
    control: str
    size: int


class ControlChannel:
    """Writes commands to the terminal and reads its responses."""

    def __init__(self, out: BinaryIO, reader: ResponseReader, *, tmux: bool = False) -> None:
        self.out = out
        self.reader = reader
        self.tmux = tmux
        self.transcript: List[TranscriptEntry] = []

    def send(self, control: Mapping[str, ControlValue], payload: Optional[bytes] = None) -> None:
        data = serialize_command(control, payload)
        if payload is None or len(payload) < 128:
            LOGGER.debug("SENDING COMMAND: %s", escape_control(data))
        else:
            LOGGER.debug("SENDING COMMAND: %s (%d payload bytes)", _describe(control), len(payload))
        if self.tmux:
            data = wrap_tmux(data)
        self._write(data)
        self.transcript.append(TranscriptEntry("sent", _describe(control), len(payload or b"")))

    def write_raw(self, data: bytes) -> None:
        """Write bytes that are not graphics commands (status line text)."""
        self._write(data)

    def read_response(self, timeout: float) -> Response:
        response = self.reader.read(timeout)
        LOGGER.debug("TERM_RESPONSE: %s", response.describe())
        self.transcript.append(TranscriptEntry("received", response.kind, len(response.raw)))
        return response

    def drain(self, timeout: float) -> List[bytes]:
        frames = self.reader.drain(timeout)
        for frame in frames:
            LOGGER.debug("Consuming unneeded response: %s", escape_control(frame))
            self.transcript.append(TranscriptEntry("drained", "-", len(frame)))
        return frames

    def format_transcript(self) -> str:
        rows: List[Tuple[int, str, str, int]] = [
            (idx, entry.direction, entry.control, entry.size)
            for idx, entry in enumerate(self.transcript, start=1)
        ]
        return tabulate(rows, headers=["#", "direction", "control", "payload"], tablefmt="github")

    def _write(self, data: bytes) -> None:
        view = memoryview(data)
        try:
            while view:
                written = self.out.write(view)
                if written is None:
                    raise ChannelIOError("control channel write would block")
                view = view[written:]
            self.out.flush()
        except OSError as exc:
            raise ChannelIOError(f"control channel write failed: {exc}") from exc


def _describe(control: Mapping[str, ControlValue]) -> str:
    return ",".join(f"{key}={value}" for key, value in control.items())
