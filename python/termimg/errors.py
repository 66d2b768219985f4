"""Error kinds raised by termimg.

Every error is fatal for the current invocation; nothing in the client
retries.  The CLI maps any :class:`TermimgError` to exit status 1.
"""

from __future__ import annotations

from typing import Optional


def escape_control(data: bytes | str) -> str:
    """Render control characters in caret notation (ESC becomes ``^[``)."""
    if isinstance(data, bytes):
        data = data.decode("utf-8", errors="replace")
    out = []
    for ch in data:
        code = ord(ch)
        if code < 0x20:
            out.append("^" + chr(code + 0x40))
        elif code == 0x7F:
            out.append("^?")
        else:
            out.append(ch)
    return "".join(out)


class TermimgError(RuntimeError):
    """Base class for all fatal client errors."""


class InputError(TermimgError):
    """The image source is missing or unreadable."""


class TerminalAcquisitionError(TermimgError):
    """The control terminal cannot be opened or put into raw mode."""


class ConversionError(TermimgError):
    """The external converter failed to produce a PNG."""


class ChannelIOError(TermimgError):
    """Reading from or writing to the control channel failed."""


class ProtocolError(TermimgError):
    """The terminal answered with something we cannot interpret."""

    def __init__(self, message: str, raw: Optional[bytes] = None) -> None:
        self.raw = raw
        if raw is not None:
            message = f"{message}: {escape_control(raw)}"
        super().__init__(message)


class CorrelationError(ProtocolError):
    """A transfer response names a different transfer session id."""

    def __init__(self, expected: int, got: Optional[int], raw: Optional[bytes] = None) -> None:
        self.expected = expected
        self.got = got
        super().__init__(f"response for transfer {got} does not match transfer {expected}", raw)
