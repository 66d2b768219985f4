"""Terminal session guard.

Owns the line discipline of the control terminal for the duration of a run:
echo and canonical mode are switched off so terminal responses are neither
displayed nor line-buffered, and the suspend character is disabled so Ctrl-Z
cannot stop the process halfway through an upload.  The saved attributes are
restored on every exit path (normal return, exception, ``atexit`` and the
common termination signals).
"""

from __future__ import annotations

import atexit
import logging
import os
import signal
import termios
import threading
from types import FrameType
from typing import Any, Callable, Dict, List, Optional, Sequence

from .errors import TermimgError, TerminalAcquisitionError


LOGGER = logging.getLogger(__name__)

DEFAULT_SIGNALS = (signal.SIGINT, signal.SIGTERM, signal.SIGHUP)

# Indices into the list returned by termios.tcgetattr().
_LFLAG = 3
_CC = 6


class TerminalSession:
    """Scoped owner of the terminal line discipline."""

    def __init__(
        self,
        fd: int,
        *,
        drain: Optional[Callable[[], Any]] = None,
        signals: Sequence[int] = DEFAULT_SIGNALS,
    ) -> None:
        self.fd = fd
        self.drain = drain
        self.signals = tuple(signals)
        self._saved: Optional[List[Any]] = None
        self._previous_handlers: Dict[int, Any] = {}
        self._lock = threading.RLock()
        self._active = False

    @property
    def active(self) -> bool:
        return self._active

    @property
    def saved_attributes(self) -> Optional[List[Any]]:
        return self._saved

    def acquire(self) -> "TerminalSession":
        with self._lock:
            if self._active:
                return self
            try:
                saved = termios.tcgetattr(self.fd)
            except (termios.error, OSError) as exc:
                raise TerminalAcquisitionError(f"cannot read terminal settings: {exc}") from exc
            attrs = termios.tcgetattr(self.fd)
            attrs[_LFLAG] &= ~(termios.ECHO | termios.ICANON)
            cc = list(attrs[_CC])
            cc[termios.VMIN] = 1
            cc[termios.VTIME] = 0
            cc[termios.VSUSP] = _disabled_char(self.fd, cc[termios.VSUSP])
            attrs[_CC] = cc
            try:
                termios.tcsetattr(self.fd, termios.TCSANOW, attrs)
            except (termios.error, OSError) as exc:
                raise TerminalAcquisitionError(f"cannot change terminal settings: {exc}") from exc
            self._saved = saved
            self._active = True
            atexit.register(self.release)
            self._install_signal_handlers()
            LOGGER.debug("terminal acquired (fd=%d)", self.fd)
            return self

    def release(self) -> None:
        """Drain stray responses and restore the terminal.  Safe to call repeatedly."""
        with self._lock:
            if not self._active:
                return
            self._active = False
            try:
                try:
                    if self.drain is not None:
                        try:
                            self.drain()
                        except TermimgError as exc:
                            LOGGER.warning("draining terminal responses failed: %s", exc)
                finally:
                    # A signal arriving during the drain must not skip this.
                    self._restore_attributes()
            finally:
                self._restore_signal_handlers()
                atexit.unregister(self.release)
                LOGGER.debug("terminal released (fd=%d)", self.fd)

    def _restore_attributes(self) -> None:
        if self._saved is None:
            return
        try:
            termios.tcsetattr(self.fd, termios.TCSANOW, self._saved)
        except (termios.error, OSError) as exc:
            LOGGER.error("failed to restore terminal settings: %s", exc)

    def __enter__(self) -> "TerminalSession":
        return self.acquire()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()

    def _install_signal_handlers(self) -> None:
        if threading.current_thread() is not threading.main_thread():
            LOGGER.debug("not on the main thread, signal handlers left alone")
            return
        for signum in self.signals:
            self._previous_handlers[signum] = signal.signal(signum, self._handle_signal)

    def _restore_signal_handlers(self) -> None:
        handlers, self._previous_handlers = self._previous_handlers, {}
        for signum, handler in handlers.items():
            signal.signal(signum, handler if handler is not None else signal.SIG_DFL)

    def _handle_signal(self, signum: int, frame: Optional[FrameType]) -> None:
        LOGGER.info("received signal %d, restoring terminal", signum)
        self.release()
        raise SystemExit(1)


def _disabled_char(fd: int, sample: Any) -> Any:
    try:
        value = os.fpathconf(fd, "PC_VDISABLE")
    except (OSError, ValueError):
        value = 0
    if value < 0:
        value = 0
    # termios reports control characters as 1-byte strings in canonical mode.
    return bytes([value]) if isinstance(sample, bytes) else value
