"""
Pytest configuration and fixtures for termimg tests.
"""
import os
import re
from typing import Dict, List, Optional, Tuple

import pytest

from termimg import ControlChannel, ResponseReader

_COMMAND_RE = re.compile(rb"\x1b_G(?P<control>[^;\x1b]*)(?:;(?P<payload>[^\x1b]*))?\x1b\\")


class FakeTerminal:
    """In-memory terminal implementing the upload-by-key graphics dialect.

    Bytes written to it are parsed as graphics commands; responses are pushed
    through a pipe so the real ResponseReader can consume them.
    """

    def __init__(self, response_fd: int, *, first_handle: int = 0xE000) -> None:
        self.response_fd = response_fd
        self.written = b""
        self.commands: List[Tuple[Dict[str, str], bytes]] = []
        self.images: Dict[int, bytes] = {}
        self.keys: Dict[str, int] = {}
        self.next_handle = first_handle
        self.silent = False
        self.reply_number: Optional[int] = None
        self._pending = b""
        self._transfer: Optional[Dict[str, object]] = None

    # BinaryIO surface used by ControlChannel
    def write(self, data) -> int:
        data = bytes(data)
        self.written += data
        self._pending += data
        self._parse()
        return len(data)

    def flush(self) -> None:
        pass

    def respond(self, data: bytes) -> None:
        os.write(self.response_fd, data)

    def _parse(self) -> None:
        while True:
            match = _COMMAND_RE.search(self._pending)
            if not match:
                return
            self._pending = self._pending[match.end():]
            control = dict(item.split("=", 1) for item in match.group("control").decode().split(",") if item)
            payload = match.group("payload") or b""
            self.commands.append((control, payload))
            self._handle(control, payload)

    def _handle(self, control: Dict[str, str], payload: bytes) -> None:
        if self.silent:
            return
        action = control.get("a")
        if action == "U":
            key = payload.decode()
            if "i" in control:
                self.keys[key] = int(control["i"])
                return
            handle = self.keys.get(key)
            if handle is None:
                self.respond(b"\x1b_Gi=0;ENOTFOUND:image not found\x1b\\")
            else:
                self.respond(b"\x1b_Gi=%d;OK\x1b\\" % handle)
            return
        if action == "t":
            self._transfer = {"I": control["I"], "data": b""}
            return
        transfer = self._transfer
        assert transfer is not None and control.get("I") == transfer["I"]
        if control.get("m") == "1":
            transfer["data"] += payload
            return
        handle = self.next_handle
        self.next_handle += 1
        self.images[handle] = transfer["data"]
        self._transfer = None
        number = self.reply_number if self.reply_number is not None else int(transfer["I"])
        self.respond(b"\x1b_Gi=%d,I=%d;OK\x1b\\" % (handle, number))

    def actions(self) -> List[str]:
        out = []
        for control, _payload in self.commands:
            if control.get("a") == "U":
                out.append("bind" if "i" in control else "query")
            elif control.get("a") == "t":
                out.append("begin")
            elif control.get("m") == "1":
                out.append("chunk")
            else:
                out.append("end")
        return out


@pytest.fixture
def pipe():
    read_fd, write_fd = os.pipe()
    yield read_fd, write_fd
    for fd in (read_fd, write_fd):
        try:
            os.close(fd)
        except OSError:
            pass


@pytest.fixture
def fake_terminal(pipe):
    read_fd, write_fd = pipe
    terminal = FakeTerminal(write_fd)
    channel = ControlChannel(terminal, ResponseReader(read_fd))
    return terminal, channel


@pytest.fixture
def pty_pair():
    master, slave = os.openpty()
    yield master, slave
    for fd in (master, slave):
        try:
            os.close(fd)
        except OSError:
            pass
