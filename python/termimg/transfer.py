"""Chunked image transfer.

An upload is a streamed sequence of commands sharing one client chosen
transfer id ``I``::

    a=t,I=<id>,f=100,t=d,c=<cols>,r=<rows>,m=1     begin
    I=<id>,m=1;<base64 chunk>                      once per chunk
    I=<id>,m=0                                     end

The terminal acknowledges only the end command, answering with the handle
(``i``) it assigned to the image together with the transfer id.
"""

from __future__ import annotations

import base64
import logging
import random
import threading
import time
from dataclasses import dataclass
from typing import Callable, Iterator, Optional, Set

from .channel import ControlChannel
from .config import Geometry
from .errors import CorrelationError, ProtocolError
from .response import NoResponse, Success


LOGGER = logging.getLogger(__name__)

PNG_FORMAT = 100
MAX_TRANSFER_ID = 0xFFFFFFFF


class TransferIdAllocator:
    """Random transfer ids, never handing out the same id twice."""

    def __init__(self, rng: Optional[random.Random] = None) -> None:
        self._rng = rng or random.SystemRandom()
        self._issued: Set[int] = set()
        self._lock = threading.Lock()

    def allocate(self) -> int:
        with self._lock:
            while True:
                candidate = self._rng.randint(1, MAX_TRANSFER_ID)
                if candidate not in self._issued:
                    self._issued.add(candidate)
                    return candidate


_DEFAULT_ALLOCATOR = TransferIdAllocator()


@dataclass
class TransferProgress:
    chunk: int
    chunks: int
    sent_bytes: int
    total_bytes: int
    rate: Optional[float] = None  # bytes per second

    def format(self) -> str:
        rate = f"{int(self.rate) // 1024} K/s" if self.rate is not None else ""
        return f"{self.sent_bytes // 1024}/{self.total_bytes // 1024}K [{rate}]"


def split_chunks(encoded: bytes, chunk_size: int) -> Iterator[bytes]:
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    for offset in range(0, len(encoded), chunk_size):
        yield encoded[offset : offset + chunk_size]


class TransferEngine:
    """Uploads image bytes and returns the handle the terminal assigned."""

    def __init__(
        self,
        channel: ControlChannel,
        *,
        chunk_size: int = 4096,
        timeout: float = 2.0,
        progress: Optional[Callable[[TransferProgress], None]] = None,
        progress_every: int = 10,
        rate_every: int = 100,
        allocator: Optional[TransferIdAllocator] = None,
        status: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.channel = channel
        self.chunk_size = chunk_size
        self.timeout = timeout
        self.progress = progress
        self.progress_every = max(1, progress_every)
        self.rate_every = max(1, rate_every)
        self.allocator = allocator or _DEFAULT_ALLOCATOR
        self.status = status

    def upload(self, data: bytes, geometry: Geometry) -> int:
        encoded = base64.standard_b64encode(data)
        chunks = list(split_chunks(encoded, self.chunk_size))
        transfer_id = self.allocator.allocate()
        LOGGER.info("uploading %d bytes in %d chunks as transfer %d", len(data), len(chunks), transfer_id)

        self.channel.send(
            {
                "a": "t",
                "I": transfer_id,
                "f": PNG_FORMAT,
                "t": "d",
                "c": geometry.columns,
                "r": geometry.rows,
                "m": 1,
            }
        )
        started = time.monotonic()
        rate: Optional[float] = None
        sent = 0
        for index, chunk in enumerate(chunks, start=1):
            if self.progress is not None and index % self.progress_every == 1 % self.progress_every:
                if index % self.rate_every == 1 % self.rate_every:
                    elapsed = time.monotonic() - started
                    if elapsed > 0:
                        rate = sent / elapsed
                self.progress(TransferProgress(index, len(chunks), sent, len(encoded), rate))
            self.channel.send({"I": transfer_id, "m": 1}, chunk)
            sent += len(chunk)
        self.channel.send({"I": transfer_id, "m": 0})
        if self.status is not None:
            self.status("Awaiting terminal response")

        response = self.channel.read_response(self.timeout)
        if isinstance(response, Success):
            if response.number != transfer_id:
                raise CorrelationError(transfer_id, response.number, response.raw)
            LOGGER.info("transfer %d stored as handle %d", transfer_id, response.handle)
            return response.handle
        if isinstance(response, NoResponse):
            raise ProtocolError("No response from terminal")
        raise ProtocolError("Invalid terminal response", response.raw)
