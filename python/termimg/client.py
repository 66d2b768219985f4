"""Upload-or-reuse orchestration on top of the control channel."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional

from .cache import ContentCache, dedup_key
from .channel import ControlChannel
from .config import UploadConfig
from .convert import ensure_png
from .transfer import TransferEngine, TransferIdAllocator, TransferProgress


LOGGER = logging.getLogger(__name__)

StatusCallback = Callable[[str], None]


def _no_status(message: str) -> None:
    LOGGER.debug("status: %s", message)


@dataclass
class ImageClient:
    channel: ControlChannel
    config: UploadConfig = field(default_factory=UploadConfig)
    status: StatusCallback = _no_status
    allocator: Optional[TransferIdAllocator] = None

    def __post_init__(self) -> None:
        self.cache = ContentCache(self.channel, timeout=self.config.response_timeout)
        self.engine = TransferEngine(
            self.channel,
            chunk_size=self.config.chunk_size,
            timeout=self.config.response_timeout,
            progress=self._report_progress,
            progress_every=self.config.progress_every,
            rate_every=self.config.rate_every,
            allocator=self.allocator,
            status=self.status,
        )

    def obtain_handle(self, image: Path, data: bytes, workdir: Path) -> int:
        """Return a handle for ``image``, uploading it only on a cache miss.

        ``data`` is the content of ``image`` as read by the caller; the dedup
        key is computed from it before any conversion takes place.
        """
        geometry = self.config.geometry
        LOGGER.info("Image size columns: %d, rows: %d", geometry.columns, geometry.rows)
        key = dedup_key(data, geometry)

        self.status("Trying to find image by md5sum")
        handle = self.cache.lookup(key)
        if handle is not None:
            return handle

        source = ensure_png(image, workdir, converter=self.config.converter, announce=self.status)
        payload = data if source == image else source.read_bytes()

        handle = self.engine.upload(payload, geometry)
        self.cache.bind(handle, key)
        return handle

    def _report_progress(self, progress: TransferProgress) -> None:
        self.status(progress.format())
