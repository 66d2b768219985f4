"""
termimg - upload images to the terminal through the graphics side channel.

    session.py   → terminal line discipline guard
    channel.py   → command framing, tmux passthrough, transcript
    response.py  → response frames and their classification
    cache.py     → dedup keys, lookup and binding of stored images
    transfer.py  → chunked upload
    render.py    → placeholder glyph grid
    convert.py   → PNG normalisation through an external converter
    client.py    → upload-or-reuse orchestration
    cli.py       → command line front-end
"""

import logging

from .cache import ContentCache, dedup_key  # noqa: F401
from .channel import ControlChannel, serialize_command, wrap_tmux  # noqa: F401
from .client import ImageClient  # noqa: F401
from .config import Geometry, UploadConfig  # noqa: F401
from .errors import (  # noqa: F401
    ChannelIOError,
    ConversionError,
    CorrelationError,
    InputError,
    ProtocolError,
    TermimgError,
    TerminalAcquisitionError,
)
from .render import RESET_STYLE, render_grid, write_grid  # noqa: F401
from .response import Malformed, NoResponse, NotFound, ResponseReader, Success, classify  # noqa: F401
from .session import TerminalSession  # noqa: F401
from .transfer import TransferEngine, TransferIdAllocator, TransferProgress  # noqa: F401

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "ContentCache",
    "dedup_key",
    "ControlChannel",
    "serialize_command",
    "wrap_tmux",
    "ImageClient",
    "Geometry",
    "UploadConfig",
    "TermimgError",
    "InputError",
    "TerminalAcquisitionError",
    "ConversionError",
    "ChannelIOError",
    "ProtocolError",
    "CorrelationError",
    "RESET_STYLE",
    "render_grid",
    "write_grid",
    "ResponseReader",
    "classify",
    "Success",
    "NotFound",
    "Malformed",
    "NoResponse",
    "TerminalSession",
    "TransferEngine",
    "TransferIdAllocator",
    "TransferProgress",
]

__version__ = "0.1.0"
