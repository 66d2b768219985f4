"""upload-terminal-image CLI entry point."""

from __future__ import annotations

import argparse
import logging
import os
import sys
import tempfile
from pathlib import Path
from typing import BinaryIO, List, Optional, TextIO

from .channel import ControlChannel
from .client import ImageClient
from .config import Geometry, UploadConfig
from .errors import InputError, ProtocolError, TermimgError, TerminalAcquisitionError
from .render import RESET_STYLE, render_grid, write_grid
from .response import ResponseReader
from .session import TerminalSession

LOG = logging.getLogger("termimg.cli")

CLEAR_LINE = b"\x1b[2K\r"

DESCRIPTION = """\
Convert the given image to PNG and send it to the terminal in chunks. On
success print characters that can be used to display the image. One line of
the terminal is used to display the upload progress.
"""


def _configure_logging(path: Optional[Path], level: str) -> None:
    if path is None:
        return
    logging.basicConfig(
        filename=str(path),
        level=getattr(logging, level.upper(), logging.DEBUG),
        format="%(created).3f %(levelname)s %(name)s: %(message)s",
    )


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="upload-terminal-image", description=DESCRIPTION)
    parser.add_argument("images", nargs="*", metavar="IMAGE_FILE", help="Image to upload")
    parser.add_argument("-f", "--file", dest="file", help="The image file (alternative to the positional argument)")
    parser.add_argument("-c", "--columns", type=int, help="The number of columns for the image")
    parser.add_argument("-r", "--rows", type=int, help="The number of rows for the image")
    parser.add_argument("-a", "--append", action="store_true", help="Do not clear the output file")
    parser.add_argument("-o", "--output", type=Path, help="Write the image characters to FILE instead of stdout")
    parser.add_argument("-e", "--err", type=Path, help="Write error messages to FILE instead of stderr")
    parser.add_argument("-l", "--log", type=Path, help="Enable logging and write logs to FILE")
    parser.add_argument(
        "--log-level",
        default=os.environ.get("TERMIMG_LOG_LEVEL", "DEBUG"),
        help="Logging level when --log is given (default DEBUG)",
    )
    parser.add_argument(
        "--noesc",
        action="store_true",
        help="Do not emit the escape codes encoding row numbers as foreground color",
    )
    parser.add_argument("--tty", help="Terminal used for the graphics protocol (default /dev/tty)")
    parser.add_argument("--converter", help="Image converter command (default: ImageMagick convert)")
    parser.add_argument("--chunk-size", type=int, help="Base64 bytes per transfer chunk (default 4096)")
    parser.add_argument("--timeout", type=float, help="Seconds to wait for a terminal response (default 2)")
    return parser


class StatusLine:
    """Single status line on the control terminal."""

    def __init__(self, channel: Optional[ControlChannel] = None) -> None:
        self.channel = channel

    def show(self, message: str) -> None:
        LOG.info(message)
        if self.channel is None:
            return
        self.channel.write_raw(CLEAR_LINE + message.encode("utf-8", errors="replace"))

    def clear(self) -> None:
        if self.channel is not None:
            self.channel.write_raw(CLEAR_LINE)


def _report_error(message: str, status: StatusLine, err: TextIO) -> None:
    LOG.error(message)
    if status.channel is not None:
        try:
            status.show(message)
        except TermimgError as exc:
            LOG.debug("status line unavailable: %s", exc)
    err.write(message + "\n")
    err.flush()


def _select_image(args: argparse.Namespace) -> Path:
    candidates = list(args.images)
    if args.file:
        candidates.insert(0, args.file)
    if len(candidates) > 1:
        raise InputError(f"Multiple image files are not supported: {' and '.join(candidates)}")
    if not candidates:
        raise InputError("No image file given")
    return Path(candidates[0])


def _read_image(path: Path) -> bytes:
    if not path.is_file():
        raise InputError(f"File not found: {path} (pwd: {Path.cwd()})")
    try:
        return path.read_bytes()
    except OSError as exc:
        raise InputError(f"Cannot read {path}: {exc}") from exc


def _open_tty(path: str) -> BinaryIO:
    try:
        return open(path, "r+b", buffering=0)
    except OSError as exc:
        raise TerminalAcquisitionError(f"Cannot open terminal {path}: {exc}") from exc


def build_config(args: argparse.Namespace, environ: Optional[dict] = None) -> UploadConfig:
    config = UploadConfig.from_env(environ)
    config.geometry = Geometry(
        columns=args.columns if args.columns is not None else config.geometry.columns,
        rows=args.rows if args.rows is not None else config.geometry.rows,
    )
    if args.tty:
        config.tty_path = args.tty
    if args.converter:
        config.converter = args.converter
    if args.chunk_size is not None:
        if args.chunk_size <= 0:
            raise ValueError("chunk size must be positive")
        config.chunk_size = args.chunk_size
    if args.timeout is not None:
        config.response_timeout = args.timeout
    config.row_colors = not args.noesc
    return config


def _open_output(path: Optional[Path], append: bool) -> TextIO:
    if path is None:
        return sys.stdout
    return open(path, "a" if append else "w", encoding="utf-8")


def _open_error_sink(path: Optional[Path]) -> TextIO:
    if path is None:
        return sys.stderr
    try:
        return open(path, "a", encoding="utf-8")
    except OSError as exc:
        raise InputError(f"Cannot open error file {path}: {exc}") from exc


def run(
    config: UploadConfig,
    image: Path,
    *,
    output: Optional[Path] = None,
    append: bool = False,
    err: Optional[TextIO] = None,
) -> int:
    err = err if err is not None else sys.stderr
    status = StatusLine()
    try:
        data = _read_image(image)
        tty = _open_tty(config.tty_path)
    except TermimgError as exc:
        _report_error(str(exc), status, err)
        return 1

    with tty, tempfile.TemporaryDirectory(prefix="termimg-") as workdir:
        channel = ControlChannel(tty, ResponseReader(tty.fileno()), tmux=config.use_tmux())
        status = StatusLine(channel)
        session = TerminalSession(tty.fileno(), drain=lambda: channel.drain(config.drain_timeout))
        try:
            with session:
                client = ImageClient(channel, config, status=status.show)
                handle = client.obtain_handle(image, data, Path(workdir))
                status.show(f"Successfully received image id: {handle:x} ({handle})")
                status.clear()
                try:
                    lines = render_grid(handle, config.geometry, row_colors=config.row_colors)
                except ValueError as exc:
                    raise ProtocolError(f"Unusable image id from terminal: {exc}") from exc
                sink = _open_output(output, append)
                try:
                    write_grid(lines, sink)
                finally:
                    if sink is not sys.stdout:
                        sink.close()
                # Keep the row colors from leaking into whatever follows on stdout.
                sys.stdout.write(RESET_STYLE)
                sys.stdout.flush()
            return 0
        except TermimgError as exc:
            _report_error(str(exc), status, err)
            return 1
        finally:
            LOG.debug("channel transcript:\n%s", channel.format_transcript())


def main(argv: List[str] | None = None) -> int:
    parser = build_arg_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.log, args.log_level)
    try:
        err = _open_error_sink(args.err)
    except InputError as exc:
        _report_error(str(exc), StatusLine(), sys.stderr)
        return 1
    try:
        try:
            image = _select_image(args)
            config = build_config(args)
        except InputError as exc:
            _report_error(str(exc), StatusLine(), err)
            return 1
        except ValueError as exc:
            parser.error(str(exc))
        return run(config, image, output=args.output, append=args.append, err=err)
    finally:
        if err is not sys.stderr:
            err.close()


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
