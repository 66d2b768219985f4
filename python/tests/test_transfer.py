import base64
import random

import pytest

from termimg import (
    ChannelIOError,
    CorrelationError,
    Geometry,
    Malformed,
    NoResponse,
    ProtocolError,
    Success,
    TransferEngine,
    TransferIdAllocator,
)
from termimg.transfer import TransferProgress, split_chunks


class FixedAllocator(TransferIdAllocator):
    def __init__(self, value):
        super().__init__()
        self.value = value

    def allocate(self):
        return self.value


class StubChannel:
    def __init__(self, responses, *, fail_after=None):
        self.responses = list(responses)
        self.sent = []
        self.fail_after = fail_after

    def send(self, control, payload=None):
        if self.fail_after is not None and len(self.sent) >= self.fail_after:
            raise ChannelIOError("control channel write failed: broken pipe")
        self.sent.append((dict(control), payload))

    def read_response(self, timeout):
        return self.responses.pop(0)


def test_split_chunks_bounds_every_frame():
    chunks = list(split_chunks(b"x" * 10, 4))
    assert chunks == [b"xxxx", b"xxxx", b"xx"]
    with pytest.raises(ValueError):
        list(split_chunks(b"x", 0))


def test_upload_sends_begin_chunks_end_and_returns_handle():
    data = bytes(range(256)) * 20
    channel = StubChannel([Success(0xE001, 99, b"")])
    engine = TransferEngine(channel, chunk_size=1024, allocator=FixedAllocator(99))
    handle = engine.upload(data, Geometry(columns=10, rows=5))
    assert handle == 0xE001

    begin, *chunks, end = channel.sent
    assert begin == ({"a": "t", "I": 99, "f": 100, "t": "d", "c": 10, "r": 5, "m": 1}, None)
    assert end == ({"I": 99, "m": 0}, None)
    assert all(control == {"I": 99, "m": 1} for control, _ in chunks)
    assert all(len(payload) <= 1024 for _, payload in chunks)
    assert base64.b64decode(b"".join(payload for _, payload in chunks)) == data


def test_upload_rejects_response_for_other_transfer():
    channel = StubChannel([Success(7, 1234, b"\x1b_Gi=7,I=1234;OK\x1b")])
    engine = TransferEngine(channel, allocator=FixedAllocator(99))
    with pytest.raises(CorrelationError) as excinfo:
        engine.upload(b"png", Geometry())
    assert excinfo.value.expected == 99
    assert excinfo.value.got == 1234
    assert "I=1234" in str(excinfo.value)


def test_upload_rejects_response_without_transfer_id():
    channel = StubChannel([Success(7, None, b"\x1b_Gi=7;OK\x1b")])
    with pytest.raises(CorrelationError):
        TransferEngine(channel, allocator=FixedAllocator(99)).upload(b"png", Geometry())


@pytest.mark.parametrize("response", [NoResponse(), Malformed(b"\x1b_Gi=7;EBADPNG\x1b")])
def test_upload_failed_response_is_protocol_error(response):
    channel = StubChannel([response])
    with pytest.raises(ProtocolError):
        TransferEngine(channel, allocator=FixedAllocator(5)).upload(b"png", Geometry())


def test_write_failure_aborts_without_reading():
    channel = StubChannel([Success(1, 5, b"")], fail_after=2)
    engine = TransferEngine(channel, chunk_size=4, allocator=FixedAllocator(5))
    with pytest.raises(ChannelIOError):
        engine.upload(b"0123456789", Geometry())
    assert len(channel.sent) == 2
    assert channel.responses  # the response was never consumed


def test_progress_is_reported_every_n_chunks():
    reports = []
    channel = StubChannel([Success(1, 5, b"")])
    engine = TransferEngine(
        channel,
        chunk_size=4,
        allocator=FixedAllocator(5),
        progress=reports.append,
        progress_every=10,
        rate_every=100,
    )
    engine.upload(b"x" * 75, Geometry())  # 100 base64 bytes -> 25 chunks
    assert [report.chunk for report in reports] == [1, 11, 21]
    assert all(report.chunks == 25 for report in reports)
    assert reports[1].sent_bytes == 40


def test_upload_without_progress_sends_the_same_frames():
    with_progress = StubChannel([Success(1, 5, b"")])
    without_progress = StubChannel([Success(1, 5, b"")])
    TransferEngine(with_progress, chunk_size=4, allocator=FixedAllocator(5), progress=lambda p: None).upload(
        b"abcdefgh", Geometry()
    )
    TransferEngine(without_progress, chunk_size=4, allocator=FixedAllocator(5)).upload(b"abcdefgh", Geometry())
    assert with_progress.sent == without_progress.sent


def test_awaiting_status_follows_end_command_and_precedes_read():
    channel = StubChannel([Success(1, 5, b"")])
    seen = []

    def status(message):
        seen.append((message, channel.sent[-1][0], len(channel.responses)))

    TransferEngine(channel, chunk_size=4, allocator=FixedAllocator(5), status=status).upload(b"abcdefgh", Geometry())
    assert seen == [("Awaiting terminal response", {"I": 5, "m": 0}, 1)]


def test_progress_format():
    progress = TransferProgress(chunk=11, chunks=25, sent_bytes=40960, total_bytes=102400, rate=20480.0)
    assert progress.format() == "40/100K [20 K/s]"
    assert TransferProgress(1, 1, 0, 4096).format() == "0/4K []"


def test_allocator_never_repeats_ids():
    class Repeating(random.Random):
        def __init__(self):
            super().__init__()
            self.values = [7, 7, 7, 8]

        def randint(self, a, b):
            return self.values.pop(0)

    allocator = TransferIdAllocator(Repeating())
    assert allocator.allocate() == 7
    assert allocator.allocate() == 8


def test_default_allocator_ids_are_in_range_and_distinct():
    allocator = TransferIdAllocator()
    ids = [allocator.allocate() for _ in range(200)]
    assert len(set(ids)) == len(ids)
    assert all(1 <= value <= 0xFFFFFFFF for value in ids)
