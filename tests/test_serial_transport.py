import asyncio
from unittest.mock import Mock

import pytest
import serial

from linkwatch.connection.errors import LineTooLongError
from linkwatch.connection.serial_transport import SerialTransport


@pytest.fixture
def loopback():
    return SerialTransport("loop://", read_timeout=0.05)


@pytest.mark.asyncio
async def test_loopback_delivers_written_lines(loopback):
    lines = asyncio.Queue()
    loopback.on_line(lines.put_nowait)
    await loopback.open()
    assert loopback.is_open()

    try:
        written = await loopback.write("ping\n")
        assert written == 5
        assert await asyncio.wait_for(lines.get(), timeout=2) == "ping"
    finally:
        loopback.close()


@pytest.mark.asyncio
async def test_close_fires_closed_event_once(loopback):
    on_close = Mock()
    loopback.on_close(on_close)
    await loopback.open()
    loopback.close()
    loopback.close()
    assert not loopback.is_open()
    on_close.assert_called_once_with()


@pytest.mark.asyncio
async def test_open_failure_raises():
    transport = SerialTransport("/dev/linkwatch-does-not-exist")
    with pytest.raises(serial.SerialException):
        await transport.open()
    assert not transport.is_open()


@pytest.mark.asyncio
async def test_read_error_emits_error_then_closes(loopback):
    errors = []
    closed = asyncio.Event()
    loopback.on_error(errors.append)
    loopback.on_close(closed.set)
    await loopback.open()

    loopback._serial.readline = Mock(side_effect=serial.SerialException("device unplugged"))
    await asyncio.wait_for(closed.wait(), timeout=2)

    assert len(errors) == 1
    assert isinstance(errors[0], serial.SerialException)
    assert not loopback.is_open()


def test_partial_reads_are_reassembled(loopback):
    lines = []
    loopback.on_line(lines.append)
    loopback._feed(b"po")
    assert lines == []
    loopback._feed(b"ng\r\nsensor=")
    loopback._feed(b"42\n")
    assert lines == ["pong", "sensor=42"]


def test_unterminated_data_past_limit_is_dropped():
    transport = SerialTransport("loop://", max_line_bytes=8)
    lines, errors = [], []
    transport.on_line(lines.append)
    transport.on_error(errors.append)

    transport._feed(b"0123456789")
    assert len(errors) == 1
    assert isinstance(errors[0], LineTooLongError)

    transport._feed(b"pong\n")
    assert lines == ["pong"]


def test_many_lines_in_one_chunk(loopback):
    lines = []
    loopback.on_line(lines.append)
    loopback._feed(b"a\nb\r\nc\npar")
    assert lines == ["a", "b", "c"]
    loopback._feed(b"tial\n")
    assert lines[-1] == "partial"
