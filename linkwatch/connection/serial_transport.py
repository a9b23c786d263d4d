# Serial Transport - pyserial-backed line channel
# Blocking port I/O runs in the event loop's executor

"""
Serial Transport Module

Responsibilities:
- Open/close a serial port (device path or pyserial URL such as loop://)
- Write ASCII text to the port
- Reassemble partial reads into newline-terminated lines
- Report read failures as error events, then close
"""

import asyncio
from typing import Optional

import serial

from .errors import LineTooLongError
from .transport import Transport
from ..utils.logger import setup_logger

# Unterminated data beyond this is discarded
MAX_LINE_BYTES = 4096

class SerialTransport(Transport):
    """
    Transport over a serial port

    Defaults match a 9600 baud ASCII device that answers one line per
    request.
    """

    def __init__(
        self,
        port: str,
        baudrate: int = 9600,
        encoding: str = "ascii",
        read_timeout: float = 0.5,
        max_line_bytes: int = MAX_LINE_BYTES
    ):
        """
        Initialize serial transport (the port is not opened here)

        Args:
            port: Device path (e.g. /dev/ttyUSB0) or pyserial URL
            baudrate: Line speed
            encoding: Text encoding used for both directions
            read_timeout: Seconds a single blocking read may wait
            max_line_bytes: Longest line accepted before data is dropped
        """
        super().__init__()
        self.port = port
        self.baudrate = baudrate
        self.encoding = encoding
        self.read_timeout = read_timeout
        self.max_line_bytes = max_line_bytes

        self._serial = serial.serial_for_url(
            port,
            do_not_open=True,
            baudrate=baudrate,
            timeout=read_timeout
        )
        self._buffer = bytearray()
        self._reader_task: Optional[asyncio.Task] = None
        self._closing = False

        self.logger = setup_logger("SerialTransport")

    async def open(self):
        """
        Open the serial port and start the background reader

        Raises:
            serial.SerialException: if the port cannot be opened
        """
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._serial.open)

        self._closing = False
        self._buffer.clear()
        self._mark_opened()
        self._reader_task = asyncio.create_task(self._read_loop())
        self.logger.info(f"Serial port {self.port} opened ({self.baudrate} baud)")

    async def write(self, data: str) -> int:
        """
        Write text to the port

        Returns:
            Number of bytes written
        """
        payload = data.encode(self.encoding)
        loop = asyncio.get_running_loop()
        written = await loop.run_in_executor(None, self._serial.write, payload)
        self.logger.debug(f"Wrote {written} bytes to {self.port}")
        return written

    def close(self):
        """Close the port; the closed event fires once"""
        if self._closing or not self._serial.is_open:
            return
        self._closing = True

        if self._reader_task and not self._reader_task.done():
            self._reader_task.cancel()
        self._reader_task = None

        try:
            self._serial.close()
        except serial.SerialException as e:
            self.logger.warning(f"Error closing {self.port}: {e}")

        self.logger.info(f"Serial port {self.port} closed")
        self._emit_close()

    def is_open(self) -> bool:
        return self._serial.is_open and not self._closing

    async def _read_loop(self):
        """Background task reading lines until the port closes"""
        loop = asyncio.get_running_loop()
        try:
            while not self._closing:
                try:
                    chunk = await loop.run_in_executor(None, self._serial.readline)
                except serial.SerialException as e:
                    if self._closing:
                        break
                    self.logger.error(f"Serial read error on {self.port}: {e}")
                    self._emit_error(e)
                    self.close()
                    break

                if chunk:
                    self._feed(chunk)

        except asyncio.CancelledError:
            self.logger.debug("Read loop cancelled")
            raise

    def _feed(self, chunk: bytes):
        """Split buffered bytes into lines and emit each one"""
        self._buffer.extend(chunk)
        start = 0
        while True:
            end = self._buffer.find(b"\n", start)
            if end < 0:
                break
            raw = bytes(self._buffer[start:end])
            start = end + 1
            line = raw.rstrip(b"\r").decode(self.encoding, errors="replace")
            self.logger.debug(f"Received line: {line!r}")
            self._emit_line(line)
        del self._buffer[:start]

        if len(self._buffer) > self.max_line_bytes:
            dropped = len(self._buffer)
            self._buffer.clear()
            self.logger.warning(f"Dropped {dropped} bytes without line terminator from {self.port}")
            self._emit_error(LineTooLongError(f"No line terminator within {self.max_line_bytes} bytes"))
