# Serial Device - Liveness-verified link
# Handshake, heartbeat and disconnect detection over a line transport

"""
Serial Device Module

Responsibilities:
- Open the transport and verify the remote answers ping with pong
- Run the heartbeat loop once verified
- Close the transport when a pong is missed
- Gate application sends on liveness
- Notify observers when a verified link closes

Connection states:

    DISCONNECTED -> VERIFYING -> CONNECTED <-> AWAITING_PONG -> DISCONNECTED

Every incoming line goes through _handle_line(), which consults the
verifying flag instead of swapping transport subscriptions.
"""

import asyncio
import inspect
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from .errors import LinkError, NotConnectedError, OpenFailedError, VerificationTimeoutError
from .heartbeat_manager import HeartbeatManager
from .transport import Transport
from ..utils.logger import setup_logger

PING_TOKEN = "ping"
PONG_TOKEN = "pong"
LINE_TERMINATOR = "\n"

class ConnectionState(Enum):
    """Link connection states"""
    DISCONNECTED = "disconnected"
    VERIFYING = "verifying"
    CONNECTED = "connected"
    AWAITING_PONG = "awaiting_pong"

class SerialDevice:
    """
    Liveness-verified connection to a line-oriented remote endpoint

    Features:
    - ping/pong handshake gating connect()
    - Periodic heartbeat with timeout-driven close
    - Send gating on liveness
    - Disconnect and message callbacks
    """

    def __init__(
        self,
        transport: Transport,
        ping_interval_ms: int = 30000,
        ping_timeout_ms: int = 10000,
        scheduler=None
    ):
        """
        Initialize serial device

        Args:
            transport: Line transport, owned by this device
            ping_interval_ms: Delay between a pong and the next ping
            ping_timeout_ms: Time allowed for a pong after each ping
            scheduler: Object providing call_later(); defaults to running loop
        """
        self.transport = transport
        self._ping_interval_ms = ping_interval_ms
        self._ping_timeout_ms = ping_timeout_ms

        # Liveness state
        self.is_alive = False
        self._verifying = False
        self._verified = False
        self._verification: Optional[asyncio.Future] = None

        # Owns the single outstanding timer
        self.heartbeat = HeartbeatManager(
            send_ping=self._send_ping,
            on_missed=self._on_heartbeat_missed,
            interval_ms=ping_interval_ms,
            timeout_ms=ping_timeout_ms,
            scheduler=scheduler
        )

        # Event callbacks
        self._disconnect_callbacks: List[Callable] = []
        self._message_callbacks: List[Callable] = []

        self._background_tasks: set = set()
        self._messages_received = 0

        self.logger = setup_logger("SerialDevice")

        self.transport.on_line(self._handle_line)
        self.transport.on_close(self._handle_closed)
        self.transport.on_error(self._handle_transport_error)

    @property
    def ping_interval_ms(self) -> int:
        return self._ping_interval_ms

    @property
    def ping_timeout_ms(self) -> int:
        return self._ping_timeout_ms

    async def connect(self):
        """
        Open the transport and wait for the remote to answer ping

        The transport is opened only if it is not open already, so
        connect() can be retried after a verification timeout.

        Raises:
            OpenFailedError: transport could not be opened (no ping is sent)
            VerificationTimeoutError: no pong within ping_timeout_ms
            LinkError: a verification is already in progress
        """
        if self.is_connected():
            self.logger.warning("Already connected")
            return

        if self._verifying:
            raise LinkError("Connection verification already in progress")

        if not self.transport.is_open():
            try:
                await self.transport.open()
            except Exception as e:
                self.logger.error(f"Error opening transport: {e}")
                raise OpenFailedError(f"Could not open transport: {e}") from e
            self.logger.info("Transport opened")

        verification = asyncio.get_running_loop().create_future()
        self._verification = verification
        self._verifying = True
        self.heartbeat.arm(self._ping_timeout_ms, self._on_verification_timeout)

        try:
            # Send initial ping and wait for pong before reporting the connection
            await self._send_raw(PING_TOKEN + LINE_TERMINATOR)
            await verification
        except asyncio.CancelledError:
            if self._verification is verification:
                self._abandon_verification()
            raise
        finally:
            if self._verification is verification:
                self._verification = None

    def close(self):
        """Stop the heartbeat and request transport closure"""
        self.logger.info("Closing connection...")
        if self._verifying:
            self._abandon_verification()
        self.heartbeat.stop()
        self.is_alive = False
        self.transport.close()

    async def send_data(self, payload: str) -> Any:
        """
        Send one line of application data

        Args:
            payload: Text to send, without line terminator

        Returns:
            Result of the transport write

        Raises:
            NotConnectedError: link is not verified or transport is closed
        """
        if not self.is_connected():
            self.logger.debug("Device is not connected, cannot send data")
            raise NotConnectedError()

        return await self._send_raw(payload + LINE_TERMINATOR, raise_errors=True)

    def is_connected(self) -> bool:
        """
        Check if the link is usable

        Returns:
            True if the transport is open and the remote answered the last ping
        """
        return self.transport.is_open() and self.is_alive

    def get_state(self) -> ConnectionState:
        """
        Get current connection state

        Returns:
            Current ConnectionState
        """
        if self._verifying:
            return ConnectionState.VERIFYING
        if self._verified and self.is_alive:
            if self.heartbeat.awaiting_pong:
                return ConnectionState.AWAITING_PONG
            return ConnectionState.CONNECTED
        return ConnectionState.DISCONNECTED

    def get_stats(self) -> Dict[str, Any]:
        """Get link statistics"""
        return {
            "state": self.get_state().value,
            "is_alive": self.is_alive,
            "pings_sent": self.heartbeat.pings_sent,
            "pongs_received": self.heartbeat.pongs_received,
            "missed_heartbeats": self.heartbeat.missed,
            "messages_received": self._messages_received,
        }

    # Event callback setters
    def on_disconnect(self, callback: Callable):
        """Add a parameterless callback fired when a verified link closes"""
        self._disconnect_callbacks.append(callback)

    def on_message(self, callback: Callable):
        """Add a callback receiving each non-control line of a verified link"""
        self._message_callbacks.append(callback)

    # Handshake
    def _on_verified(self):
        self._verifying = False
        self.heartbeat.cancel()
        self.is_alive = True
        self._verified = True
        self.heartbeat.start()
        self.logger.info("✅ Connection verified")

        if self._verification is not None and not self._verification.done():
            self._verification.set_result(None)

    def _on_verification_timeout(self):
        self._verifying = False
        self.logger.error(f"No pong within {self._ping_timeout_ms}ms of initial ping")

        if self._verification is not None and not self._verification.done():
            self._verification.set_exception(VerificationTimeoutError())

    def _abandon_verification(self):
        self._verifying = False
        self.heartbeat.cancel()
        self.logger.debug("Verification abandoned")

    # Heartbeat
    def _send_ping(self):
        self._send_in_background(PING_TOKEN + LINE_TERMINATOR)

    def _on_heartbeat_missed(self):
        self.logger.warning("Heartbeat missed, closing transport")
        self.is_alive = False
        self.transport.close()

    # Transport events
    def _handle_line(self, line: str):
        """Single dispatch point for every received line"""
        self.logger.debug(f"Received data from device: {line!r}")

        if line == PONG_TOKEN:
            if self._verifying:
                self._on_verified()
            elif self._verified:
                self.heartbeat.handle_pong()
            return

        if self._verified and line != PING_TOKEN:
            self._messages_received += 1
            for callback in list(self._message_callbacks):
                self._notify(callback, line)

    def _handle_closed(self):
        self.logger.info("Transport connection closed")
        was_verified = self._verified

        self.is_alive = False
        self._verified = False
        # A pending verification still resolves through its own timeout
        if not self._verifying:
            self.heartbeat.stop()

        if was_verified:
            self.logger.warning("Link disconnected")
            for callback in list(self._disconnect_callbacks):
                self._notify(callback)

    def _handle_transport_error(self, error: Exception):
        self.logger.error(f"Transport error event: {error}")

    # Helpers
    async def _send_raw(self, data: str, raise_errors: bool = False) -> Any:
        self.logger.debug(f"Sending data to device: {data!r}")
        try:
            return await self.transport.write(data)
        except Exception as e:
            self.logger.error(f"Error sending data to device: {e}")
            if raise_errors:
                raise
            return None

    def _send_in_background(self, data: str):
        task = asyncio.ensure_future(self._send_raw(data))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    def _notify(self, callback: Callable, *args):
        """Run an observer, scheduling it if it is a coroutine function"""
        try:
            result = callback(*args)
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._background_tasks.add(task)
                task.add_done_callback(self._on_observer_done)
        except Exception as e:
            self.logger.error(f"Callback error: {e}")

    def _on_observer_done(self, task: asyncio.Task):
        self._background_tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            self.logger.error(f"Callback error: {task.exception()}")
