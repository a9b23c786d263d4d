# Heartbeat Manager - Keep Link Alive
# Ping/pong loop over a single cancellable timer slot

"""
Heartbeat Manager Module

Responsibilities:
- Own the one outstanding timer of a link
- Send ping every interval once started
- Expect pong within the timeout
- Report a missed pong and stop

The loop alternates between two states:

    Idle ──(interval elapsed / send ping)──> Waiting-for-pong
    Waiting-for-pong ──(pong)──> Idle
    Waiting-for-pong ──(timeout)──> stopped, on_missed()

Only one timer is ever outstanding: arming always cancels the previous
one first, so the ping timer and the pong timeout never overlap.
"""

import asyncio
from typing import Any, Callable, Optional

from ..utils.logger import setup_logger

class HeartbeatManager:
    """
    Manages link heartbeat (ping/pong)

    The scheduler is anything with asyncio's call_later() signature; it
    defaults to the running event loop.
    """

    def __init__(
        self,
        send_ping: Callable[[], Any],
        on_missed: Callable[[], Any],
        interval_ms: int = 30000,
        timeout_ms: int = 10000,
        scheduler=None
    ):
        """
        Initialize heartbeat manager

        Args:
            send_ping: Called to emit one challenge
            on_missed: Called when a pong does not arrive in time
            interval_ms: Delay between a pong and the next ping
            timeout_ms: Time allowed for a pong after each ping
            scheduler: Object providing call_later(); defaults to running loop
        """
        self.send_ping = send_ping
        self.on_missed = on_missed
        self.interval_ms = interval_ms
        self.timeout_ms = timeout_ms
        self._scheduler = scheduler

        self.is_running = False
        self._awaiting_pong = False
        self._handle: Optional[asyncio.TimerHandle] = None

        # Statistics
        self.pings_sent = 0
        self.pongs_received = 0
        self.missed = 0

        self.logger = setup_logger("HeartbeatManager")

    @property
    def pending(self) -> bool:
        """True while a timer is outstanding"""
        return self._handle is not None

    @property
    def awaiting_pong(self) -> bool:
        return self._awaiting_pong

    def arm(self, delay_ms: int, callback: Callable[[], Any]):
        """
        Replace the outstanding timer with a new one

        Args:
            delay_ms: Delay in milliseconds, relative to now
            callback: Called with no arguments when the timer fires
        """
        self.cancel()
        scheduler = self._scheduler or asyncio.get_running_loop()
        self._handle = scheduler.call_later(delay_ms / 1000, self._fire, callback)

    def cancel(self):
        """Cancel the outstanding timer, if any"""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def start(self):
        """Enter Idle: schedule the next ping"""
        self.is_running = True
        self._awaiting_pong = False
        self.arm(self.interval_ms, self._send_ping)

    def stop(self):
        """Stop the loop and cancel the outstanding timer"""
        self.is_running = False
        self._awaiting_pong = False
        self.cancel()

    def handle_pong(self) -> bool:
        """
        Handle pong response

        Returns:
            True if the pong answered an outstanding ping, False if ignored
        """
        if not (self.is_running and self._awaiting_pong):
            self.logger.debug("Ignoring pong with no outstanding ping")
            return False

        self.pongs_received += 1
        self.logger.debug("Received pong")
        self.start()
        return True

    def _fire(self, callback: Callable[[], Any]):
        self._handle = None
        callback()

    def _send_ping(self):
        self._awaiting_pong = True
        self.arm(self.timeout_ms, self._on_pong_timeout)
        self.pings_sent += 1
        self.logger.debug("Sending ping")
        self.send_ping()

    def _on_pong_timeout(self):
        self.is_running = False
        self._awaiting_pong = False
        self.missed += 1
        self.logger.warning(f"No pong within {self.timeout_ms}ms")
        self.on_missed()
