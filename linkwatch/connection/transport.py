# Transport - Line-oriented byte channel
# Event plumbing shared by concrete transports

"""
Transport Module

Responsibilities:
- Define the open/write/close/is_open surface a link runs over
- Register line, close and error listeners
- Deliver one-shot and persistent line events in arrival order
- Guarantee the closed event fires once per physical closure

Concrete transports implement the I/O and call the _emit_* helpers.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, List

from ..utils.logger import setup_logger

class Transport(ABC):
    """
    Base class for a half-duplex, newline-framed text channel

    Lines are delivered decoded and newline-stripped. One-shot listeners
    registered with once_line() see the next line before the persistent
    listeners do, and are then dropped.
    """

    def __init__(self):
        self._line_listeners: List[Callable[[str], Any]] = []
        self._once_line_listeners: List[Callable[[str], Any]] = []
        self._close_listeners: List[Callable[[], Any]] = []
        self._error_listeners: List[Callable[[Exception], Any]] = []
        self._closed_emitted = True

        self.logger = setup_logger("Transport")

    @abstractmethod
    async def open(self):
        """Open the channel, raising on failure"""

    @abstractmethod
    async def write(self, data: str) -> Any:
        """Write already-terminated text, raising on failure"""

    @abstractmethod
    def close(self):
        """Request closure; completion is reported through on_close listeners"""

    @abstractmethod
    def is_open(self) -> bool:
        """Current physical open state"""

    # Listener registration
    def on_line(self, callback: Callable[[str], Any]):
        """Call callback for every received line"""
        self._line_listeners.append(callback)

    def once_line(self, callback: Callable[[str], Any]):
        """Call callback for the next received line only"""
        self._once_line_listeners.append(callback)

    def on_close(self, callback: Callable[[], Any]):
        """Call callback each time the channel closes"""
        self._close_listeners.append(callback)

    def on_error(self, callback: Callable[[Exception], Any]):
        """Call callback for asynchronous errors not tied to an operation"""
        self._error_listeners.append(callback)

    def remove_listeners(self):
        """Drop every registered listener"""
        self._line_listeners.clear()
        self._once_line_listeners.clear()
        self._close_listeners.clear()
        self._error_listeners.clear()

    # Event emission, for subclasses
    def _mark_opened(self):
        """Arm the closed event for the next closure"""
        self._closed_emitted = False

    def _emit_line(self, line: str):
        once, self._once_line_listeners = self._once_line_listeners, []
        for callback in once + list(self._line_listeners):
            self._dispatch(callback, line)

    def _emit_close(self):
        if self._closed_emitted:
            return
        self._closed_emitted = True
        for callback in list(self._close_listeners):
            self._dispatch(callback)

    def _emit_error(self, error: Exception):
        for callback in list(self._error_listeners):
            self._dispatch(callback, error)

    def _dispatch(self, callback: Callable, *args):
        try:
            callback(*args)
        except Exception as e:
            self.logger.error(f"Transport listener error: {e}")
