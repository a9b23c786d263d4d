"""Shared fixtures: a manual clock and an in-memory transport."""

import itertools

import pytest

from linkwatch.connection.serial_device import SerialDevice
from linkwatch.connection.transport import Transport


class FakeTimerHandle:
    def __init__(self, when_ms, seq, callback, args):
        self.when_ms = when_ms
        self.seq = seq
        self.callback = callback
        self.args = args
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class FakeClock:
    """Scheduler with asyncio's call_later() signature, advanced by tick()."""

    def __init__(self):
        self.now_ms = 0
        self._timers = []
        self._seq = itertools.count()

    def call_later(self, delay, callback, *args):
        handle = FakeTimerHandle(self.now_ms + round(delay * 1000), next(self._seq), callback, args)
        self._timers.append(handle)
        return handle

    @property
    def pending(self):
        return [t for t in self._timers if not t.cancelled]

    def tick(self, ms):
        target = self.now_ms + ms
        while True:
            due = [t for t in self.pending if t.when_ms <= target]
            if not due:
                break
            timer = min(due, key=lambda t: (t.when_ms, t.seq))
            self._timers.remove(timer)
            self.now_ms = timer.when_ms
            timer.callback(*timer.args)
        self.now_ms = target


class FakeTransport(Transport):
    """Records writes; close() reports closure synchronously."""

    def __init__(self):
        super().__init__()
        self.opened = False
        self.open_calls = 0
        self.open_error = None
        self.write_error = None
        self.write_result = None
        self.write_gate = None
        self.writes = []
        self.close_calls = 0

    async def open(self):
        self.open_calls += 1
        if self.open_error is not None:
            raise self.open_error
        self.opened = True
        self._mark_opened()

    async def write(self, data):
        self.writes.append(data)
        if self.write_gate is not None:
            await self.write_gate.wait()
        if self.write_error is not None:
            raise self.write_error
        return self.write_result

    def close(self):
        self.close_calls += 1
        if self.opened:
            self.opened = False
            self._emit_close()

    def is_open(self):
        return self.opened

    # Test helpers
    def receive(self, line):
        self._emit_line(line)

    def drop(self):
        """Simulate the remote side closing the port"""
        self.close()

    @property
    def pings(self):
        return self.writes.count("ping\n")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def device(transport, clock):
    return SerialDevice(transport, ping_interval_ms=30000, ping_timeout_ms=10000, scheduler=clock)
