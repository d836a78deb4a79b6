"""Timer capability injected into the coordinator."""

import asyncio
from typing import Callable, Protocol


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Schedules one-shot and repeating callbacks on the event loop."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle: ...

    def call_repeating(self, interval: float, callback: Callable[[], None]) -> TimerHandle: ...


class _RepeatingHandle:
    """Re-arms ``loop.call_later`` after every run until canceled."""

    def __init__(self, loop: asyncio.AbstractEventLoop, interval: float, callback: Callable[[], None]):
        self._loop = loop
        self._interval = interval
        self._callback = callback
        self._cancelled = False
        self._handle = loop.call_later(interval, self._run)

    def _run(self) -> None:
        if self._cancelled:
            return
        self._handle = self._loop.call_later(self._interval, self._run)
        self._callback()

    def cancel(self) -> None:
        self._cancelled = True
        self._handle.cancel()


class AsyncioScheduler:
    """Scheduler backed by the running asyncio loop."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        return asyncio.get_running_loop().call_later(delay, callback)

    def call_repeating(self, interval: float, callback: Callable[[], None]) -> TimerHandle:
        return _RepeatingHandle(asyncio.get_running_loop(), interval, callback)
