"""Clocks and one-shot timer scheduling for the widget.

The widget only ever needs ``setTimeout``-style timers. ``AsyncioScheduler``
runs them on an event loop; ``VirtualScheduler`` drives them from a simulated
clock so a page visit can be replayed deterministically.
"""

import asyncio
import heapq
import itertools
import time
from dataclasses import dataclass, field
from typing import Callable, Protocol


class Clock(Protocol):
    def now_ms(self) -> int: ...


class SystemClock:
    """Wall clock in epoch milliseconds."""

    def now_ms(self) -> int:
        return int(time.time() * 1000)


class TimerHandle(Protocol):
    def cancel(self) -> None: ...

    @property
    def cancelled(self) -> bool: ...


class Scheduler(Protocol):
    def call_later(self, delay_seconds: float, callback: Callable[[], None]) -> TimerHandle: ...


# =============================================================================
# asyncio
# =============================================================================


class _AsyncioTimer:
    def __init__(self, handle: asyncio.TimerHandle):
        self._handle = handle

    def cancel(self) -> None:
        self._handle.cancel()

    @property
    def cancelled(self) -> bool:
        return self._handle.cancelled()


class AsyncioScheduler:
    """Schedule callbacks on an asyncio event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None):
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        return self._loop or asyncio.get_running_loop()

    def call_later(self, delay_seconds: float, callback: Callable[[], None]) -> _AsyncioTimer:
        return _AsyncioTimer(self.loop.call_later(max(0.0, delay_seconds), callback))


# =============================================================================
# Simulated time
# =============================================================================


@dataclass(order=True)
class VirtualTimer:
    due_ms: int
    seq: int
    callback: Callable[[], None] = field(compare=False)
    _cancelled: bool = field(default=False, compare=False)

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class VirtualScheduler:
    """Deterministic clock and scheduler.

    Time only moves through ``advance``. Timers fire in due order, with the
    clock set to each timer's due time while its callback runs; timers that
    callbacks schedule within the advanced window fire in the same call.
    """

    def __init__(self, start_ms: int = 0):
        self._now_ms = start_ms
        self._timers: list[VirtualTimer] = []
        self._seq = itertools.count()

    def now_ms(self) -> int:
        return self._now_ms

    def call_later(self, delay_seconds: float, callback: Callable[[], None]) -> VirtualTimer:
        due = self._now_ms + int(round(max(0.0, delay_seconds) * 1000))
        timer = VirtualTimer(due_ms=due, seq=next(self._seq), callback=callback)
        heapq.heappush(self._timers, timer)
        return timer

    @property
    def pending(self) -> int:
        return sum(1 for t in self._timers if not t.cancelled)

    def advance(self, seconds: float) -> None:
        target = self._now_ms + int(round(seconds * 1000))
        while self._timers and self._timers[0].due_ms <= target:
            timer = heapq.heappop(self._timers)
            if timer.cancelled:
                continue
            self._now_ms = max(self._now_ms, timer.due_ms)
            timer.callback()
        self._now_ms = target

    def run_until_idle(self, limit_seconds: float = 24 * 60 * 60) -> None:
        """Advance until no timers remain, bounded by ``limit_seconds``."""
        deadline = self._now_ms + int(limit_seconds * 1000)
        while self._timers:
            timer = self._timers[0]
            if timer.cancelled:
                heapq.heappop(self._timers)
                continue
            if timer.due_ms > deadline:
                break
            self.advance((timer.due_ms - self._now_ms) / 1000)
