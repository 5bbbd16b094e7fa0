"""Countdown shown on discount popups until their expiry."""

from typing import Callable

from chat_widget.constants import (
    COUNTDOWN_TICK_SECONDS,
    COUNTDOWN_URGENT_THRESHOLD_SECONDS,
)
from chat_widget.services.scheduler import Clock, Scheduler, TimerHandle


def format_remaining(remaining_ms: int) -> str:
    """Format milliseconds as ``M:SS`` (minutes are not zero padded)."""
    remaining_ms = max(0, remaining_ms)
    minutes = remaining_ms // 60000
    seconds = (remaining_ms % 60000) // 1000
    return f"{minutes}:{seconds:02d}"


class PopupCountdown:
    """Ticks once per interval until ``expiry_ms`` and then reports expiry once."""

    def __init__(
        self,
        expiry_ms: int,
        clock: Clock,
        scheduler: Scheduler,
        on_expired: Callable[[], None],
        on_tick: Callable[["PopupCountdown"], None] | None = None,
        tick_seconds: float = COUNTDOWN_TICK_SECONDS,
        urgent_threshold_seconds: int = COUNTDOWN_URGENT_THRESHOLD_SECONDS,
    ):
        self.expiry_ms = expiry_ms
        self._clock = clock
        self._scheduler = scheduler
        self._on_expired = on_expired
        self._on_tick = on_tick
        self._tick_seconds = tick_seconds
        self._urgent_ms = urgent_threshold_seconds * 1000
        self._handle: TimerHandle | None = None
        self.running = False
        self.expired = False

    def remaining_ms(self) -> int:
        return max(0, self.expiry_ms - self._clock.now_ms())

    def format(self) -> str:
        return format_remaining(self.remaining_ms())

    @property
    def is_urgent(self) -> bool:
        return self.remaining_ms() < self._urgent_ms

    def start(self) -> None:
        if self.running or self.expired:
            return
        self.running = True
        self.tick()

    def stop(self) -> None:
        self.running = False
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def tick(self) -> bool:
        """Refresh once. Returns False when the countdown has finished."""
        if not self.running:
            return False
        if self.remaining_ms() <= 0:
            self.stop()
            self.expired = True
            self._on_expired()
            return False
        if self._on_tick is not None:
            self._on_tick(self)
        # Land the final tick on the expiry itself
        delay = min(self._tick_seconds, self.remaining_ms() / 1000)
        self._handle = self._scheduler.call_later(delay, self.tick)
        return True
