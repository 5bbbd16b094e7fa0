"""Listener registry for page events dispatched by the host."""

from collections import defaultdict
from typing import Callable

import logfire

from chat_widget.models.page_events import PageEvent

Listener = Callable[[PageEvent], None]


class PageEventBus:
    """addEventListener / removeEventListener for the widget's page.

    A listener that raises is logged and does not stop the remaining
    listeners from receiving the event.
    """

    def __init__(self):
        self._listeners: dict[str, list[Listener]] = defaultdict(list)

    def add_listener(self, kind: str, listener: Listener) -> None:
        if listener not in self._listeners[kind]:
            self._listeners[kind].append(listener)

    def remove_listener(self, kind: str, listener: Listener) -> None:
        listeners = self._listeners.get(kind)
        if listeners and listener in listeners:
            listeners.remove(listener)

    def listener_count(self, kind: str | None = None) -> int:
        if kind is not None:
            return len(self._listeners.get(kind, []))
        return sum(len(v) for v in self._listeners.values())

    def dispatch(self, event: PageEvent) -> None:
        # Copy: listeners may unregister themselves while handling the event
        for listener in list(self._listeners.get(event.kind, [])):
            try:
                listener(event)
            except Exception as e:
                logfire.error(
                    "Page event listener failed",
                    kind=event.kind,
                    error=str(e),
                    error_type=type(e).__name__,
                )
