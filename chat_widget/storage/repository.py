"""Typed access to persisted visit, session and popup state."""

import logfire

from chat_widget.config import get_settings
from chat_widget.constants import DEFAULT_STORAGE_KEY_PREFIX, LEGACY_DISCOUNT_KEY_STEMS
from chat_widget.errors import MalformedPersistedValue
from chat_widget.models.popup_models import PopupDisplayState
from chat_widget.models.session_models import VisitRecord
from chat_widget.storage.client import KeyValueStore, create_store


class WidgetStorage:
    """
    Repository over a key-value store using the widget's key scheme.

    Keys (all prefixed, ``orchis_`` by default):
        last_visit_<agent_id>                 epoch millis of the visit anchor
        session_<anonymous_id>                persisted session id
        popup_shown_<popup_id>_<anon>         "true" once displayed
        popup_expiry_<popup_id>_<anon>        epoch millis, countdown popups only
        discount_shown_<anon>                 return-user discount (legacy)
        discount_expiry_<anon>
        first_discount_shown_<anon>           first-time discount (legacy)
        first_discount_expiry_<anon>
        pageviews_<anon>                      page load counter

    Malformed numeric values are read as absent. A display state whose expiry
    cannot be parsed is read as absent as a whole.
    """

    def __init__(self, store: KeyValueStore, prefix: str = DEFAULT_STORAGE_KEY_PREFIX):
        self.store = store
        self.prefix = prefix

    def _key(self, name: str) -> str:
        return f"{self.prefix}{name}"

    def _parse_int(self, key: str, raw: str) -> int:
        try:
            return int(float(raw))
        except (TypeError, ValueError, OverflowError):
            raise MalformedPersistedValue(key, raw) from None

    def _get_int(self, key: str) -> int | None:
        return self._read_int(key, self.store.get(key))

    def _read_int(self, key: str, raw: str | None) -> int | None:
        if raw is None or raw == "":
            return None
        try:
            return self._parse_int(key, raw)
        except MalformedPersistedValue as e:
            logfire.warning(
                "Ignoring malformed persisted value",
                key=e.key,
                value=e.value[:50],
            )
            return None

    # =========================================================================
    # Visits and sessions
    # =========================================================================

    def get_last_visit(self, agent_id: str) -> VisitRecord | None:
        timestamp = self._get_int(self._key(f"last_visit_{agent_id}"))
        if timestamp is None:
            return None
        return VisitRecord(agent_id=agent_id, last_visit_timestamp=timestamp)

    def set_last_visit(self, agent_id: str, timestamp_ms: int) -> None:
        self.store.set(self._key(f"last_visit_{agent_id}"), str(timestamp_ms))

    def get_session_id(self, anonymous_id: str) -> str | None:
        value = self.store.get(self._key(f"session_{anonymous_id}"))
        return value or None

    def set_session_id(self, anonymous_id: str, session_id: str) -> None:
        self.store.set(self._key(f"session_{anonymous_id}"), session_id)

    def increment_page_views(self, anonymous_id: str) -> int:
        key = self._key(f"pageviews_{anonymous_id}")
        count = (self._get_int(key) or 0) + 1
        self.store.set(key, str(count))
        return count

    # =========================================================================
    # Display state (popups and legacy discounts share the same rules)
    # =========================================================================

    def _popup_keys(self, popup_id: str, anonymous_id: str) -> tuple[str, str]:
        return (
            self._key(f"popup_shown_{popup_id}_{anonymous_id}"),
            self._key(f"popup_expiry_{popup_id}_{anonymous_id}"),
        )

    def _discount_keys(self, kind: str, anonymous_id: str) -> tuple[str, str]:
        stem = LEGACY_DISCOUNT_KEY_STEMS[kind]
        return (
            self._key(f"{stem}_shown_{anonymous_id}"),
            self._key(f"{stem}_expiry_{anonymous_id}"),
        )

    def _read_state(self, keys: tuple[str, str]) -> PopupDisplayState:
        shown_key, expiry_key = keys
        raw_expiry = self.store.get(expiry_key)
        expiry = self._read_int(expiry_key, raw_expiry)
        if expiry is None and raw_expiry:
            return PopupDisplayState()
        return PopupDisplayState(
            shown=bool(self.store.get(shown_key)),
            expiry_timestamp=expiry,
        )

    def _write_shown(self, keys: tuple[str, str], expiry_ms: int | None) -> None:
        shown_key, expiry_key = keys
        self.store.set(shown_key, "true")
        if expiry_ms is None:
            self.store.remove(expiry_key)
        else:
            self.store.set(expiry_key, str(expiry_ms))

    def _clear(self, keys: tuple[str, str]) -> None:
        for key in keys:
            self.store.remove(key)

    def get_popup_state(self, popup_id: str, anonymous_id: str) -> PopupDisplayState:
        return self._read_state(self._popup_keys(popup_id, anonymous_id))

    def mark_popup_shown(
        self, popup_id: str, anonymous_id: str, expiry_ms: int | None = None
    ) -> None:
        self._write_shown(self._popup_keys(popup_id, anonymous_id), expiry_ms)

    def dismiss_popup(self, popup_id: str, anonymous_id: str) -> None:
        """Keep the shown flag but drop the expiry: never show again."""
        shown_key, expiry_key = self._popup_keys(popup_id, anonymous_id)
        self.store.set(shown_key, "true")
        self.store.remove(expiry_key)

    def clear_popup_state(self, popup_id: str, anonymous_id: str) -> None:
        self._clear(self._popup_keys(popup_id, anonymous_id))

    def get_discount_state(self, kind: str, anonymous_id: str) -> PopupDisplayState:
        return self._read_state(self._discount_keys(kind, anonymous_id))

    def mark_discount_shown(
        self, kind: str, anonymous_id: str, expiry_ms: int | None
    ) -> None:
        self._write_shown(self._discount_keys(kind, anonymous_id), expiry_ms)

    def dismiss_discount(self, kind: str, anonymous_id: str) -> None:
        shown_key, expiry_key = self._discount_keys(kind, anonymous_id)
        self.store.set(shown_key, "true")
        self.store.remove(expiry_key)

    def clear_discount_state(self, kind: str, anonymous_id: str) -> None:
        self._clear(self._discount_keys(kind, anonymous_id))


# Global repository instance
_widget_storage: WidgetStorage | None = None


def get_widget_storage() -> WidgetStorage:
    """Get or create the global widget storage for the configured backend."""
    global _widget_storage
    if _widget_storage is None:
        settings = get_settings()
        _widget_storage = WidgetStorage(
            create_store(settings), prefix=settings.storage_key_prefix
        )
    return _widget_storage


def reset_widget_storage() -> None:
    """Reset the global storage (primarily for testing)."""
    global _widget_storage
    _widget_storage = None
