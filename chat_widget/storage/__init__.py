"""Key-value storage backends and the widget state repository."""

from chat_widget.storage.client import (
    JsonFileStore,
    KeyValueStore,
    MemoryStore,
    SafeStore,
    SupabaseStore,
    create_store,
)
from chat_widget.storage.repository import (
    WidgetStorage,
    get_widget_storage,
    reset_widget_storage,
)

__all__ = [
    "JsonFileStore",
    "KeyValueStore",
    "MemoryStore",
    "SafeStore",
    "SupabaseStore",
    "create_store",
    "WidgetStorage",
    "get_widget_storage",
    "reset_widget_storage",
]
