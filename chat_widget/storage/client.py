"""Key-value store backends for persisted widget state.

Every backend speaks the same small ``get``/``set``/``remove`` protocol as the
browser's ``localStorage``: string keys, string values. ``SafeStore`` wraps a
backend so that an inaccessible store degrades to memory instead of raising.
"""

import json
from pathlib import Path
from threading import Lock
from typing import Protocol

import logfire
from supabase import Client, create_client

from chat_widget.config import Settings, get_settings
from chat_widget.constants import SUPABASE_STORAGE_TABLE
from chat_widget.errors import StorageUnavailable


class KeyValueStore(Protocol):
    """Minimal string key-value protocol."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...


class MemoryStore:
    """Process-local store. Also the fallback when persistence is unavailable."""

    def __init__(self, initial: dict[str, str] | None = None):
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def snapshot(self) -> dict[str, str]:
        return dict(self._data)


class JsonFileStore:
    """Store persisted as a single JSON object on disk.

    The file is re-read on every access so that several processes (e.g. two
    CLI runs) observe each other's writes, like tabs sharing localStorage.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._lock = Lock()

    def _load(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        raw = self.path.read_text(encoding="utf-8")
        if not raw.strip():
            return {}
        data = json.loads(raw)
        if not isinstance(data, dict):
            raise ValueError(f"{self.path} does not contain a JSON object")
        return {str(k): str(v) for k, v in data.items()}

    def _dump(self, data: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, indent=2, sort_keys=True), encoding="utf-8")

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            data = self._load()
            data[key] = value
            self._dump(data)

    def remove(self, key: str) -> None:
        with self._lock:
            data = self._load()
            if key in data:
                del data[key]
                self._dump(data)


class SupabaseStore:
    """Store backed by a ``widget_storage(key text primary key, value text)`` table."""

    def __init__(self, client: Client, table: str = SUPABASE_STORAGE_TABLE):
        self._client = client
        self._table = table

    def get(self, key: str) -> str | None:
        result = (
            self._client.table(self._table).select("value").eq("key", key).execute()
        )
        if not result.data:
            return None
        return result.data[0].get("value")

    def set(self, key: str, value: str) -> None:
        self._client.table(self._table).upsert({"key": key, "value": value}).execute()

    def remove(self, key: str) -> None:
        self._client.table(self._table).delete().eq("key", key).execute()


class SafeStore:
    """Wrap a backend so failures disable persistence instead of raising.

    The first failing access logs a warning and switches every later call
    to an in-memory fallback for the lifetime of this wrapper.
    """

    def __init__(self, inner: KeyValueStore):
        self._inner = inner
        self._fallback = MemoryStore()
        self._degraded = False

    @property
    def degraded(self) -> bool:
        return self._degraded

    def _degrade(self, error: StorageUnavailable) -> None:
        if not self._degraded:
            logfire.warning(
                "Widget storage unavailable, falling back to memory",
                operation=error.operation,
                key=error.key,
                error=str(error.cause),
                backend=type(self._inner).__name__,
            )
        self._degraded = True

    def get(self, key: str) -> str | None:
        if not self._degraded:
            try:
                return self._inner.get(key)
            except Exception as e:
                self._degrade(StorageUnavailable("get", key, e))
        return self._fallback.get(key)

    def set(self, key: str, value: str) -> None:
        if not self._degraded:
            try:
                self._inner.set(key, value)
                return
            except Exception as e:
                self._degrade(StorageUnavailable("set", key, e))
        self._fallback.set(key, value)

    def remove(self, key: str) -> None:
        if not self._degraded:
            try:
                self._inner.remove(key)
                return
            except Exception as e:
                self._degrade(StorageUnavailable("remove", key, e))
        self._fallback.remove(key)


def get_supabase_client(settings: Settings | None = None) -> Client:
    """Get Supabase client instance."""
    settings = settings or get_settings()
    if not settings.supabase_url or not settings.supabase_service_key:
        raise ValueError("SUPABASE_URL and SUPABASE_SERVICE_KEY are required")
    return create_client(settings.supabase_url, settings.supabase_service_key)


def create_store(settings: Settings | None = None) -> SafeStore:
    """Build the configured backend wrapped in a SafeStore."""
    settings = settings or get_settings()

    backend: KeyValueStore
    if settings.storage_backend == "file":
        backend = JsonFileStore(settings.storage_path)
    elif settings.storage_backend == "supabase":
        try:
            backend = SupabaseStore(get_supabase_client(settings))
        except Exception as e:
            logfire.warning(
                "Could not create Supabase storage client, using memory",
                error=str(e),
            )
            backend = MemoryStore()
    else:
        backend = MemoryStore()

    logfire.debug("Widget storage created", backend=type(backend).__name__)
    return SafeStore(backend)
