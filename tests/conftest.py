"""Shared pytest fixtures and configuration.

Fixture Categories:
1. Infrastructure: mock_settings, mock_logfire, test_client
2. Storage: memory_store, widget_storage, failing_store, mock_supabase_client
3. Time: scheduler (a VirtualScheduler doubling as the clock)
4. Sample data: fingerprint, new_session, return_session, popup factories
"""

import os
from unittest.mock import MagicMock, Mock

import pytest

os.environ.setdefault("LOGFIRE_IGNORE_NO_CONFIG", "1")

from chat_widget.models.session_models import BrowserFingerprint, Session
from chat_widget.services.scheduler import VirtualScheduler
from chat_widget.storage.client import MemoryStore, SafeStore
from chat_widget.storage.repository import WidgetStorage, reset_widget_storage

# 2023-11-14T22:13:20Z, a fixed load time for simulated clocks
T0_MS = 1_700_000_000_000

CHROME_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

# Modules that log through a module-level ``import logfire``
_LOGFIRE_MODULES = [
    "chat_widget.logging_config",
    "chat_widget.main",
    "chat_widget.storage.client",
    "chat_widget.storage.repository",
    "chat_widget.services.identity",
    "chat_widget.services.page_events",
    "chat_widget.services.popup_engine",
    "chat_widget.services.domain_guard",
    "chat_widget.services.agent_config_service",
    "chat_widget.services.widget",
]

# Modules that bind get_settings at import time
_SETTINGS_MODULES = [
    "chat_widget.config",
    "chat_widget.main",
    "chat_widget.logging_config",
    "chat_widget.api.widget",
    "chat_widget.storage.client",
    "chat_widget.storage.repository",
    "chat_widget.services.agent_config_service",
    "chat_widget.services.widget",
    "chat_widget.cli.widget_cli",
]


# =============================================================================
# Infrastructure
# =============================================================================


@pytest.fixture
def mock_logfire(monkeypatch):
    """
    Mock Logfire for testing without actual logging.

    Request it to silence logging or to assert on log calls.
    """
    from contextlib import contextmanager

    @contextmanager
    def mock_span(*args, **kwargs):
        yield {}

    mock_logfire_module = MagicMock()
    mock_logfire_module.debug = Mock()
    mock_logfire_module.info = Mock()
    mock_logfire_module.warning = Mock()
    mock_logfire_module.error = Mock()
    mock_logfire_module.span = mock_span
    mock_logfire_module.configure = Mock()
    mock_logfire_module.instrument_fastapi = Mock()
    mock_logfire_module.instrument_pydantic = Mock()

    for module in _LOGFIRE_MODULES:
        monkeypatch.setattr(f"{module}.logfire", mock_logfire_module)

    return mock_logfire_module


@pytest.fixture
def mock_settings(monkeypatch):
    """Mock application settings with the in-memory backend."""
    from chat_widget.config import Settings

    settings = Settings(
        env="local",
        logfire_token=None,
        sentry_dsn=None,
        storage_backend="memory",
        agent_config_url="https://config.test/getAgentConfig",
    )

    for module in _SETTINGS_MODULES:
        monkeypatch.setattr(f"{module}.get_settings", lambda: settings)
    return settings


@pytest.fixture
def reset_storage():
    """Reset the global storage singleton around a test."""
    reset_widget_storage()
    yield
    reset_widget_storage()


@pytest.fixture
def test_client(mock_settings, mock_logfire, reset_storage, widget_storage):
    """FastAPI TestClient wired to the in-memory widget storage."""
    from fastapi.testclient import TestClient

    from chat_widget.main import app
    from chat_widget.storage.repository import get_widget_storage

    app.dependency_overrides[get_widget_storage] = lambda: widget_storage
    yield TestClient(app)
    app.dependency_overrides.clear()


# =============================================================================
# Storage
# =============================================================================


@pytest.fixture
def memory_store():
    """Raw in-memory backend, inspectable through snapshot()."""
    return MemoryStore()


@pytest.fixture
def widget_storage(memory_store):
    """Widget storage over the in-memory backend."""
    return WidgetStorage(SafeStore(memory_store))


class FailingStore:
    """Backend whose every access raises, like localStorage in private mode."""

    def __init__(self):
        self.calls = 0

    def get(self, key):
        self.calls += 1
        raise OSError("storage disabled")

    def set(self, key, value):
        self.calls += 1
        raise OSError("storage disabled")

    def remove(self, key):
        self.calls += 1
        raise OSError("storage disabled")


@pytest.fixture
def failing_store():
    return FailingStore()


@pytest.fixture
def mock_supabase_client():
    """Mock Supabase client with table().select().eq().execute() chains."""
    client = MagicMock()
    table_mock = MagicMock()

    execute_mock = MagicMock()
    execute_mock.data = []
    table_mock.select.return_value.eq.return_value.execute.return_value = execute_mock
    table_mock.upsert.return_value.execute.return_value = MagicMock(data=[])
    table_mock.delete.return_value.eq.return_value.execute.return_value = MagicMock(
        data=[]
    )

    client.table.return_value = table_mock
    return client


# =============================================================================
# Time
# =============================================================================


@pytest.fixture
def scheduler():
    """Simulated clock and scheduler starting at T0_MS."""
    return VirtualScheduler(start_ms=T0_MS)


# =============================================================================
# Sample Data
# =============================================================================


@pytest.fixture
def fingerprint():
    """Desktop Chrome visitor on shop.example.com."""
    return BrowserFingerprint(
        hostname="shop.example.com",
        user_agent=CHROME_UA,
        language="en-US",
        screen_width=1920,
        screen_height=1080,
        timezone="Europe/Berlin",
        pathname="/pricing",
        viewport_width=1440,
    )


@pytest.fixture
def new_session():
    return Session(
        agent_id="agent-1",
        anonymous_id="anon_test",
        session_id="anon_test",
        is_return_user=False,
    )


@pytest.fixture
def return_session():
    return Session(
        agent_id="agent-1",
        anonymous_id="anon_test",
        session_id="anon_test",
        is_return_user=True,
    )


def make_popup(popup_id="p1", trigger="first_visit", value=None, content="discount", **extra):
    """Wire-format popup entry as found in agent configuration."""
    popup = {"id": popup_id, "trigger": trigger, "contentType": content}
    if value is not None:
        popup["triggerValue"] = value
    popup.update(extra)
    return popup


@pytest.fixture
def popup_factory():
    return make_popup
