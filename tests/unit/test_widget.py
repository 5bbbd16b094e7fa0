"""Tests for the ChatWidget host."""

from unittest.mock import AsyncMock

import pytest

from chat_widget.models.agent_config_models import AgentWidgetConfig, LegacyDiscount
from chat_widget.models.page_events import MouseLeaveEvent
from chat_widget.services.widget import ChatWidget
from chat_widget.storage.client import MemoryStore
from chat_widget.storage.repository import WidgetStorage


@pytest.fixture
def make_widget(mock_settings, fingerprint, widget_storage, scheduler):
    def _make(**kwargs):
        params = {
            "agent_id": "agent-1",
            "fingerprint": fingerprint,
            "storage": widget_storage,
            "scheduler": scheduler,
            "clock": scheduler,
        }
        params.update(kwargs)
        return ChatWidget(**params)

    return _make


class TestWidgetInit:
    def test_resolves_session_and_profile(self, make_widget, memory_store):
        widget = make_widget()

        assert widget.state.enabled is True
        assert widget.state.session.agent_id == "agent-1"
        assert widget.state.session.anonymous_id.startswith("anon_")
        assert widget.state.session.is_return_user is False
        assert widget.state.profile.total_visits == 1
        anon = widget.state.session.anonymous_id
        assert memory_store.get(f"orchis_pageviews_{anon}") == "1"

    def test_page_views_accumulate(self, make_widget):
        make_widget()

        assert make_widget().state.profile.total_visits == 2

    def test_disallowed_domain_disables_widget(self, make_widget, memory_store):
        widget = make_widget(allowed_domains=["other.com"])

        assert widget.state.enabled is False
        assert widget.state.session is None
        assert widget.apply_config(AgentWidgetConfig(popups=[{"id": "p"}])) == []
        assert memory_store.snapshot() == {}

    def test_wildcard_domain_allows_subdomain(self, make_widget):
        widget = make_widget(allowed_domains=["*.example.com"])

        assert widget.state.enabled is True

    def test_wraps_unsafe_store(self, make_widget, failing_store):
        widget = make_widget(storage=WidgetStorage(failing_store))

        assert widget.state.enabled is True
        assert widget.storage.store.degraded is True


class TestApplyConfig:
    def test_popup_displayed_with_countdown(self, make_widget, scheduler, popup_factory):
        displayed = []
        widget = make_widget(on_display=lambda p: displayed.append(p.id))

        widget.apply_config(AgentWidgetConfig(popups=[popup_factory("p1")]))
        scheduler.advance(1.5)

        assert displayed == ["p1"]
        assert widget.state.current_popup.id == "p1"
        assert widget.state.countdown_text == "60:00"
        assert widget.state.countdown_urgent is False

    def test_last_display_wins(self, make_widget, scheduler, popup_factory):
        widget = make_widget()

        widget.apply_config(
            AgentWidgetConfig(
                popups=[
                    popup_factory("early", trigger="time_delay", value=2),
                    popup_factory("late", trigger="time_delay", value=3),
                ]
            )
        )
        scheduler.advance(5)

        assert widget.state.displayed == ["early", "late"]
        assert widget.state.current_popup.id == "late"

    def test_exit_intent_via_dispatch(self, make_widget, popup_factory):
        widget = make_widget()
        widget.apply_config(
            AgentWidgetConfig(popups=[popup_factory("leave", trigger="exit_intent")])
        )

        widget.dispatch(MouseLeaveEvent(client_y=3))

        assert widget.state.current_popup.id == "leave"

    def test_legacy_discount_when_no_popups(self, make_widget, scheduler):
        widget = make_widget()

        decisions = widget.apply_config(
            AgentWidgetConfig(first_time_discount=LegacyDiscount(enabled=True, code="HI"))
        )
        scheduler.advance(1.5)

        assert [d.popup_id for d in decisions] == ["first_time_discount"]
        assert widget.state.current_popup.code == "HI"
        assert widget.state.countdown_text == "10:00"

    def test_no_popups_and_no_discounts(self, make_widget):
        assert make_widget().apply_config(AgentWidgetConfig()) == []


class TestCloseAndExpiry:
    def test_manual_close_hides_and_suppresses(
        self, make_widget, scheduler, popup_factory, widget_storage
    ):
        widget = make_widget()
        widget.apply_config(AgentWidgetConfig(popups=[popup_factory("p1")]))
        scheduler.advance(1.5)

        widget.close_popup()

        assert widget.state.current_popup is None
        assert widget.state.countdown_text is None
        anon = widget.state.session.anonymous_id
        assert widget_storage.get_popup_state("p1", anon).is_dismissed()

        # Next page load: never shown again
        next_page = make_widget()
        next_page.apply_config(AgentWidgetConfig(popups=[popup_factory("p1")]))
        scheduler.advance(5)
        assert next_page.state.current_popup is None

    def test_close_without_popup_is_noop(self, make_widget):
        make_widget().close_popup()

    def test_countdown_expiry_hides_popup(
        self, make_widget, scheduler, popup_factory, widget_storage, mock_settings
    ):
        mock_settings.popup_expiry_seconds = 400
        widget = make_widget()
        widget.apply_config(AgentWidgetConfig(popups=[popup_factory("p1")]))

        scheduler.advance(1.5 + 101)
        assert widget.state.countdown_text == "4:59"
        assert widget.state.countdown_urgent is True

        scheduler.advance(300)
        assert widget.state.current_popup is None
        anon = widget.state.session.anonymous_id
        assert widget_storage.get_popup_state("p1", anon).shown is False

    def test_reload_while_active_redisplays(self, make_widget, scheduler, popup_factory):
        first = make_widget()
        first.apply_config(
            AgentWidgetConfig(popups=[popup_factory("leave", trigger="exit_intent")])
        )
        first.dispatch(MouseLeaveEvent(client_y=0))
        first.teardown()

        scheduler.advance(60)
        second = make_widget()
        second.apply_config(
            AgentWidgetConfig(popups=[popup_factory("leave", trigger="exit_intent")])
        )
        scheduler.advance(1.5)

        assert second.state.current_popup.id == "leave"
        assert second.state.countdown_text == "58:58"


class TestLoad:
    @pytest.mark.asyncio
    async def test_load_applies_fetched_config(self, make_widget, scheduler, popup_factory):
        widget = make_widget()
        fetcher = AsyncMock(return_value=AgentWidgetConfig(popups=[popup_factory("p1")]))

        await widget.load(fetcher)
        scheduler.advance(1.5)

        fetcher.assert_awaited_once_with("agent-1")
        assert widget.state.current_popup.id == "p1"

    @pytest.mark.asyncio
    async def test_load_without_config(self, make_widget, mock_logfire):
        widget = make_widget()

        await widget.load(AsyncMock(return_value=None))

        assert widget.state.decisions == []
        mock_logfire.warning.assert_called_once()

    @pytest.mark.asyncio
    async def test_disabled_widget_does_not_fetch(self, make_widget):
        widget = make_widget(allowed_domains=["other.com"])
        fetcher = AsyncMock()

        await widget.load(fetcher)

        fetcher.assert_not_awaited()


def test_teardown_without_engine(make_widget):
    make_widget(allowed_domains=["other.com"]).teardown()


def test_separate_memory_store_is_a_new_visitor(make_widget):
    make_widget()

    fresh = make_widget(storage=WidgetStorage(MemoryStore()))

    assert fresh.state.profile.total_visits == 1
