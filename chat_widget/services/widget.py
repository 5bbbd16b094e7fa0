"""Host-side widget: owns the mutable state and wires the core together.

Identity resolution and popup decisions live in their own services; this
class holds the single mutable widget state, applies their effects and is
the only place a popup becomes "the one on screen".
"""

from dataclasses import dataclass, field
from typing import Awaitable, Callable

import logfire

from chat_widget.config import Settings, get_settings
from chat_widget.logging_config import mask_pii
from chat_widget.models.agent_config_models import AgentWidgetConfig
from chat_widget.models.page_events import PageEvent
from chat_widget.models.popup_models import PopupDecision, PopupDefinition
from chat_widget.models.session_models import BrowserFingerprint, Session, VisitorProfile
from chat_widget.services.agent_config_service import fetch_agent_config
from chat_widget.services.countdown import PopupCountdown
from chat_widget.services.domain_guard import is_valid_domain
from chat_widget.services.identity import SessionIdentityResolver
from chat_widget.services.page_events import PageEventBus
from chat_widget.services.popup_engine import PopupTriggerEngine
from chat_widget.services.scheduler import Clock, Scheduler
from chat_widget.services.visitor_profile import build_visitor_profile
from chat_widget.storage.repository import WidgetStorage

ConfigFetcher = Callable[[str], Awaitable[AgentWidgetConfig | None]]


@dataclass
class WidgetState:
    """Everything the widget UI renders from."""

    enabled: bool = False
    config: AgentWidgetConfig = field(default_factory=AgentWidgetConfig)
    session: Session | None = None
    profile: VisitorProfile | None = None
    current_popup: PopupDefinition | None = None
    countdown_text: str | None = None
    countdown_urgent: bool = False
    decisions: list[PopupDecision] = field(default_factory=list)
    displayed: list[str] = field(default_factory=list)


class ChatWidget:
    """One embedded widget instance on one page load."""

    def __init__(
        self,
        agent_id: str,
        fingerprint: BrowserFingerprint,
        storage: WidgetStorage,
        scheduler: Scheduler,
        clock: Clock,
        allowed_domains: list[str] | None = None,
        events: PageEventBus | None = None,
        settings: Settings | None = None,
        on_display: Callable[[PopupDefinition], None] | None = None,
    ):
        self.agent_id = agent_id
        self._on_display = on_display
        self.fingerprint = fingerprint
        self.settings = settings or get_settings()
        self.events = events or PageEventBus()
        self.state = WidgetState()
        self.storage = storage

        if not is_valid_domain(allowed_domains, fingerprint.hostname):
            # Disallowed host: no identity, no popups, nothing persisted
            self.resolver = None
            self.engine = None
            return

        self.resolver = SessionIdentityResolver(
            fingerprint,
            storage,
            clock=clock,
            return_window_seconds=self.settings.return_visit_window_seconds,
        )
        # The resolver may have wrapped the store; share its storage
        self.storage = self.resolver.storage
        self.engine = PopupTriggerEngine(
            storage=self.storage,
            scheduler=scheduler,
            clock=clock,
            events=self.events,
            display_delay_seconds=self.settings.popup_display_delay_seconds,
            expiry_seconds=self.settings.popup_expiry_seconds,
            exit_intent_threshold_px=self.settings.exit_intent_threshold_px,
            on_countdown_tick=self._on_countdown_tick,
            on_popup_expired=self._on_popup_expired,
        )

        identity = self.resolver.resolve_identity(agent_id)
        session = Session.from_identity(agent_id, identity)
        total_visits = self.storage.increment_page_views(identity.anonymous_id)
        self.state.enabled = True
        self.state.session = session
        self.state.profile = build_visitor_profile(fingerprint, session, total_visits)

        logfire.info(
            "Widget initialised",
            agent_id=agent_id,
            anonymous_id=mask_pii(identity.anonymous_id),
            is_return_user=identity.is_return_user,
            total_visits=total_visits,
        )

    async def load(self, fetcher: ConfigFetcher = fetch_agent_config) -> None:
        """Fetch remote configuration, then evaluate popup triggers."""
        if not self.state.enabled:
            return
        config = await fetcher(self.agent_id)
        if config is None:
            logfire.warning(
                "Agent config unavailable, popups disabled", agent_id=self.agent_id
            )
            return
        self.apply_config(config)

    def apply_config(self, config: AgentWidgetConfig) -> list[PopupDecision]:
        if not self.state.enabled or self.engine is None or self.state.session is None:
            return []
        self.state.config = config

        if config.popups:
            decisions = self.engine.evaluate_triggers(
                config.popups, self.state.session, self._display_popup
            )
        else:
            legacy = self.engine.evaluate_legacy_discounts(
                config, self.state.session, self._display_popup
            )
            decisions = [legacy] if legacy is not None else []

        self.state.decisions = decisions
        return decisions

    # =========================================================================
    # Effects
    # =========================================================================

    def _display_popup(self, popup: PopupDefinition) -> None:
        # Only one popup view exists: the most recent call wins
        self.state.current_popup = popup
        self.state.countdown_text = None
        self.state.countdown_urgent = False
        self.state.displayed.append(popup.id)
        if self._on_display is not None:
            self._on_display(popup)

    def _on_countdown_tick(self, popup_id: str, countdown: PopupCountdown) -> None:
        current = self.state.current_popup
        if current is not None and current.id == popup_id:
            self.state.countdown_text = countdown.format()
            self.state.countdown_urgent = countdown.is_urgent

    def _on_popup_expired(self, popup_id: str) -> None:
        current = self.state.current_popup
        if current is not None and current.id == popup_id:
            self.state.current_popup = None
            self.state.countdown_text = None
            self.state.countdown_urgent = False

    def close_popup(self) -> None:
        """Visitor clicked the close button on the popup on screen."""
        current = self.state.current_popup
        if current is None or self.engine is None:
            return
        self.engine.close_popup(current.id, manual=True)
        self.state.current_popup = None
        self.state.countdown_text = None
        self.state.countdown_urgent = False

    def dispatch(self, event: PageEvent) -> None:
        self.events.dispatch(event)

    def teardown(self) -> None:
        if self.engine is not None:
            self.engine.teardown()
