"""Popup trigger evaluation and display lifecycle.

Decisions are made by ``plan_popup``, a pure function of the popup, its
persisted display state, the session and the current time. The engine
applies decisions: it clears expired state, arms listeners and timers, and
calls the host's display callback when a trigger fires.

Lifecycle per popup and visitor::

    unevaluated -> suppressed              (shown, no expiry: closed by visitor)
    unevaluated -> active                  (shown, expiry in future: redisplay)
    unevaluated -> armed                   (never shown, or expiry passed)
    armed       -> active                  (trigger fired)
    active      -> suppressed | armed      (manual close | countdown expired)
"""

from dataclasses import dataclass
from typing import Any, Callable, Sequence

import logfire
from pydantic import ValidationError

from chat_widget.constants import (
    EXIT_INTENT_THRESHOLD_PX,
    LEGACY_DISCOUNT_EXPIRY_SECONDS,
    POPUP_DISPLAY_DELAY_SECONDS,
    POPUP_EXPIRY_SECONDS,
)
from chat_widget.errors import UnknownTriggerType
from chat_widget.models.agent_config_models import AgentWidgetConfig, LegacyDiscount
from chat_widget.models.page_events import MouseLeaveEvent, PageEvent, ScrollEvent
from chat_widget.models.popup_models import (
    ContentType,
    ExitIntent,
    FirstVisit,
    PopupAction,
    PopupDecision,
    PopupDefinition,
    PopupDisplayState,
    PopupPhase,
    ReturnVisit,
    ScrollDepth,
    TimeDelay,
)
from chat_widget.models.session_models import Session
from chat_widget.services.countdown import PopupCountdown
from chat_widget.services.page_events import PageEventBus
from chat_widget.services.scheduler import Clock, Scheduler, TimerHandle
from chat_widget.storage.repository import WidgetStorage

DisplayCallback = Callable[[PopupDefinition], None]


def plan_popup(
    popup: PopupDefinition,
    state: PopupDisplayState,
    session: Session,
    now_ms: int,
    display_delay_seconds: float = POPUP_DISPLAY_DELAY_SECONDS,
) -> PopupDecision:
    """Decide what to do with one popup given its persisted state.

    Raises:
        UnknownTriggerType: if the popup's trigger is not a known variant.
    """
    base = {"popup_id": popup.id, "trigger": popup.trigger_kind}

    if state.is_dismissed():
        return PopupDecision(
            **base,
            phase=PopupPhase.SUPPRESSED,
            action=PopupAction.SKIP,
            reason="closed by visitor",
        )

    if state.is_active(now_ms):
        return PopupDecision(
            **base,
            phase=PopupPhase.ACTIVE,
            action=PopupAction.REDISPLAY,
            delay_seconds=display_delay_seconds,
            reason="still active",
        )

    clear_state = state.is_expired(now_ms)
    trigger = popup.trigger

    if isinstance(trigger, (FirstVisit, ReturnVisit)):
        wants_return = isinstance(trigger, ReturnVisit)
        if session.is_return_user != wants_return:
            return PopupDecision(
                **base,
                phase=PopupPhase.ARMED,
                action=PopupAction.SKIP,
                clear_state=clear_state,
                reason="visit type does not match",
            )
        delay: float | None = display_delay_seconds
    elif isinstance(trigger, TimeDelay):
        delay = trigger.seconds
    elif isinstance(trigger, (ExitIntent, ScrollDepth)):
        delay = None
    else:
        raise UnknownTriggerType(popup.id, getattr(trigger, "kind", trigger))

    return PopupDecision(
        **base,
        phase=PopupPhase.ARMED,
        action=PopupAction.ARM,
        delay_seconds=delay,
        clear_state=clear_state,
        reason="expired, re-armed" if clear_state else "armed",
    )


def plan_popups(
    popups: Sequence[PopupDefinition | dict[str, Any]],
    session: Session,
    storage: WidgetStorage,
    now_ms: int,
    display_delay_seconds: float = POPUP_DISPLAY_DELAY_SECONDS,
) -> list[PopupDecision]:
    """Plan every popup against persisted state without arming anything.

    Expired state is cleared as a side effect, exactly as evaluation does.
    Entries that cannot be parsed are logged and left out.
    """
    decisions: list[PopupDecision] = []
    for index, raw in enumerate(popups):
        try:
            if isinstance(raw, PopupDefinition):
                popup = raw
            else:
                popup = PopupDefinition.from_wire(raw)
            state = storage.get_popup_state(popup.id, session.anonymous_id)
            decision = plan_popup(popup, state, session, now_ms, display_delay_seconds)
        except (UnknownTriggerType, ValidationError, AttributeError, TypeError) as e:
            logfire.warning("Skipping unusable popup", index=index, error=str(e)[:200])
            continue
        if decision.clear_state:
            storage.clear_popup_state(popup.id, session.anonymous_id)
        decisions.append(decision)
    return decisions


@dataclass
class _Tracked:
    """A popup registered with the engine plus its persistence accessors."""

    popup: PopupDefinition
    display: DisplayCallback
    expiry_seconds: int
    read_state: Callable[[], PopupDisplayState]
    mark_shown: Callable[[int | None], None]
    dismiss: Callable[[], None]
    clear: Callable[[], None]


class PopupTriggerEngine:
    """
    Arms popup triggers for one widget instance and tracks their display.

    The engine owns every timer and listener it installs; ``teardown`` removes
    them all. A popup fires at most once per engine (page load), and a popup
    the visitor has closed never fires, however often evaluation runs.
    """

    def __init__(
        self,
        storage: WidgetStorage,
        scheduler: Scheduler,
        clock: Clock,
        events: PageEventBus | None = None,
        display_delay_seconds: float = POPUP_DISPLAY_DELAY_SECONDS,
        expiry_seconds: int = POPUP_EXPIRY_SECONDS,
        exit_intent_threshold_px: int = EXIT_INTENT_THRESHOLD_PX,
        on_countdown_tick: Callable[[str, PopupCountdown], None] | None = None,
        on_popup_expired: Callable[[str], None] | None = None,
    ):
        self.storage = storage
        self.scheduler = scheduler
        self.clock = clock
        self.events = events or PageEventBus()
        self.display_delay_seconds = display_delay_seconds
        self.expiry_seconds = expiry_seconds
        self.exit_intent_threshold_px = exit_intent_threshold_px
        self._on_countdown_tick = on_countdown_tick
        self._on_popup_expired = on_popup_expired

        self._tracked: dict[str, _Tracked] = {}
        self._fired: set[str] = set()
        self._timers: list[TimerHandle] = []
        self._listeners: list[tuple[str, Callable[[PageEvent], None]]] = []
        self._countdowns: dict[str, PopupCountdown] = {}

    # =========================================================================
    # Evaluation
    # =========================================================================

    def evaluate_triggers(
        self,
        popups: Sequence[PopupDefinition | dict[str, Any]],
        session: Session,
        display_callback: DisplayCallback,
    ) -> list[PopupDecision]:
        """Evaluate popups in order and arm the ones that may fire.

        Raw dicts are parsed one by one; an entry that fails to parse or
        evaluate is logged and skipped without affecting its siblings.
        """
        decisions: list[PopupDecision] = []
        if not popups:
            return decisions

        for index, raw in enumerate(popups):
            try:
                if isinstance(raw, PopupDefinition):
                    popup = raw
                else:
                    popup = PopupDefinition.from_wire(raw)
                tracked = self._track_popup(popup, session, display_callback)
                decision = self._evaluate(tracked, session)
            except UnknownTriggerType as e:
                logfire.warning(
                    "Unknown popup trigger type, skipping popup",
                    popup_id=e.popup_id,
                    trigger=str(e.trigger),
                    index=index,
                )
                continue
            except ValidationError as e:
                logfire.warning(
                    "Invalid popup definition, skipping popup",
                    index=index,
                    error_count=e.error_count(),
                )
                continue
            except Exception as e:
                logfire.error(
                    "Popup evaluation failed",
                    index=index,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                continue
            if decision is not None:
                decisions.append(decision)

        logfire.info(
            "Popup triggers evaluated",
            agent_id=session.agent_id,
            popup_count=len(popups),
            armed=sum(1 for d in decisions if d.action is PopupAction.ARM),
            redisplayed=sum(1 for d in decisions if d.action is PopupAction.REDISPLAY),
        )
        return decisions

    def evaluate_legacy_discounts(
        self,
        config: AgentWidgetConfig,
        session: Session,
        display_callback: DisplayCallback,
    ) -> PopupDecision | None:
        """Show the first-time or return-user discount of configs without popups."""
        if session.is_return_user:
            kind, discount = "return_user", config.return_user_discount
        else:
            kind, discount = "first_time", config.first_time_discount
        if discount is None or not discount.enabled:
            return None

        popup = self._legacy_popup(kind, discount, session)
        anonymous_id = session.anonymous_id
        tracked = _Tracked(
            popup=popup,
            display=display_callback,
            expiry_seconds=LEGACY_DISCOUNT_EXPIRY_SECONDS,
            read_state=lambda: self.storage.get_discount_state(kind, anonymous_id),
            mark_shown=lambda expiry: self.storage.mark_discount_shown(
                kind, anonymous_id, expiry
            ),
            dismiss=lambda: self.storage.dismiss_discount(kind, anonymous_id),
            clear=lambda: self.storage.clear_discount_state(kind, anonymous_id),
        )
        try:
            if tracked.read_state().is_expired(self.clock.now_ms()):
                # An expired offer is withdrawn for this page load
                tracked.clear()
                logfire.info("Legacy discount expired, state cleared", kind=kind)
                return PopupDecision(
                    popup_id=popup.id,
                    trigger=popup.trigger_kind,
                    phase=PopupPhase.ARMED,
                    action=PopupAction.SKIP,
                    clear_state=True,
                    reason="offer expired",
                )
            return self._evaluate(tracked, session)
        except Exception as e:
            logfire.error("Legacy discount evaluation failed", kind=kind, error=str(e))
            return None

    def _legacy_popup(
        self, kind: str, discount: LegacyDiscount, session: Session
    ) -> PopupDefinition:
        return PopupDefinition(
            id=f"{kind}_discount",
            trigger=ReturnVisit() if session.is_return_user else FirstVisit(),
            content_type=ContentType.DISCOUNT,
            title=discount.title,
            message=discount.message,
            code=discount.code,
        )

    def _track_popup(
        self, popup: PopupDefinition, session: Session, display: DisplayCallback
    ) -> _Tracked:
        anonymous_id = session.anonymous_id
        return _Tracked(
            popup=popup,
            display=display,
            expiry_seconds=self.expiry_seconds,
            read_state=lambda: self.storage.get_popup_state(popup.id, anonymous_id),
            mark_shown=lambda expiry: self.storage.mark_popup_shown(
                popup.id, anonymous_id, expiry
            ),
            dismiss=lambda: self.storage.dismiss_popup(popup.id, anonymous_id),
            clear=lambda: self.storage.clear_popup_state(popup.id, anonymous_id),
        )

    def _evaluate(self, tracked: _Tracked, session: Session) -> PopupDecision | None:
        popup = tracked.popup
        if popup.id in self._tracked or popup.id in self._fired:
            logfire.debug("Popup already registered on this page", popup_id=popup.id)
            return None

        decision = plan_popup(
            popup,
            tracked.read_state(),
            session,
            self.clock.now_ms(),
            self.display_delay_seconds,
        )

        if decision.clear_state:
            tracked.clear()
            logfire.info("Popup expired, state cleared", popup_id=popup.id)

        if decision.action is PopupAction.SKIP:
            logfire.debug(
                "Popup not armed",
                popup_id=popup.id,
                phase=decision.phase.value,
                reason=decision.reason,
            )
            return decision

        self._tracked[popup.id] = tracked

        if decision.action is PopupAction.REDISPLAY or decision.delay_seconds is not None:
            self._schedule(popup.id, decision.delay_seconds or 0.0)
        elif isinstance(popup.trigger, ExitIntent):
            self._listen_exit_intent(popup.id)
        elif isinstance(popup.trigger, ScrollDepth):
            self._listen_scroll_depth(popup.id, popup.trigger.percent)

        logfire.debug(
            "Popup armed",
            popup_id=popup.id,
            trigger=popup.trigger_kind,
            action=decision.action.value,
            delay_seconds=decision.delay_seconds,
        )
        return decision

    # =========================================================================
    # Trigger wiring
    # =========================================================================

    def _schedule(self, popup_id: str, delay_seconds: float) -> None:
        self._timers.append(
            self.scheduler.call_later(delay_seconds, lambda: self._fire(popup_id))
        )

    def _listen_exit_intent(self, popup_id: str) -> None:
        triggered = False

        def on_mouse_leave(event: PageEvent) -> None:
            nonlocal triggered
            if triggered or not isinstance(event, MouseLeaveEvent):
                return
            if event.client_y < self.exit_intent_threshold_px:
                triggered = True
                self._unlisten("mouseleave", on_mouse_leave)
                self._fire(popup_id)

        self._listen("mouseleave", on_mouse_leave)

    def _listen_scroll_depth(self, popup_id: str, target_percent: float) -> None:
        triggered = False

        def on_scroll(event: PageEvent) -> None:
            nonlocal triggered
            if triggered or not isinstance(event, ScrollEvent):
                return
            if event.scroll_percent >= target_percent:
                triggered = True
                self._unlisten("scroll", on_scroll)
                self._fire(popup_id)

        self._listen("scroll", on_scroll)

    def _listen(self, kind: str, listener: Callable[[PageEvent], None]) -> None:
        self.events.add_listener(kind, listener)
        self._listeners.append((kind, listener))

    def _unlisten(self, kind: str, listener: Callable[[PageEvent], None]) -> None:
        self.events.remove_listener(kind, listener)
        if (kind, listener) in self._listeners:
            self._listeners.remove((kind, listener))

    # =========================================================================
    # Display lifecycle
    # =========================================================================

    def _fire(self, popup_id: str) -> None:
        tracked = self._tracked.get(popup_id)
        if tracked is None or popup_id in self._fired:
            return

        popup = tracked.popup
        now = self.clock.now_ms()
        state = tracked.read_state()
        if state.is_dismissed():
            # Closed elsewhere (another tab) after this page armed it
            logfire.info("Popup closed since arming, not displaying", popup_id=popup_id)
            return

        expiry: int | None = None
        if popup.has_countdown:
            if state.is_active(now):
                expiry = state.expiry_timestamp
            else:
                expiry = now + tracked.expiry_seconds * 1000
        # Without a countdown any stored expiry is dropped: shown once, then closed
        tracked.mark_shown(expiry)
        self._fired.add(popup_id)

        logfire.info(
            "Popup shown",
            popup_id=popup_id,
            trigger=popup.trigger_kind,
            content_type=popup.content_type.value,
            expires_in_minutes=round((expiry - now) / 60000) if expiry else None,
        )

        try:
            tracked.display(popup)
        except Exception as e:
            logfire.error(
                "Popup display callback failed",
                popup_id=popup_id,
                error=str(e),
                error_type=type(e).__name__,
            )

        if expiry is not None:
            countdown = PopupCountdown(
                expiry_ms=expiry,
                clock=self.clock,
                scheduler=self.scheduler,
                on_expired=lambda: self.expire_popup(popup_id),
                on_tick=(
                    (lambda c: self._on_countdown_tick(popup_id, c))
                    if self._on_countdown_tick
                    else None
                ),
            )
            self._countdowns[popup_id] = countdown
            countdown.start()

    def close_popup(self, popup_id: str, manual: bool = True) -> None:
        """Visitor closed the popup (manual) or its countdown finished."""
        if not manual:
            self.expire_popup(popup_id)
            return
        tracked = self._tracked.get(popup_id)
        if tracked is None:
            logfire.warning("Close requested for unknown popup", popup_id=popup_id)
            return
        self._stop_countdown(popup_id)
        tracked.dismiss()
        logfire.info("Popup manually closed, won't show again", popup_id=popup_id)

    def expire_popup(self, popup_id: str) -> None:
        """Countdown reached zero: forget the display so a later load may re-arm it."""
        tracked = self._tracked.get(popup_id)
        if tracked is None:
            return
        self._stop_countdown(popup_id)
        tracked.clear()
        logfire.info("Popup timer expired, state cleared", popup_id=popup_id)
        if self._on_popup_expired is not None:
            self._on_popup_expired(popup_id)

    def countdown(self, popup_id: str) -> PopupCountdown | None:
        return self._countdowns.get(popup_id)

    def has_fired(self, popup_id: str) -> bool:
        return popup_id in self._fired

    def _stop_countdown(self, popup_id: str) -> None:
        countdown = self._countdowns.pop(popup_id, None)
        if countdown is not None:
            countdown.stop()

    def teardown(self) -> None:
        """Cancel pending timers, countdowns and listeners."""
        for handle in self._timers:
            handle.cancel()
        self._timers.clear()
        for kind, listener in list(self._listeners):
            self.events.remove_listener(kind, listener)
        self._listeners.clear()
        for popup_id in list(self._countdowns):
            self._stop_countdown(popup_id)
        logfire.debug("Popup engine torn down", tracked=len(self._tracked))
