"""Widget session endpoints.

Browsers that cannot keep state locally (or embeds that want state shared
across devices) report each widget load here. The service resolves the
anonymous identity against the configured store and returns the popup plan;
timers and listeners still run client-side.
"""

import logging

from fastapi import APIRouter, Depends

from chat_widget.config import get_settings
from chat_widget.logging_config import mask_pii
from chat_widget.models.api_models import PopupCloseRequest, VisitRequest, VisitResponse
from chat_widget.models.session_models import Session
from chat_widget.services.identity import SessionIdentityResolver
from chat_widget.services.popup_engine import plan_popups
from chat_widget.services.scheduler import SystemClock
from chat_widget.services.visitor_profile import build_visitor_profile
from chat_widget.storage.repository import WidgetStorage, get_widget_storage

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/{agent_id}/visit", response_model=VisitResponse)
async def register_visit(
    agent_id: str,
    body: VisitRequest,
    storage: WidgetStorage = Depends(get_widget_storage),
) -> VisitResponse:
    """Resolve identity for a widget load and plan its popups."""
    settings = get_settings()
    clock = SystemClock()

    resolver = SessionIdentityResolver(
        body.fingerprint,
        storage,
        clock=clock,
        return_window_seconds=settings.return_visit_window_seconds,
    )
    identity = resolver.resolve_identity(agent_id)
    session = Session.from_identity(agent_id, identity)
    total_visits = resolver.storage.increment_page_views(identity.anonymous_id)

    decisions = plan_popups(
        body.popups,
        session,
        resolver.storage,
        clock.now_ms(),
        settings.popup_display_delay_seconds,
    )

    logger.info(
        "Visit registered for agent %s (visitor %s, returning=%s, popups=%d)",
        agent_id,
        mask_pii(identity.anonymous_id),
        identity.is_return_user,
        len(decisions),
    )

    return VisitResponse(
        anonymous_id=identity.anonymous_id,
        session_id=identity.session_id,
        is_return_user=identity.is_return_user,
        profile=build_visitor_profile(body.fingerprint, session, total_visits),
        decisions=decisions,
    )


@router.post("/{agent_id}/popups/{popup_id}/close")
async def close_popup(
    agent_id: str,
    popup_id: str,
    body: PopupCloseRequest,
    storage: WidgetStorage = Depends(get_widget_storage),
):
    """Persist a manual dismissal, or clear state when the countdown expired."""
    if body.manual:
        storage.dismiss_popup(popup_id, body.anonymous_id)
        logger.info("Popup %s dismissed for agent %s", popup_id, agent_id)
        return {"status": "dismissed"}

    storage.clear_popup_state(popup_id, body.anonymous_id)
    logger.info("Popup %s expired for agent %s", popup_id, agent_id)
    return {"status": "expired"}
