"""Visitor profile built from the fingerprint and resolved session."""

from datetime import datetime, timezone

from chat_widget.constants import MOBILE_MAX_WIDTH_PX, TABLET_MAX_WIDTH_PX
from chat_widget.models.session_models import BrowserFingerprint, Session, VisitorProfile


def get_browser_info(user_agent: str) -> str:
    """Coarse browser family. Order matters: Edge and Chrome UAs contain 'Safari'."""
    if "Chrome" in user_agent:
        return "Chrome"
    if "Firefox" in user_agent:
        return "Firefox"
    if "Safari" in user_agent:
        return "Safari"
    if "Edge" in user_agent:
        return "Edge"
    return "Unknown"


def get_device_type(viewport_width: int | None) -> str:
    if viewport_width is None:
        return "desktop"
    if viewport_width <= MOBILE_MAX_WIDTH_PX:
        return "mobile"
    if viewport_width <= TABLET_MAX_WIDTH_PX:
        return "tablet"
    return "desktop"


def build_visitor_profile(
    fingerprint: BrowserFingerprint,
    session: Session,
    total_visits: int = 1,
    now: datetime | None = None,
) -> VisitorProfile:
    now = now or datetime.now(timezone.utc)
    timestamp = now.isoformat()
    return VisitorProfile(
        anonymous_id=session.anonymous_id,
        session_id=session.session_id,
        agent_id=session.agent_id,
        hostname=fingerprint.hostname,
        pathname=fingerprint.pathname,
        referrer=fingerprint.referrer or "direct",
        timezone=fingerprint.timezone,
        language=fingerprint.language or "en",
        screen=fingerprint.screen,
        browser=get_browser_info(fingerprint.user_agent),
        device_type=get_device_type(fingerprint.viewport_width),
        is_return_user=session.is_return_user,
        first_visit=None if session.is_return_user else timestamp,
        last_visit=timestamp,
        total_visits=max(1, total_visits),
    )
