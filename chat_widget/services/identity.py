"""Anonymous visitor identity and new/returning visit classification."""

import string

import logfire

from chat_widget.constants import (
    ANONYMOUS_ID_PREFIX,
    FINGERPRINT_SEPARATOR,
    RETURN_VISIT_WINDOW_SECONDS,
)
from chat_widget.logging_config import mask_pii
from chat_widget.models.session_models import BrowserFingerprint, ResolvedIdentity
from chat_widget.services.scheduler import Clock, SystemClock
from chat_widget.storage.client import SafeStore
from chat_widget.storage.repository import WidgetStorage

_BASE36_DIGITS = string.digits + string.ascii_lowercase


def _to_int32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - 0x100000000 if value & 0x80000000 else value


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36_DIGITS[rem])
    return "".join(reversed(digits))


def fingerprint_hash(text: str) -> int:
    """
    Rolling ``h = h * 31 + code`` hash reduced to a signed 32-bit integer.

    Codes are UTF-16 code units so the result matches the browser widget for
    the same input. This is a stability heuristic for cheap browser-local ids,
    not a security primitive; occasional collisions are acceptable.
    """
    encoded = text.encode("utf-16-le")
    h = 0
    for i in range(0, len(encoded), 2):
        code = encoded[i] | (encoded[i + 1] << 8)
        h = _to_int32((h << 5) - h + code)
    return h


def fingerprint_string(fingerprint: BrowserFingerprint) -> str:
    return FINGERPRINT_SEPARATOR.join(
        [
            fingerprint.hostname,
            fingerprint.user_agent,
            fingerprint.language,
            fingerprint.screen,
            fingerprint.timezone,
        ]
    )


def compute_anonymous_id(fingerprint: BrowserFingerprint) -> str:
    """Derive the ``anon_<base36>`` id for a browser fingerprint."""
    h = fingerprint_hash(fingerprint_string(fingerprint))
    return ANONYMOUS_ID_PREFIX + _to_base36(abs(h))


class SessionIdentityResolver:
    """
    Resolve the anonymous identity and visit classification for one widget load.

    Visit tracking is scoped per agent: a visitor can be new on one embedding
    site and returning on another. The visit anchor is only refreshed when a
    genuine gap longer than the return window is observed, so continuous
    browsing never pushes the boundary back.
    """

    def __init__(
        self,
        fingerprint: BrowserFingerprint,
        storage: WidgetStorage,
        clock: Clock | None = None,
        return_window_seconds: int = RETURN_VISIT_WINDOW_SECONDS,
    ):
        # Guarantee storage failures degrade instead of raising
        if not isinstance(storage.store, SafeStore):
            storage = WidgetStorage(SafeStore(storage.store), prefix=storage.prefix)
        self.fingerprint = fingerprint
        self.storage = storage
        self.clock = clock or SystemClock()
        self.return_window_ms = return_window_seconds * 1000

    def resolve_identity(self, agent_id: str) -> ResolvedIdentity:
        """Compute anonymous id, session id and return-user flag for ``agent_id``."""
        anonymous_id = compute_anonymous_id(self.fingerprint)
        is_return_user = self._classify_visit(agent_id, anonymous_id)

        session_id = self.storage.get_session_id(anonymous_id)
        if not session_id:
            session_id = anonymous_id
            self.storage.set_session_id(anonymous_id, session_id)

        return ResolvedIdentity(
            anonymous_id=anonymous_id,
            session_id=session_id,
            is_return_user=is_return_user,
        )

    def _classify_visit(self, agent_id: str, anonymous_id: str) -> bool:
        now = self.clock.now_ms()
        record = self.storage.get_last_visit(agent_id)

        if record is None:
            self.storage.set_last_visit(agent_id, now)
            logfire.info("New visitor for agent", agent_id=agent_id)
            return False

        elapsed_ms = now - record.last_visit_timestamp
        if elapsed_ms > self.return_window_ms:
            self.storage.set_last_visit(agent_id, now)
            logfire.info(
                "Return visitor detected",
                agent_id=agent_id,
                minutes_since_last_visit=round(elapsed_ms / 60000),
                anonymous_id=mask_pii(anonymous_id),
            )
            return True

        # Same ongoing session: leave the anchor untouched
        logfire.debug(
            "Visit within return window",
            agent_id=agent_id,
            seconds_since_anchor=round(elapsed_ms / 1000),
        )
        return False
