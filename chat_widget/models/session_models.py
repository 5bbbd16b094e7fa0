"""Visitor identity, visit record and session models."""

from pydantic import BaseModel, ConfigDict, Field


class BrowserFingerprint(BaseModel):
    """Browser/environment signals read by the widget on load.

    The first six fields seed the anonymous id. The rest only feed the
    visitor profile.
    """

    model_config = ConfigDict(populate_by_name=True)

    hostname: str = Field(..., description="Host domain embedding the widget")
    user_agent: str = Field(..., alias="userAgent", description="navigator.userAgent")
    language: str = Field(default="en", description="navigator.language")
    screen_width: int = Field(..., alias="screenWidth", ge=0)
    screen_height: int = Field(..., alias="screenHeight", ge=0)
    timezone: str = Field(..., description="Resolved IANA timezone name")

    pathname: str = Field(default="/", description="window.location.pathname")
    referrer: str | None = Field(default=None, description="document.referrer")
    viewport_width: int | None = Field(
        default=None, alias="viewportWidth", description="window.innerWidth"
    )

    @property
    def screen(self) -> str:
        """Screen dimensions as WxH."""
        return f"{self.screen_width}x{self.screen_height}"


class VisitRecord(BaseModel):
    """Last visit anchor for one agent."""

    agent_id: str
    last_visit_timestamp: int = Field(..., description="Epoch millis")


class ResolvedIdentity(BaseModel):
    """Result of resolving the anonymous identity for a widget load."""

    model_config = ConfigDict(frozen=True)

    anonymous_id: str
    session_id: str
    is_return_user: bool


class Session(BaseModel):
    """Per-browser, per-agent identity held for the lifetime of a widget.

    ``is_return_user`` is computed once at load and never re-derived when a
    delayed trigger fires.
    """

    model_config = ConfigDict(frozen=True)

    agent_id: str
    anonymous_id: str
    session_id: str
    is_return_user: bool = False

    @classmethod
    def from_identity(cls, agent_id: str, identity: ResolvedIdentity) -> "Session":
        return cls(
            agent_id=agent_id,
            anonymous_id=identity.anonymous_id,
            session_id=identity.session_id,
            is_return_user=identity.is_return_user,
        )


class VisitorProfile(BaseModel):
    """Lightweight visitor description attached to chat sessions."""

    anonymous_id: str
    session_id: str
    agent_id: str
    hostname: str
    pathname: str
    referrer: str
    timezone: str
    language: str
    screen: str
    browser: str
    device_type: str
    is_return_user: bool
    first_visit: str | None = None
    last_visit: str
    total_visits: int = Field(default=1, ge=1)
