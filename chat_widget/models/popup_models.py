"""Popup definitions, trigger union and persisted display state."""

from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from chat_widget.constants import DEFAULT_TRIGGER_VALUE
from chat_widget.errors import UnknownTriggerType


# =============================================================================
# Triggers
# =============================================================================


class FirstVisit(BaseModel):
    """Fires for visitors classified as new."""

    kind: Literal["first_visit"] = "first_visit"


class ReturnVisit(BaseModel):
    """Fires for visitors classified as returning."""

    kind: Literal["return_visit"] = "return_visit"


class ExitIntent(BaseModel):
    """Fires once when the pointer leaves the viewport near the top edge."""

    kind: Literal["exit_intent"] = "exit_intent"


class TimeDelay(BaseModel):
    """Fires once after a fixed number of seconds on the page."""

    kind: Literal["time_delay"] = "time_delay"
    seconds: float = Field(..., ge=0)


class ScrollDepth(BaseModel):
    """Fires once the page is scrolled past a percentage of its height."""

    kind: Literal["scroll_depth"] = "scroll_depth"
    percent: float = Field(..., ge=0)


Trigger = Annotated[
    Union[FirstVisit, ReturnVisit, ExitIntent, TimeDelay, ScrollDepth],
    Field(discriminator="kind"),
]

TRIGGER_KINDS = ("first_visit", "return_visit", "exit_intent", "time_delay", "scroll_depth")


def build_trigger(popup_id: str, name: Any, value: Any = None) -> Trigger:
    """Build a trigger from its wire name and optional triggerValue.

    Raises:
        UnknownTriggerType: if ``name`` is not a recognised trigger.
    """
    try:
        numeric = float(value) if value else float(DEFAULT_TRIGGER_VALUE)
    except (TypeError, ValueError):
        numeric = float(DEFAULT_TRIGGER_VALUE)

    if name == "first_visit":
        return FirstVisit()
    if name == "return_visit":
        return ReturnVisit()
    if name == "exit_intent":
        return ExitIntent()
    if name == "time_delay":
        return TimeDelay(seconds=numeric)
    if name == "scroll_depth":
        return ScrollDepth(percent=numeric)
    raise UnknownTriggerType(popup_id, name)


# =============================================================================
# Popup Definition
# =============================================================================


class ContentType(str, Enum):
    """What a popup renders. Irrelevant to trigger evaluation."""

    DISCOUNT = "discount"
    ANNOUNCEMENT = "announcement"
    VIDEO = "video"
    LINK = "link"


class PopupDefinition(BaseModel):
    """A configured popup, as delivered in the agent configuration."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str = Field(..., min_length=1)
    trigger: Trigger
    content_type: ContentType = Field(default=ContentType.DISCOUNT, alias="contentType")

    # Render-only fields
    title: str | None = None
    message: str | None = None
    code: str | None = None
    button_text: str | None = Field(default=None, alias="buttonText")
    button_link: str | None = Field(default=None, alias="buttonLink")
    video_url: str | None = Field(default=None, alias="videoUrl")

    @field_validator("content_type", mode="before")
    @classmethod
    def _default_content_type(cls, value: Any) -> Any:
        return value or ContentType.DISCOUNT

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> "PopupDefinition":
        """Parse a popup from the camelCase agent configuration payload.

        Raises:
            UnknownTriggerType: for an unrecognised ``trigger`` value.
            pydantic.ValidationError: for any other invalid field.
        """
        popup_id = str(data.get("id") or "")
        trigger = build_trigger(popup_id, data.get("trigger"), data.get("triggerValue"))
        payload = {k: v for k, v in data.items() if k not in ("trigger", "triggerValue")}
        payload["id"] = popup_id
        return cls.model_validate({**payload, "trigger": trigger})

    @property
    def trigger_kind(self) -> str:
        return self.trigger.kind

    @property
    def has_countdown(self) -> bool:
        """Discount popups carry a countdown and therefore an expiry."""
        return self.content_type is ContentType.DISCOUNT


# =============================================================================
# Persisted Display State
# =============================================================================


class PopupDisplayState(BaseModel):
    """Persisted display state for one popup and one visitor."""

    shown: bool = False
    expiry_timestamp: int | None = Field(default=None, description="Epoch millis")

    def is_dismissed(self) -> bool:
        """Shown without an expiry means it was closed by the visitor."""
        return self.shown and self.expiry_timestamp is None

    def is_active(self, now_ms: int) -> bool:
        return (
            self.shown
            and self.expiry_timestamp is not None
            and now_ms <= self.expiry_timestamp
        )

    def is_expired(self, now_ms: int) -> bool:
        return self.expiry_timestamp is not None and now_ms > self.expiry_timestamp


# =============================================================================
# Decisions
# =============================================================================


class PopupPhase(str, Enum):
    """Where a popup sits in its lifecycle after evaluation."""

    SUPPRESSED = "suppressed"
    ARMED = "armed"
    ACTIVE = "active"


class PopupAction(str, Enum):
    """Effect the engine applies for a decision."""

    SKIP = "skip"
    REDISPLAY = "redisplay"
    ARM = "arm"


class PopupDecision(BaseModel):
    """Outcome of evaluating one popup against persisted state."""

    popup_id: str
    trigger: str
    phase: PopupPhase
    action: PopupAction
    delay_seconds: float | None = None
    clear_state: bool = False
    reason: str = ""
