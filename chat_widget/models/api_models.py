"""Request/response models for the widget HTTP API."""

from typing import Any

from pydantic import BaseModel, Field

from chat_widget.models.popup_models import PopupDecision
from chat_widget.models.session_models import BrowserFingerprint, VisitorProfile


class VisitRequest(BaseModel):
    """Widget load reported by a browser."""

    fingerprint: BrowserFingerprint
    popups: list[Any] = Field(
        default_factory=list, description="Popup definitions to plan for this visit"
    )


class VisitResponse(BaseModel):
    """Identity, visitor profile and popup plan for a widget load."""

    anonymous_id: str
    session_id: str
    is_return_user: bool
    profile: VisitorProfile
    decisions: list[PopupDecision] = Field(default_factory=list)


class PopupCloseRequest(BaseModel):
    """Popup closed by the visitor or by its countdown."""

    anonymous_id: str = Field(..., min_length=1)
    manual: bool = Field(
        default=True,
        description="True for a visitor dismissal, False when the countdown expired",
    )
