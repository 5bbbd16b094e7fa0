"""DOM-style page events dispatched by the host into the widget."""

from typing import Literal, Union

from pydantic import BaseModel, Field


class MouseLeaveEvent(BaseModel):
    """Pointer left the document."""

    kind: Literal["mouseleave"] = "mouseleave"
    client_y: float


class ScrollEvent(BaseModel):
    """Window scrolled."""

    kind: Literal["scroll"] = "scroll"
    scroll_y: float = Field(..., ge=0)
    scroll_height: float = Field(..., ge=0, description="document.body.scrollHeight")
    viewport_height: float = Field(..., ge=0, description="window.innerHeight")

    @property
    def scroll_percent(self) -> float:
        """Vertical position as a percentage of the scrollable height."""
        scrollable = self.scroll_height - self.viewport_height
        if scrollable <= 0:
            # Nothing to scroll: the whole page is already visible
            return 100.0
        return self.scroll_y / scrollable * 100


PageEvent = Union[MouseLeaveEvent, ScrollEvent]
