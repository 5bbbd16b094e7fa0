"""Public agent configuration consumed by the widget."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class LegacyDiscount(BaseModel):
    """First-time / return-user discount from configs that predate popups."""

    model_config = ConfigDict(populate_by_name=True)

    enabled: bool = False
    title: str | None = None
    message: str | None = None
    code: str | None = None


class AgentWidgetConfig(BaseModel):
    """Agent configuration as returned by the remote config endpoint.

    ``popups`` stays as raw dicts: each entry is parsed on its own during
    trigger evaluation so one bad entry cannot reject the whole config.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    agent_id: str | None = Field(default=None, alias="agentId")
    project_name: str = Field(default="Assistant", alias="projectName")
    logo_url: str | None = Field(default=None, alias="logoUrl")
    primary_color: str = Field(default="#f97316", alias="primaryColor")
    position: str = Field(default="bottom-right")
    allowed_domains: list[str] = Field(default_factory=list, alias="allowedDomains")
    whitelabel: bool = False

    popups: list[dict[str, Any]] = Field(default_factory=list)
    return_user_discount: LegacyDiscount | None = Field(
        default=None, alias="returnUserDiscount"
    )
    first_time_discount: LegacyDiscount | None = Field(
        default=None, alias="firstTimeDiscount"
    )
