"""Fetch public agent configuration from the remote backend."""

import time

import httpx
import logfire
from pydantic import ValidationError

from chat_widget.config import get_settings
from chat_widget.models.agent_config_models import AgentWidgetConfig


async def fetch_agent_config(
    agent_id: str,
    client: httpx.AsyncClient | None = None,
) -> AgentWidgetConfig | None:
    """
    Get the widget configuration (branding, popups, legacy discounts) for an agent.

    Failures never raise: the widget keeps working as a plain chat without
    popups when the configuration cannot be loaded.

    Args:
        agent_id: Agent identifier
        client: Optional injected HTTP client (for testing)

    Returns:
        Parsed configuration, or None on any failure
    """
    settings = get_settings()
    start_time = time.time()
    params = {"agentId": agent_id}

    try:
        if client is None:
            async with httpx.AsyncClient(
                timeout=settings.agent_config_timeout_seconds
            ) as owned_client:
                response = await owned_client.get(settings.agent_config_url, params=params)
        else:
            response = await client.get(settings.agent_config_url, params=params)
    except httpx.HTTPError as e:
        logfire.error(
            "Agent config request failed",
            agent_id=agent_id,
            error=str(e),
            error_type=type(e).__name__,
        )
        return None

    elapsed_ms = (time.time() - start_time) * 1000
    if response.status_code != 200:
        logfire.error(
            "Failed to fetch agent config",
            agent_id=agent_id,
            status_code=response.status_code,
            response_body=response.text[:500],
            response_time_ms=elapsed_ms,
        )
        return None

    try:
        config = AgentWidgetConfig.model_validate(response.json())
    except (ValueError, ValidationError) as e:
        logfire.error(
            "Agent config payload invalid",
            agent_id=agent_id,
            error=str(e)[:500],
        )
        return None

    logfire.info(
        "Agent config fetched",
        agent_id=agent_id,
        popup_count=len(config.popups),
        response_time_ms=elapsed_ms,
    )
    return config
