"""Centralized logging configuration with Pydantic Logfire integration."""

import logging
from typing import Any

import logfire
from fastapi import FastAPI

from chat_widget.config import get_settings


def configure_logfire() -> None:
    """Configure Logfire and stdlib logging for the current environment."""
    settings = get_settings()

    logfire_config: dict[str, Any] = {
        "environment": settings.env,
        "service_name": "chat-widget",
    }

    # Add token if provided (for cloud logging)
    if settings.logfire_token:
        logfire_config["token"] = settings.logfire_token
    else:
        logfire_config["send_to_logfire"] = False

    logfire.configure(**logfire_config)

    log_level = settings.log_level.upper()

    if settings.env == "local":
        # Local: Console formatting for development
        logging.basicConfig(
            level=getattr(logging, log_level, logging.INFO),
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        )
    else:
        # Production: Logfire handles structured formatting
        logging.basicConfig(
            level=getattr(logging, log_level, logging.INFO),
            format="%(message)s",
        )


def setup_logfire(app: FastAPI) -> None:
    """
    Initialize Pydantic Logfire for the API service.

    Sets up:
    - Environment-aware Logfire and stdlib logging configuration
    - FastAPI instrumentation (request/response tracing)
    - Pydantic instrumentation (model validation logging)
    """
    configure_logfire()
    logfire.instrument_fastapi(app)
    logfire.instrument_pydantic()


def mask_pii(value: str | None, mask_char: str = "*") -> str:
    """
    Mask potentially identifying values (anonymous ids, session ids) in logs.

    Args:
        value: Value to mask
        mask_char: Character to use for masking

    Returns:
        Masked string
    """
    if not value:
        return ""

    if len(value) <= 4:
        return mask_char * len(value)

    # Show first 2 and last 2 characters, mask the rest
    return f"{value[:2]}{mask_char * (len(value) - 4)}{value[-2:]}"
