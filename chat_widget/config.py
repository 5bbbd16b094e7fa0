"""Application configuration using Pydantic BaseSettings."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from chat_widget.constants import (
    AGENT_CONFIG_TIMEOUT_SECONDS,
    DEFAULT_AGENT_CONFIG_URL,
    DEFAULT_STORAGE_KEY_PREFIX,
    DEFAULT_STORAGE_PATH,
    EXIT_INTENT_THRESHOLD_PX,
    POPUP_DISPLAY_DELAY_SECONDS,
    POPUP_EXPIRY_SECONDS,
    RETURN_VISIT_WINDOW_SECONDS,
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        # Later files override earlier ones, so .env.local takes precedence
        env_file=[".env", ".env.local"],
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    env: Literal["local", "railway", "prod"] = Field(
        default="local", description="Current environment"
    )

    # Sentry Configuration
    sentry_dsn: str | None = Field(
        default=None, description="Sentry DSN for error tracking (optional)"
    )
    sentry_traces_sample_rate: float = Field(
        default=1.0, description="Sentry traces sample rate (0.0 to 1.0)"
    )

    # Logfire Configuration
    logfire_token: str | None = Field(
        default=None, description="Pydantic Logfire token for observability"
    )
    log_level: str = Field(default="INFO", description="Stdlib logging level name")

    # ==========================================================================
    # Storage Configuration
    # ==========================================================================

    storage_backend: Literal["memory", "file", "supabase"] = Field(
        default="memory",
        description="Key-value backend for visit and popup state",
    )
    storage_path: str = Field(
        default=DEFAULT_STORAGE_PATH,
        description="JSON file used when storage_backend is 'file'",
    )
    storage_key_prefix: str = Field(
        default=DEFAULT_STORAGE_KEY_PREFIX,
        description="Prefix applied to every persisted key",
    )

    # Supabase Configuration (only needed for the 'supabase' backend)
    supabase_url: str | None = Field(default=None, description="Supabase project URL")
    supabase_service_key: str | None = Field(
        default=None, description="Supabase service role key"
    )

    # ==========================================================================
    # Remote Agent Configuration
    # ==========================================================================

    agent_config_url: str = Field(
        default=DEFAULT_AGENT_CONFIG_URL,
        description="Endpoint returning public agent configuration",
    )
    agent_config_timeout_seconds: float = Field(
        default=AGENT_CONFIG_TIMEOUT_SECONDS,
        description="Timeout for agent configuration fetches (seconds)",
    )

    # ==========================================================================
    # Visit and Popup Timing
    # ==========================================================================
    # Defaults are sourced from chat_widget/constants.py.

    return_visit_window_seconds: int = Field(
        default=RETURN_VISIT_WINDOW_SECONDS,
        description="Gap after which a visitor is classified as returning",
    )
    popup_display_delay_seconds: float = Field(
        default=POPUP_DISPLAY_DELAY_SECONDS,
        description="Delay before visit-based popups and redisplays",
    )
    popup_expiry_seconds: int = Field(
        default=POPUP_EXPIRY_SECONDS,
        description="Lifetime of a displayed countdown popup",
    )
    exit_intent_threshold_px: int = Field(
        default=EXIT_INTENT_THRESHOLD_PX,
        description="Pointer y coordinate below which a mouseleave is exit intent",
    )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
