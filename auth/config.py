"""Authentication configuration."""

import os

from pydantic import BaseModel, Field


class AuthConfig(BaseModel):
    """
    Authentication configuration.

    Durations use their natural units: minutes for links and rate limit
    windows, hours for sessions.
    """

    magic_link_expiry_minutes: int = Field(
        default=15,
        description="How long magic links remain valid",
        ge=5,
        le=60,
    )

    session_expiry_hours: int = Field(
        default=24 * 30,
        description="Session lifetime in hours; extended on activity",
        ge=1,
        le=2160,
    )

    rate_limit_attempts: int = Field(
        default=5,
        description="Max attempts per email or IP per window",
        ge=1,
        le=20,
    )
    rate_limit_window_minutes: int = Field(
        default=15,
        description="Rate limit window duration",
        ge=5,
        le=60,
    )

    session_cookie_secure: bool = Field(
        default=True,
        description="Send the session cookie over HTTPS only",
    )

    app_base_url: str = Field(
        default="http://localhost:8000",
        description="Base URL for magic link generation",
    )
    app_name: str = Field(
        default="TradeFlow",
        description="Application name for emails",
    )

    @classmethod
    def from_env(cls) -> "AuthConfig":
        """Defaults, with APP_BASE_URL and SESSION_COOKIE_SECURE overrides."""
        overrides = {}
        if os.getenv("APP_BASE_URL"):
            overrides["app_base_url"] = os.environ["APP_BASE_URL"].rstrip("/")
        if os.getenv("SESSION_COOKIE_SECURE"):
            overrides["session_cookie_secure"] = os.environ["SESSION_COOKIE_SECURE"].lower() in ("1", "true", "yes")
        return cls(**overrides)
