"""Authentication configuration."""

import os

from pydantic import BaseModel, Field


class AuthConfig(BaseModel):
    """
    Authentication configuration.

    All durations are in their natural units (minutes for codes, hours for
    retention, days for sessions) to make configuration intuitive.
    """

    # One-time codes
    otp_length: int = Field(
        default=6,
        description="Number of digits in a login code",
        ge=4,
        le=10,
    )
    otp_expiry_minutes: int = Field(
        default=10,
        description="How long a login code remains valid",
        ge=1,
        le=60,
    )
    otp_retention_hours: int = Field(
        default=24,
        description="Used codes older than this are removed by cleanup",
        ge=1,
    )

    # Sessions
    session_expiry_days: int = Field(
        default=30,
        description="Session lifetime in days",
        ge=1,
        le=90,
    )
    handoff_token_expiry_minutes: int = Field(
        default=10,
        description="Lifetime of the auto-login token in redirect URLs",
        ge=1,
        le=60,
    )
    session_cookie_name: str = Field(default="session_token")
    cookie_secure: bool = Field(
        default=True,
        description="Send the session cookie over HTTPS only",
    )
    admin_roles: frozenset[str] = Field(
        default=frozenset({"admin"}),
        description="Roles allowed to run administrative operations",
    )

    # Rate limiting
    issue_rate_limit_attempts: int = Field(
        default=5,
        description="Max code requests per email per window",
        ge=1,
        le=20,
    )
    verify_rate_limit_attempts: int = Field(
        default=10,
        description="Max verification attempts per email per window",
        ge=1,
        le=100,
    )
    rate_limit_window_minutes: int = Field(
        default=15,
        description="Rate limit window duration",
        ge=1,
        le=60,
    )

    # Application
    app_base_url: str = Field(
        default="http://localhost:8000",
        description="Base URL of the post-login auto-login redirect",
    )
    app_name: str = Field(
        default="Events",
        description="Application name for emails",
    )

    @classmethod
    def from_env(cls) -> "AuthConfig":
        """Build config from environment variables, keeping defaults for unset ones."""
        overrides = {}
        if os.getenv("OTP_EXPIRY_MINUTES"):
            overrides["otp_expiry_minutes"] = int(os.environ["OTP_EXPIRY_MINUTES"])
        if os.getenv("APP_BASE_URL"):
            overrides["app_base_url"] = os.environ["APP_BASE_URL"]
        if os.getenv("APP_NAME"):
            overrides["app_name"] = os.environ["APP_NAME"]
        overrides["cookie_secure"] = os.getenv("ENVIRONMENT", "production") == "production"
        return cls(**overrides)
