"""Configuration for the NumSphere call-flow service.

Security Note:
    - The Twilio auth token MUST be provided via environment variables
    - Signature validation cannot be enabled without a token in production
"""

import os
from enum import Enum
from functools import lru_cache
from typing import Dict, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _is_production() -> bool:
    """Check if running in production environment."""
    env = os.getenv("ENVIRONMENT", "development").lower()
    return env in ("production", "prod", "staging")


class LogFormat(str, Enum):
    """Log output formats."""

    JSON = "json"
    CONSOLE = "console"


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    environment: str = Field(
        default="development",
        description="Environment: development, staging, production",
    )

    # Service settings
    service_name: str = "numsphere-call-flows"
    host: str = "0.0.0.0"
    port: int = Field(default=8090, ge=1024, le=65535)
    debug: bool = False
    log_level: str = "info"
    log_format: LogFormat = Field(
        default_factory=lambda: LogFormat.JSON if _is_production() else LogFormat.CONSOLE,
    )

    # Callback URLs
    public_base_url: str = Field(
        default="",
        description="Public root used for callback URLs (e.g., https://your-domain.com)",
    )
    webhook_prefix: str = Field(
        default="/webhooks/twilio",
        description="Router prefix for telephony webhooks",
    )

    # Voice
    default_voice: str = Field(default="alice", description="Voice used when a flow sets none")

    # Twilio
    twilio_auth_token: str = Field(default="", description="Twilio Auth Token")
    twilio_validate_signatures: bool = Field(
        default=False,
        description="Reject webhooks without a valid X-Twilio-Signature",
    )

    # Flow editor limits
    max_blocks_per_flow: int = Field(default=500, ge=1)

    # Storage
    flows_seed_file: Optional[str] = Field(
        default=None,
        description="JSON file with numbers and flows loaded at startup",
    )

    # Plan limits in minutes per month (-1 = unlimited)
    plan_minute_limits: Dict[str, int] = Field(
        default_factory=lambda: {"starter": 500, "business": 2000, "enterprise": -1},
    )
    default_minute_limit: int = 500
    usage_warning_ratio: float = Field(default=0.9, gt=0, le=1)

    @field_validator("webhook_prefix")
    @classmethod
    def validate_webhook_prefix(cls, v: str) -> str:
        """Normalize the webhook prefix to a leading slash and no trailing one."""
        v = "/" + v.strip("/")
        return "" if v == "/" else v

    @field_validator("public_base_url")
    @classmethod
    def validate_public_base_url(cls, v: str) -> str:
        return v.rstrip("/")

    @model_validator(mode="after")
    def validate_signature_settings(self) -> "Settings":
        """Signature validation needs a token to validate against."""
        if self.twilio_validate_signatures and not self.twilio_auth_token:
            raise ValueError(
                "TWILIO_AUTH_TOKEN is required when TWILIO_VALIDATE_SIGNATURES is enabled"
            )
        return self

    def minute_limit_for(self, plan_id: Optional[str]) -> int:
        """Get the monthly minute limit for a plan, falling back to the default."""
        if plan_id and plan_id in self.plan_minute_limits:
            return self.plan_minute_limits[plan_id]
        return self.default_minute_limit


@lru_cache
def get_settings() -> Settings:
    """Get cached settings."""
    return Settings()
