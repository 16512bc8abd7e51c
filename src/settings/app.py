"""Application settings powered by Pydantic BaseSettings."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.features.evaluation.constants import (
    DEFAULT_KEY_PREFIX,
    DEFAULT_MAX_DISCOVERY_LISTINGS,
    DEFAULT_MAX_POLL_ATTEMPTS,
    DEFAULT_POLL_INTERVAL_SECONDS,
    DEFAULT_REGION,
)


class AppSettings(BaseSettings):
    """Centralized environment configuration (``EVAL_`` prefixed)."""

    model_config = SettingsConfigDict(
        env_prefix="EVAL_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    proxy_base_url: str = Field(
        default="http://localhost:3001", description="Base URL of the AWS relay"
    )
    session_id: str | None = Field(
        default=None, description="Relay session holding the AWS credentials"
    )
    aws_region: str = Field(default=DEFAULT_REGION)
    bucket_name: str | None = Field(default=None)
    key_prefix: str = Field(default=DEFAULT_KEY_PREFIX)
    poll_interval_seconds: float = Field(default=DEFAULT_POLL_INTERVAL_SECONDS, ge=0)
    max_poll_attempts: int = Field(default=DEFAULT_MAX_POLL_ATTEMPTS, ge=1)
    max_discovery_listings: int = Field(default=DEFAULT_MAX_DISCOVERY_LISTINGS, ge=1)
    request_timeout_seconds: float = Field(default=30.0, ge=1.0, le=300.0)
    log_level: str = Field(default="INFO")
    log_json: bool = Field(default=True)


def get_settings() -> AppSettings:
    """Get a settings instance."""
    return AppSettings()
