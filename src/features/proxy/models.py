"""Configuration models for the relay proxy clients."""

import random
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.features.evaluation.errors import TransportError, TransportErrorCode
from src.features.proxy.constants import (
    HTTP_STATUS_SERVER_ERROR_MIN,
    HTTP_STATUS_TOO_MANY_REQUESTS,
)


class RetryPolicy(BaseModel):
    """Retry behaviour for idempotent proxy reads.

    Uses exponential backoff: delay = base_delay_ms * (exponential_base ^ attempt).
    Writes are never retried at this layer.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_retries: Annotated[int, Field(ge=0, le=10)] = 2
    base_delay_ms: Annotated[int, Field(ge=0, le=60000)] = 500
    max_delay_ms: Annotated[int, Field(ge=0, le=300000)] = 10000
    exponential_base: Annotated[float, Field(ge=1.0, le=5.0)] = 2.0
    jitter_factor: Annotated[float, Field(ge=0.0, le=1.0)] = 0.1

    def should_retry(self, error: TransportError, attempt: int) -> bool:
        """Determine if a read should be retried.

        Args:
            error: The transport error that occurred.
            attempt: Current attempt number (0-indexed).

        Returns:
            True if the request should be retried.
        """
        if attempt >= self.max_retries:
            return False

        if error.code == TransportErrorCode.NETWORK:
            return True

        status = error.status_code or 0
        return (
            status == HTTP_STATUS_TOO_MANY_REQUESTS
            or status >= HTTP_STATUS_SERVER_ERROR_MIN
        )

    def get_delay_ms(self, attempt: int) -> int:
        """Calculate delay before the next retry attempt.

        Args:
            attempt: Current attempt number (0-indexed).

        Returns:
            Delay in milliseconds.
        """
        delay = self.base_delay_ms * (self.exponential_base**attempt)
        delay = min(delay, self.max_delay_ms)

        jitter = delay * self.jitter_factor * random.random()  # noqa: S311
        return int(delay + jitter)


class ProxyConfig(BaseModel):
    """Connection settings for the AWS relay proxy."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    base_url: Annotated[str, Field(min_length=1, description="Proxy base URL")]
    timeout_seconds: Annotated[float, Field(ge=1.0, le=300.0)] = 30.0
    session_id: str | None = Field(
        default=None, description="Session whose stored credentials the proxy uses"
    )
    user_agent: Annotated[str, Field(min_length=1, max_length=500)] = (
        "ground-truth-eval/1.0"
    )
    retry_policy: RetryPolicy = Field(default_factory=RetryPolicy)

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Require an http(s) URL and drop any trailing slash."""
        if not v.startswith(("http://", "https://")):
            msg = f"Proxy base URL must start with http:// or https://: {v}"
            raise ValueError(msg)
        return v.rstrip("/")
