"""Configuration model for the evaluation orchestrator."""

from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field

from src.features.evaluation.constants import (
    DEFAULT_KEY_PREFIX,
    DEFAULT_MAX_DISCOVERY_LISTINGS,
    DEFAULT_MAX_POLL_ATTEMPTS,
    DEFAULT_POLL_INTERVAL_SECONDS,
    DEFAULT_REGION,
)


class OrchestratorConfig(BaseModel):
    """Settings shared by the orchestration stages.

    The bucket name is optional here; it can be passed per run instead.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    bucket_name: str | None = Field(
        default=None, description="Default bucket for inputs and outputs"
    )
    region: Annotated[str, Field(min_length=1)] = DEFAULT_REGION
    key_prefix: Annotated[str, Field(min_length=1)] = DEFAULT_KEY_PREFIX
    poll_interval_seconds: Annotated[float, Field(ge=0.0, le=3600.0)] = (
        DEFAULT_POLL_INTERVAL_SECONDS
    )
    max_poll_attempts: Annotated[int, Field(ge=1, le=100000)] = (
        DEFAULT_MAX_POLL_ATTEMPTS
    )
    max_discovery_listings: Annotated[int, Field(ge=1, le=10000)] = (
        DEFAULT_MAX_DISCOVERY_LISTINGS
    )
