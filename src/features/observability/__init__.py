"""Observability module for structured logging."""

from src.features.observability.logging import (
    bind_job_context,
    clear_job_context,
    configure_logging,
    get_logger,
)


__all__ = [
    "bind_job_context",
    "clear_job_context",
    "configure_logging",
    "get_logger",
]
