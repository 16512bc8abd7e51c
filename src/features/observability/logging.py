"""Structured logging configuration."""

import logging
import sys
from typing import TextIO

import structlog


def _resolve_level(level: int | str) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.strip().upper())
    if not isinstance(resolved, int):
        msg = f"Unknown log level: {level}"
        raise ValueError(msg)
    return resolved


def configure_logging(
    level: int | str = logging.INFO,
    output: TextIO = sys.stderr,
    json_format: bool = True,
) -> None:
    """Configure structured logging for the orchestrator.

    JSON lines with ISO timestamps by default; a colored console renderer
    when ``json_format`` is False.

    Args:
        level: Logging level or level name (default: INFO).
        output: Output stream (default: stderr).
        json_format: Whether to use JSON format (default: True).

    Raises:
        ValueError: If the level name is unknown.
    """
    numeric_level = _resolve_level(level)
    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if json_format:
        processors.append(structlog.processors.JSONRenderer(sort_keys=True))
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=output),
        cache_logger_on_first_use=True,
    )

    # httpx logs every request through the standard library
    logging.basicConfig(format="%(message)s", stream=output, level=numeric_level)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a bound logger instance."""
    logger: structlog.stdlib.BoundLogger = structlog.get_logger(name)
    return logger


def bind_job_context(job_id: str, job_name: str | None = None) -> None:
    """Bind the evaluation job to all subsequent log messages.

    Args:
        job_id: Identifier of the remote evaluation job.
        job_name: Name of the job, if known.
    """
    values = {"job_id": job_id}
    if job_name:
        values["job_name"] = job_name
    structlog.contextvars.bind_contextvars(**values)


def clear_job_context() -> None:
    """Clear the evaluation job from log messages."""
    structlog.contextvars.unbind_contextvars("job_id", "job_name")
