"""Error types for the evaluation orchestrator.

Every stage reports failures through one of these classes. Stages catch
them at their own boundary and return a result carrying a ``StageError``
record, so a failure never propagates past the stage that produced it.
"""

from enum import Enum
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field


class ErrorClass(str, Enum):
    """Classification of orchestration errors.

    - CONFIG: Missing or invalid required input, never retried
    - TRANSPORT: Network or HTTP failure talking to the proxy
    - FORMAT: Malformed URI, unparsable JSON or unexpected shape
    - NOT_FOUND: Result discovery exhausted every prefix
    - JOB_FAILED: Remote evaluation job ended in a failure state
    - TIMEOUT: Poll attempt budget exhausted before a terminal status
    """

    CONFIG = "CONFIG"
    TRANSPORT = "TRANSPORT"
    FORMAT = "FORMAT"
    NOT_FOUND = "NOT_FOUND"
    JOB_FAILED = "JOB_FAILED"
    TIMEOUT = "TIMEOUT"


class TransportErrorCode(str, Enum):
    """Sub-classification of transport failures.

    The upload stage only retries on NO_SUCH_BUCKET.
    """

    NO_SUCH_BUCKET = "NoSuchBucket"
    ACCESS_DENIED = "AccessDenied"
    CORS = "CORS"
    NETWORK = "Network"
    HTTP = "HTTP"


ErrorDetails = dict[str, str | int | float | bool | None]


class OrchestratorError(Exception):
    """Base exception for orchestration errors.

    Provides structured error information for logging and stage results.
    """

    error_class: ErrorClass = ErrorClass.CONFIG

    def __init__(self, message: str, details: ErrorDetails | None = None) -> None:
        """Initialize the orchestrator error.

        Args:
            message: Human-readable error message.
            details: Additional structured error details.
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, str | ErrorDetails]:
        """Convert error to dictionary for logging/serialization.

        Returns:
            Dictionary representation of the error.
        """
        return {
            "error_class": self.error_class.value,
            "message": self.message,
            "details": self.details,
        }


class ConfigError(OrchestratorError):
    """Required input is missing or invalid."""

    error_class = ErrorClass.CONFIG


class TransportError(OrchestratorError):
    """Network-level or HTTP failure during a proxy call.

    Attributes:
        code: Sub-classification used for retry and troubleshooting decisions.
        status_code: HTTP status code if a response was received.
    """

    error_class = ErrorClass.TRANSPORT

    def __init__(
        self,
        message: str,
        code: TransportErrorCode = TransportErrorCode.NETWORK,
        status_code: int | None = None,
    ) -> None:
        super().__init__(
            message, details={"code": code.value, "status_code": status_code}
        )
        self.code = code
        self.status_code = status_code

    @property
    def is_missing_bucket(self) -> bool:
        """Check if the failure means the target bucket does not exist."""
        return self.code == TransportErrorCode.NO_SUCH_BUCKET


class FormatError(OrchestratorError):
    """Malformed URI, unparsable payload or unexpected document shape."""

    error_class = ErrorClass.FORMAT


class NotFoundError(OrchestratorError):
    """No result file could be found under the output location."""

    error_class = ErrorClass.NOT_FOUND


class JobFailedError(OrchestratorError):
    """The remote evaluation job reached a failure status."""

    error_class = ErrorClass.JOB_FAILED

    def __init__(
        self, job_id: str, status: str, reasons: list[str] | None = None
    ) -> None:
        """Initialize the error.

        Args:
            job_id: Identifier of the failed job.
            status: Terminal status reported by the remote service.
            reasons: Failure messages reported by the remote service.
        """
        self.job_id = job_id
        self.status = status
        self.reasons = reasons or []
        message = f"Evaluation job {job_id} ended with status {status}"
        if self.reasons:
            message += f": {'; '.join(self.reasons)}"
        super().__init__(message, details={"job_id": job_id, "status": status})


class PollTimeoutError(OrchestratorError):
    """The poller gave up after its maximum number of attempts."""

    error_class = ErrorClass.TIMEOUT

    def __init__(self, job_id: str, attempts: int) -> None:
        self.job_id = job_id
        self.attempts = attempts
        super().__init__(
            f"Evaluation job {job_id} did not finish after {attempts} status checks",
            details={"job_id": job_id, "attempts": attempts},
        )


class StageError(BaseModel):
    """Serializable error record attached to stage results."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    error_class: ErrorClass = Field(description="Error classification")
    message: Annotated[str, Field(min_length=1, description="Error message")]
    code: str | None = Field(
        default=None, description="Transport error code, if any"
    )
    details: ErrorDetails = Field(
        default_factory=dict, description="Additional error details"
    )

    @classmethod
    def from_exception(cls, error: OrchestratorError) -> "StageError":
        """Create a StageError from an OrchestratorError exception.

        Args:
            error: The exception to convert.

        Returns:
            StageError instance.
        """
        code = error.code.value if isinstance(error, TransportError) else None
        return cls(
            error_class=error.error_class,
            message=error.message or error.error_class.value,
            code=code,
            details=error.details,
        )
