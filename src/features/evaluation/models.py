"""Data models for the evaluation orchestrator."""

import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, model_validator

from src.features.evaluation.errors import FormatError, StageError
from src.features.evaluation.state_machine import PollerState


class TextSegment(BaseModel):
    """Span of the generated response backed by a source attribution."""

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    begin_offset: int = Field(default=0, alias="beginOffset")
    end_offset: int = Field(default=0, alias="endOffset")
    snippet_text: str = Field(default="", alias="snippetText")

    @model_validator(mode="before")
    @classmethod
    def unwrap_snippet_excerpt(cls, data: object) -> object:
        """Accept Q Business ``snippetExcerpt: {text}`` segments."""
        if isinstance(data, dict) and "snippetExcerpt" in data:
            excerpt = data.get("snippetExcerpt") or {}
            data = {k: v for k, v in data.items() if k != "snippetExcerpt"}
            if isinstance(excerpt, dict):
                data.setdefault("snippetText", excerpt.get("text") or "")
        return data


class SourceAttribution(BaseModel):
    """Document that the assistant cited while answering a prompt."""

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    title: str = ""
    url: str = ""
    snippet: str = ""
    text_segments: list[TextSegment] = Field(
        default_factory=list, alias="textMessageSegments"
    )


class EvaluationSample(BaseModel):
    """One prompt / ground-truth pair of the evaluation input.

    The response and its attributions are filled in when the samples were
    answered by the assistant before being handed to the orchestrator.
    """

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    prompt: Annotated[str, Field(min_length=1)]
    ground_truth: str = Field(default="", alias="groundTruth")
    response: str = ""
    source_attributions: list[SourceAttribution] = Field(
        default_factory=list, alias="sourceAttributions"
    )


class UploadTarget(BaseModel):
    """Location of the uploaded evaluation input."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    bucket: Annotated[str, Field(min_length=1)]
    key: Annotated[str, Field(min_length=1)]
    content_type: str
    suffix: Annotated[str, Field(min_length=1, description="Run suffix used in names")]

    @property
    def uri(self) -> str:
        """Get the s3:// URI of the uploaded object."""
        return f"s3://{self.bucket}/{self.key}"


class JobStatus(str, Enum):
    """Status of a remote evaluation job.

    Bedrock reports ``InProgress`` style values; ``parse`` normalizes them.
    """

    STARTING = "STARTING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    STOPPING = "STOPPING"
    STOPPED = "STOPPED"
    DELETING = "DELETING"

    @classmethod
    def parse(cls, raw: object) -> "JobStatus":
        """Parse a raw status value.

        Args:
            raw: Status as reported by the job API.

        Returns:
            Matching JobStatus.

        Raises:
            FormatError: If the value is not a known status.
        """
        if not isinstance(raw, str) or not raw.strip():
            msg = f"Missing or invalid job status: {raw!r}"
            raise FormatError(msg)
        normalized = re.sub(r"(?<=[a-z])(?=[A-Z])", "_", raw.strip())
        normalized = re.sub(r"[\s-]+", "_", normalized).upper()
        try:
            return cls(normalized)
        except ValueError as e:
            msg = f"Unknown job status: {raw!r}"
            raise FormatError(msg) from e

    @property
    def is_terminal(self) -> bool:
        """Check if no further status change is expected."""
        return self == JobStatus.COMPLETED or self.is_failure

    @property
    def is_failure(self) -> bool:
        """Check if the status is a terminal failure."""
        return self in (JobStatus.FAILED, JobStatus.STOPPED, JobStatus.DELETING)


class JobStatusSnapshot(BaseModel):
    """One status observation of a remote evaluation job."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    status: JobStatus
    output_location: str | None = None
    created_at: datetime | None = None
    last_modified_at: datetime | None = None
    failure_messages: list[str] = Field(default_factory=list)

    @classmethod
    def from_response(cls, data: object) -> "JobStatusSnapshot":
        """Build a snapshot from a job status response.

        Args:
            data: Decoded JSON response of the job status call.

        Returns:
            JobStatusSnapshot instance.

        Raises:
            FormatError: If the response is not an object or has no valid status.
        """
        if not isinstance(data, dict):
            msg = f"Job status response must be an object, got {type(data).__name__}"
            raise FormatError(msg)
        output_config = data.get("outputDataConfig") or {}
        failures = data.get("failureMessages") or []
        return cls(
            status=JobStatus.parse(data.get("status")),
            output_location=output_config.get("s3Uri")
            if isinstance(output_config, dict)
            else None,
            created_at=_parse_timestamp(data.get("creationTime")),
            last_modified_at=_parse_timestamp(data.get("lastModifiedTime")),
            failure_messages=[str(f) for f in failures]
            if isinstance(failures, list)
            else [],
        )


class EvaluationJob(BaseModel):
    """A remote evaluation job started by one orchestration run.

    The job id never changes; only the poller replaces the status fields.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    job_id: Annotated[str, Field(min_length=1)]
    job_name: str
    output_location: str
    status: JobStatus = JobStatus.STARTING
    created_at: datetime | None = None
    last_modified_at: datetime | None = None
    failure_messages: list[str] = Field(default_factory=list)

    def with_snapshot(self, snapshot: JobStatusSnapshot) -> "EvaluationJob":
        """Return a copy updated with a status observation.

        Args:
            snapshot: Latest status observation.

        Returns:
            Updated EvaluationJob with the same job id.
        """
        return self.model_copy(
            update={
                "status": snapshot.status,
                "output_location": snapshot.output_location or self.output_location,
                "created_at": snapshot.created_at or self.created_at,
                "last_modified_at": snapshot.last_modified_at
                or self.last_modified_at,
                "failure_messages": snapshot.failure_messages,
            }
        )


class EvaluationJobSummary(BaseModel):
    """Entry of the previous-evaluations listing."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    job_id: str
    job_name: str
    status: JobStatus
    created_at: datetime | None = None
    last_modified_at: datetime | None = None
    output_location: str | None = None

    @classmethod
    def from_response(cls, data: dict[str, object]) -> "EvaluationJobSummary":
        """Build a summary from a job listing entry.

        Raises:
            FormatError: If the entry has no usable status.
        """
        output_config = data.get("outputDataConfig")
        return cls(
            job_id=str(data.get("jobArn") or data.get("jobId") or ""),
            job_name=str(data.get("jobName") or ""),
            status=JobStatus.parse(data.get("status")),
            created_at=_parse_timestamp(data.get("creationTime")),
            last_modified_at=_parse_timestamp(data.get("lastModifiedTime")),
            output_location=output_config.get("s3Uri")
            if isinstance(output_config, dict)
            else None,
        )


class JobListing(BaseModel):
    """One page of evaluation jobs."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    jobs: list[EvaluationJobSummary] = Field(default_factory=list)
    next_token: str | None = None


class MetricResult(BaseModel):
    """Score of one metric for one conversation turn."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    metric_name: Annotated[str, Field(min_length=1)]
    score: float
    explanation: str | None = None
    evaluator_model: str | None = None


class ConversationTurn(BaseModel):
    """One prompt/response exchange of an evaluation result."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    prompt: str = ""
    reference_response: str = ""
    response: str = ""
    metric_results: list[MetricResult] = Field(default_factory=list)


class AggregatedMetric(BaseModel):
    """Average of one metric across every turn of every conversation."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: Annotated[str, Field(min_length=1)]
    average_score: float
    sample_count: Annotated[int, Field(ge=1)]
    category: str
    explanation: str | None = None
    evaluator_model: str | None = None


class EvaluationSummary(BaseModel):
    """Aggregated view of one evaluation result file."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    metrics: list[AggregatedMetric] = Field(default_factory=list)
    turns: list[ConversationTurn] = Field(default_factory=list)
    total_conversations: int = 0
    total_turns: int = 0
    result_key: str
    output_location: str
    status: JobStatus | None = None
    created_at: datetime | None = None
    completed_at: datetime | None = None

    def metric(self, name: str) -> AggregatedMetric | None:
        """Look up an aggregated metric by name."""
        for metric in self.metrics:
            if metric.name == name:
                return metric
        return None


@dataclass(frozen=True)
class UploadResult:
    """Result of the upload stage."""

    target: UploadTarget | None = None
    error: StageError | None = None
    put_attempts: int = 0
    bucket_created: bool = False

    @property
    def success(self) -> bool:
        """Check if the input was stored."""
        return self.error is None and self.target is not None


@dataclass(frozen=True)
class LaunchResult:
    """Result of starting a remote evaluation job."""

    job: EvaluationJob | None = None
    error: StageError | None = None

    @property
    def success(self) -> bool:
        """Check if the job was accepted."""
        return self.error is None and self.job is not None


@dataclass(frozen=True)
class PollResult:
    """Result of a polling loop."""

    state: PollerState
    job: EvaluationJob | None = None
    error: StageError | None = None
    polls: int = 0
    failed_polls: int = 0

    @property
    def success(self) -> bool:
        """Check if the job was observed completing."""
        return self.state == PollerState.COMPLETED


@dataclass(frozen=True)
class AggregationResult:
    """Result of aggregating a job's output."""

    summary: EvaluationSummary | None = None
    error: StageError | None = None
    records: list[dict[str, object]] = field(default_factory=list)

    @property
    def success(self) -> bool:
        """Check if metrics were aggregated."""
        return self.error is None and self.summary is not None


def _parse_timestamp(value: object) -> datetime | None:
    """Parse an ISO-8601 timestamp or epoch seconds, ignoring bad values."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=UTC)
    if isinstance(value, str) and value:
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    return None
