"""Ground-truth evaluation job orchestration.

This module drives a Bedrock RAG evaluation end to end:
- Upload of the serialized ground-truth input to S3
- Job launch with job-id extraction across response shapes
- Cancellable status polling with a bounded attempt count
- Result file discovery and per-metric aggregation
"""

from src.features.evaluation.aggregator import (
    ResultAggregator,
    metric_category,
    normalize_records,
    parse_turn,
    summarize_records,
)
from src.features.evaluation.config import OrchestratorConfig
from src.features.evaluation.discovery import (
    ResultFileFinder,
    find_result_file,
    infer_subdirectories,
    parse_s3_uri,
    select_result_key,
)
from src.features.evaluation.errors import (
    ConfigError,
    ErrorClass,
    FormatError,
    JobFailedError,
    NotFoundError,
    OrchestratorError,
    PollTimeoutError,
    StageError,
    TransportError,
    TransportErrorCode,
)
from src.features.evaluation.events import Stage, StageEvent
from src.features.evaluation.launcher import JobLauncher, extract_job_id
from src.features.evaluation.loader import load_ground_truth
from src.features.evaluation.models import (
    AggregatedMetric,
    AggregationResult,
    ConversationTurn,
    EvaluationJob,
    EvaluationJobSummary,
    EvaluationSample,
    EvaluationSummary,
    JobListing,
    JobStatus,
    LaunchResult,
    MetricResult,
    PollResult,
    UploadResult,
    UploadTarget,
)
from src.features.evaluation.orchestrator import (
    EvaluationOrchestrator,
    OrchestrationResult,
    export_filename,
)
from src.features.evaluation.poller import StatusPoller
from src.features.evaluation.protocols import EvaluationJobClient, ObjectStoreClient
from src.features.evaluation.serializer import build_evaluation_record, serialize_jsonl
from src.features.evaluation.state_machine import (
    PollerState,
    PollerStateError,
    PollerStateMachine,
)
from src.features.evaluation.upload import UploadStage, derive_run_suffix


__all__ = [
    # Orchestration
    "EvaluationOrchestrator",
    "OrchestrationResult",
    "OrchestratorConfig",
    "export_filename",
    "Stage",
    "StageEvent",
    # Stages
    "UploadStage",
    "JobLauncher",
    "StatusPoller",
    "ResultAggregator",
    "ResultFileFinder",
    # Protocols
    "ObjectStoreClient",
    "EvaluationJobClient",
    # Models
    "AggregatedMetric",
    "AggregationResult",
    "ConversationTurn",
    "EvaluationJob",
    "EvaluationJobSummary",
    "EvaluationSample",
    "EvaluationSummary",
    "JobListing",
    "JobStatus",
    "LaunchResult",
    "MetricResult",
    "PollResult",
    "UploadResult",
    "UploadTarget",
    # State machine
    "PollerState",
    "PollerStateError",
    "PollerStateMachine",
    # Errors
    "ErrorClass",
    "OrchestratorError",
    "ConfigError",
    "TransportError",
    "TransportErrorCode",
    "FormatError",
    "NotFoundError",
    "JobFailedError",
    "PollTimeoutError",
    "StageError",
    # Helpers
    "build_evaluation_record",
    "serialize_jsonl",
    "load_ground_truth",
    "derive_run_suffix",
    "extract_job_id",
    "parse_s3_uri",
    "select_result_key",
    "infer_subdirectories",
    "find_result_file",
    "metric_category",
    "normalize_records",
    "parse_turn",
    "summarize_records",
]
