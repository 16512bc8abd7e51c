"""Evaluation orchestrator: upload -> launch -> poll -> aggregate."""

import json
import random
import re
import threading
from collections.abc import Callable, Sequence
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from pathlib import Path

import structlog

from src.features.evaluation.aggregator import ResultAggregator
from src.features.evaluation.config import OrchestratorConfig
from src.features.evaluation.constants import JOB_NAME_PREFIX, OUTPUT_FOLDER_PREFIX
from src.features.evaluation.discovery import ResultFileFinder
from src.features.evaluation.errors import (
    ConfigError,
    NotFoundError,
    OrchestratorError,
    StageError,
)
from src.features.evaluation.events import (
    STAGE_PROGRESS,
    EventListener,
    Stage,
    StageEvent,
)
from src.features.evaluation.launcher import JobLauncher
from src.features.evaluation.models import (
    AggregationResult,
    EvaluationJob,
    EvaluationJobSummary,
    EvaluationSample,
    EvaluationSummary,
    JobListing,
    JobStatus,
    JobStatusSnapshot,
    LaunchResult,
    PollResult,
    UploadResult,
)
from src.features.evaluation.poller import StatusPoller, WaitFunc
from src.features.evaluation.protocols import EvaluationJobClient, ObjectStoreClient
from src.features.evaluation.serializer import serialize_jsonl
from src.features.evaluation.state_machine import PollerState
from src.features.evaluation.upload import UploadStage
from src.features.observability.logging import bind_job_context, clear_job_context


logger = structlog.get_logger()

MAX_LIST_RESULTS = 100


@dataclass(frozen=True)
class OrchestrationResult:
    """Outcome of one orchestration run.

    ``stage`` is COMPLETED on success, ERROR after the first failure, and
    POLLING while (or when) the job is still being watched.
    """

    stage: Stage
    upload: UploadResult | None = None
    launch: LaunchResult | None = None
    poll: PollResult | None = None
    aggregation: AggregationResult | None = None
    error: StageError | None = None

    @property
    def success(self) -> bool:
        """Check if the run produced aggregated metrics."""
        return self.stage == Stage.COMPLETED

    @property
    def cancelled(self) -> bool:
        """Check if polling was cancelled before the job ended."""
        return self.poll is not None and self.poll.state == PollerState.CANCELLED

    @property
    def job(self) -> EvaluationJob | None:
        """Get the latest known state of the job."""
        if self.poll is not None and self.poll.job is not None:
            return self.poll.job
        return self.launch.job if self.launch else None

    @property
    def summary(self) -> EvaluationSummary | None:
        """Get the aggregated results, if any."""
        return self.aggregation.summary if self.aggregation else None


def export_filename(job_id: str) -> str:
    """Get the export file name for a job id or ARN."""
    name = re.sub(r"[^A-Za-z0-9._-]+", "-", job_id.rsplit("/", 1)[-1]).strip("-")
    return f"evaluation-results-{name or 'job'}.json"


class EvaluationOrchestrator:
    """Runs the ground-truth evaluation pipeline against injected clients.

    Stages run strictly in order and the pipeline halts at the first
    failure. Progress is reported as ``StageEvent`` values to listeners;
    the orchestrator never renders anything itself.
    """

    def __init__(
        self,
        store: ObjectStoreClient,
        jobs: EvaluationJobClient,
        config: OrchestratorConfig | None = None,
        listeners: Sequence[EventListener] | None = None,
        rng: random.Random | None = None,
        wait: WaitFunc | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            store: Object store client.
            jobs: Evaluation job client.
            config: Stage settings.
            listeners: Receivers of progress events.
            rng: Random source for run suffixes.
            wait: Interruptible sleep used between status queries.
        """
        self._config = config or OrchestratorConfig()
        self._jobs = jobs
        self._listeners: list[EventListener] = list(listeners or [])
        self._upload = UploadStage(store, region=self._config.region, rng=rng)
        self._launcher = JobLauncher(jobs)
        self._poller = StatusPoller(
            jobs,
            interval_seconds=self._config.poll_interval_seconds,
            max_attempts=self._config.max_poll_attempts,
            wait=wait,
            on_status=self._on_status,
        )
        self._aggregator = ResultAggregator(
            store, ResultFileFinder(store, self._config.max_discovery_listings)
        )

        self._lock = threading.Lock()
        self._current_job: EvaluationJob | None = None
        self._last_event: StageEvent | None = None
        self._log = logger.bind(component="evaluation", subcomponent="orchestrator")

    def __enter__(self) -> "EvaluationOrchestrator":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def current_job(self) -> EvaluationJob | None:
        """Get the job of the latest run."""
        with self._lock:
            return self._current_job

    @property
    def last_event(self) -> StageEvent | None:
        """Get the most recent progress event."""
        with self._lock:
            return self._last_event

    @property
    def poller_state(self) -> PollerState:
        """Get the state of the status poller."""
        return self._poller.state

    def add_listener(self, listener: EventListener) -> None:
        """Register a receiver of progress events."""
        self._listeners.append(listener)

    def run(
        self,
        samples: Sequence[EvaluationSample],
        bucket_name: str | None = None,
        now: datetime | None = None,
    ) -> OrchestrationResult:
        """Run the whole pipeline, blocking until results are aggregated.

        Args:
            samples: Evaluation input.
            bucket_name: Target bucket (defaults to the configured one).
            now: Timestamp used for the key and job name dates.

        Returns:
            OrchestrationResult of the run.
        """
        started = self._upload_and_launch(samples, bucket_name, now)
        job = started.job
        if started.stage == Stage.ERROR or job is None:
            return started

        bind_job_context(job.job_id, job.job_name)
        try:
            poll = self._poller.run(job.job_id, job)
            return self._after_poll(started, poll)
        finally:
            clear_job_context()

    def submit(
        self,
        samples: Sequence[EvaluationSample],
        bucket_name: str | None = None,
        now: datetime | None = None,
        on_finished: Callable[[OrchestrationResult], None] | None = None,
    ) -> OrchestrationResult:
        """Upload and launch, then poll and aggregate in the background.

        Args:
            samples: Evaluation input.
            bucket_name: Target bucket (defaults to the configured one).
            now: Timestamp used for the key and job name dates.
            on_finished: Called with the final result once the background
                work ends. Not called when polling is cancelled.

        Returns:
            Result with stage POLLING once the job is running, or ERROR.
        """
        started = self._upload_and_launch(samples, bucket_name, now)
        job = started.job
        if started.stage == Stage.ERROR or job is None:
            return started

        def finish(poll: PollResult) -> None:
            result = self._after_poll(started, poll)
            if on_finished is not None:
                on_finished(result)

        self._poller.start(job.job_id, job, on_finished=finish)
        return started

    def close(self) -> bool:
        """Stop background polling.

        Returns:
            True if an active polling loop was cancelled.
        """
        cancelled = self._poller.cancel()
        if cancelled:
            self._log.info("orchestration_closed", polling_cancelled=True)
        return cancelled

    def load_results(self, job_id: str) -> AggregationResult:
        """Fetch a job's status and aggregate its results (manual refresh).

        Args:
            job_id: Job id or ARN.

        Returns:
            AggregationResult; a NotFoundError record when the job has not
            completed or reports no output location.
        """
        log = self._log.bind(job_id=job_id)
        try:
            if not job_id or not job_id.strip():
                msg = "Job id is required to load results"
                raise ConfigError(msg)
            response = self._jobs.get_evaluation_job(job_id)
            snapshot = JobStatusSnapshot.from_response(response)
            if snapshot.status != JobStatus.COMPLETED or not snapshot.output_location:
                msg = (
                    f"Job {job_id} has no results to load "
                    f"(status {snapshot.status.value})"
                )
                raise NotFoundError(msg, details={"status": snapshot.status.value})
        except OrchestratorError as e:
            log.warning(
                "load_results_failed", error_class=e.error_class.value, error=e.message
            )
            return AggregationResult(error=StageError.from_exception(e))

        job = EvaluationJob(
            job_id=job_id,
            job_name=str(response.get("jobName") or ""),
            output_location=snapshot.output_location,
        ).with_snapshot(snapshot)
        return self._aggregator.aggregate(snapshot.output_location, job)

    def export_results(self, job_id: str, destination: Path | str) -> AggregationResult:
        """Write a job's normalized result records as pretty-printed JSON.

        Args:
            job_id: Job id or ARN.
            destination: Output file, or a directory receiving
                ``evaluation-results-<job>.json``.

        Returns:
            AggregationResult of the exported job. Nothing is written when
            it carries an error.
        """
        result = self.load_results(job_id)
        if not result.success:
            return result

        path = Path(destination)
        if path.is_dir():
            path = path / export_filename(job_id)
        path.write_text(
            json.dumps(result.records, indent=2, ensure_ascii=False), encoding="utf-8"
        )
        self._log.info("results_exported", job_id=job_id, path=str(path))
        return result

    def list_jobs(
        self,
        max_results: int = 10,
        next_token: str | None = None,
    ) -> JobListing:
        """List recent evaluation jobs, newest first as returned by Bedrock.

        Entries with an unrecognized status are skipped.

        Raises:
            ConfigError: If max_results is out of range.
            TransportError: If the listing failed.
            FormatError: If the listing is malformed.
        """
        if not 1 <= max_results <= MAX_LIST_RESULTS:
            msg = f"max_results must be between 1 and {MAX_LIST_RESULTS}"
            raise ConfigError(msg)

        page = self._jobs.list_evaluation_jobs(max_results, next_token)
        raw_jobs = page.get("jobSummaries") or []
        jobs: list[EvaluationJobSummary] = []
        for entry in raw_jobs if isinstance(raw_jobs, list) else []:
            if not isinstance(entry, dict):
                continue
            try:
                jobs.append(EvaluationJobSummary.from_response(entry))
            except OrchestratorError as e:
                self._log.warning("job_listing_entry_skipped", error=e.message)

        token = page.get("nextToken")
        return JobListing(
            jobs=jobs, next_token=token if isinstance(token, str) else None
        )

    def _upload_and_launch(
        self,
        samples: Sequence[EvaluationSample],
        bucket_name: str | None,
        now: datetime | None,
    ) -> OrchestrationResult:
        # A new run always replaces the previous polling loop.
        self._poller.cancel()
        now = now or datetime.now(UTC)
        bucket = bucket_name if bucket_name is not None else self._config.bucket_name

        self._emit(Stage.UPLOADING, "Uploading evaluation input")
        if not samples:
            error = ConfigError("No ground truth samples to evaluate")
            return self._fail(OrchestrationResult(stage=Stage.UPLOADING), error)

        upload = self._upload.upload(
            bucket or "", self._config.key_prefix, serialize_jsonl(samples), now
        )
        result = OrchestrationResult(stage=Stage.UPLOADING, upload=upload)
        if not upload.success or upload.target is None:
            return self._fail(result, upload.error)

        target = upload.target
        output_folder = f"{OUTPUT_FOLDER_PREFIX}-{target.suffix}"
        job_name = f"{JOB_NAME_PREFIX}-{now.strftime('%Y-%m-%d')}-{target.suffix}"
        self._emit(Stage.STARTING, f"Starting evaluation job {job_name}")
        launch = self._launcher.start(
            target.bucket, target.key, output_folder, job_name
        )
        result = replace(result, stage=Stage.STARTING, launch=launch)
        if not launch.success or launch.job is None:
            return self._fail(result, launch.error)

        job = launch.job
        with self._lock:
            self._current_job = job
        self._emit(Stage.POLLING, f"Evaluation job {job.job_id} started", job.job_id)
        self._log.info(
            "orchestration_job_started",
            job_id=job.job_id,
            job_name=job.job_name,
            input_uri=target.uri,
        )
        return replace(result, stage=Stage.POLLING)

    def _after_poll(
        self, started: OrchestrationResult, poll: PollResult
    ) -> OrchestrationResult:
        result = replace(started, poll=poll)
        if poll.state == PollerState.CANCELLED:
            self._log.info("orchestration_cancelled", polls=poll.polls)
            return result
        if not poll.success or poll.job is None:
            return self._fail(result, poll.error)

        job = poll.job
        with self._lock:
            self._current_job = job
        self._emit(Stage.AGGREGATING, "Fetching evaluation results", job.job_id)
        aggregation = self._aggregator.aggregate(job.output_location, job)
        result = replace(result, stage=Stage.AGGREGATING, aggregation=aggregation)
        if not aggregation.success or aggregation.summary is None:
            return self._fail(result, aggregation.error)

        summary = aggregation.summary
        self._emit(
            Stage.COMPLETED,
            f"Aggregated {len(summary.metrics)} metrics over "
            f"{summary.total_turns} turns",
            job.job_id,
        )
        return replace(result, stage=Stage.COMPLETED)

    def _fail(
        self,
        result: OrchestrationResult,
        error: StageError | OrchestratorError | None,
    ) -> OrchestrationResult:
        if isinstance(error, OrchestratorError):
            error = StageError.from_exception(error)
        if error is None:
            error = StageError.from_exception(
                OrchestratorError(f"{result.stage.value} stage failed")
            )

        job = result.job
        self._log.error(
            "orchestration_failed",
            failed_stage=result.stage.value,
            error_class=error.error_class.value,
            error=error.message,
        )
        self._emit(
            Stage.ERROR,
            error.message,
            job.job_id if job else None,
            error=error,
            progress=STAGE_PROGRESS.get(result.stage, 0),
        )
        return replace(result, stage=Stage.ERROR, error=error)

    def _on_status(self, job: EvaluationJob) -> None:
        with self._lock:
            self._current_job = job
        self._emit(Stage.POLLING, f"Job status: {job.status.value}", job.job_id)

    def _emit(
        self,
        stage: Stage,
        message: str,
        job_id: str | None = None,
        error: StageError | None = None,
        progress: int | None = None,
    ) -> None:
        event = StageEvent(
            stage=stage,
            message=message,
            progress=STAGE_PROGRESS.get(stage, 0) if progress is None else progress,
            job_id=job_id,
            error=error,
        )
        with self._lock:
            self._last_event = event
        for listener in list(self._listeners):
            listener(event)
