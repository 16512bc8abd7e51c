"""Unit tests for the evaluation orchestrator."""

import json
import random
import threading
from pathlib import Path

import pytest

from src.features.evaluation.config import OrchestratorConfig
from src.features.evaluation.errors import ErrorClass, TransportError
from src.features.evaluation.events import Stage, StageEvent
from src.features.evaluation.models import EvaluationSample, JobStatus
from src.features.evaluation.orchestrator import (
    EvaluationOrchestrator,
    OrchestrationResult,
    export_filename,
)
from src.features.evaluation.state_machine import PollerState
from tests.helpers.fakes import (
    FakeClock,
    FakeJobClient,
    FakeObjectStore,
    result_record,
    status_response,
)
from tests.helpers.time import FIXED_DATE, FIXED_NOW


BUCKET = "mbe-eval-1718000000-k3x9q2"
OUTPUT_URI = f"s3://{BUCKET}/output-k3x9q2/"
SAMPLES = [
    EvaluationSample(prompt="What is S3?", ground_truth="Object storage"),
    EvaluationSample(prompt="What is IAM?", ground_truth="Access management"),
]


def make_store() -> FakeObjectStore:
    store = FakeObjectStore()
    store.add_objects(
        BUCKET,
        {
            "output-k3x9q2/job-123/models/out/evaluation_results.json": [
                result_record({"Builtin.Helpfulness": 0.8}),
                result_record({"Builtin.Helpfulness": 0.6}),
            ]
        },
    )
    return store


def make_orchestrator(
    store: FakeObjectStore,
    jobs: FakeJobClient,
    events: list[StageEvent] | None = None,
    clock: FakeClock | None = None,
) -> EvaluationOrchestrator:
    return EvaluationOrchestrator(
        store,
        jobs,
        config=OrchestratorConfig(bucket_name=BUCKET),
        listeners=[events.append] if events is not None else None,
        rng=random.Random(0),
        wait=(clock or FakeClock()).wait,
    )


class TestOrchestratorRun:
    """Tests for the blocking pipeline."""

    @pytest.mark.unit
    def test_successful_run(self) -> None:
        """Test upload -> launch -> poll -> aggregate with events in order."""
        store = make_store()
        jobs = FakeJobClient(
            [
                status_response("InProgress"),
                status_response("Completed", OUTPUT_URI),
            ]
        )
        events: list[StageEvent] = []
        orchestrator = make_orchestrator(store, jobs, events)

        result = orchestrator.run(SAMPLES, now=FIXED_NOW)

        assert result.success
        assert result.summary is not None
        metric = result.summary.metric("Builtin.Helpfulness")
        assert metric is not None
        assert metric.average_score == pytest.approx(0.7)
        assert jobs.create_calls == [
            (
                BUCKET,
                f"mbe-responses-{FIXED_DATE}-k3x9q2.jsonl",
                "output-k3x9q2",
                f"eval-job-{FIXED_DATE}-k3x9q2",
            )
        ]
        stages = [event.stage for event in events]
        assert stages[:3] == [Stage.UPLOADING, Stage.STARTING, Stage.POLLING]
        assert stages[-2:] == [Stage.AGGREGATING, Stage.COMPLETED]
        assert events[-1].progress == 100
        assert orchestrator.current_job is not None
        assert orchestrator.current_job.status == JobStatus.COMPLETED

    @pytest.mark.unit
    def test_uploaded_input_is_jsonl(self) -> None:
        """Test the uploaded object holds one record per sample."""
        store = make_store()
        jobs = FakeJobClient([status_response("Completed", OUTPUT_URI)])
        orchestrator = make_orchestrator(store, jobs)

        orchestrator.run(SAMPLES, now=FIXED_NOW)

        _, _, content, _ = store.put_calls[0]
        assert len(content.split("\n")) == 2

    @pytest.mark.unit
    def test_upload_failure_halts_pipeline(self) -> None:
        """Test the launcher is never invoked after an upload failure."""
        store = make_store()
        store.put_errors = [TransportError("AccessDenied")]
        jobs = FakeJobClient()
        events: list[StageEvent] = []
        orchestrator = make_orchestrator(store, jobs, events)

        result = orchestrator.run(SAMPLES, now=FIXED_NOW)

        assert result.stage == Stage.ERROR
        assert result.error is not None
        assert result.error.error_class == ErrorClass.TRANSPORT
        assert jobs.create_calls == []
        assert events[-1].stage == Stage.ERROR
        assert events[-1].error == result.error

    @pytest.mark.unit
    def test_missing_bucket_is_config_error(self) -> None:
        """Test a run without any bucket fails fast."""
        store = make_store()
        jobs = FakeJobClient()
        orchestrator = EvaluationOrchestrator(store, jobs, wait=FakeClock().wait)

        result = orchestrator.run(SAMPLES)

        assert result.error is not None
        assert result.error.error_class == ErrorClass.CONFIG
        assert store.put_calls == []

    @pytest.mark.unit
    def test_empty_samples_rejected(self) -> None:
        """Test a run without samples fails before uploading."""
        store = make_store()
        orchestrator = make_orchestrator(store, FakeJobClient())

        result = orchestrator.run([])

        assert result.error is not None
        assert result.error.error_class == ErrorClass.CONFIG
        assert store.put_calls == []

    @pytest.mark.unit
    def test_launch_failure_halts_pipeline(self) -> None:
        """Test polling never starts when the launch fails."""
        jobs = FakeJobClient(create_response=TransportError("throttled"))
        orchestrator = make_orchestrator(make_store(), jobs)

        result = orchestrator.run(SAMPLES, now=FIXED_NOW)

        assert result.stage == Stage.ERROR
        assert result.launch is not None
        assert jobs.status_calls == []
        assert orchestrator.poller_state == PollerState.NOT_STARTED

    @pytest.mark.unit
    def test_job_failure_skips_aggregation(self) -> None:
        """Test a FAILED job ends the run without fetching results."""
        store = make_store()
        jobs = FakeJobClient([status_response("Failed", failureMessages=["bad"])])
        orchestrator = make_orchestrator(store, jobs)

        result = orchestrator.run(SAMPLES, now=FIXED_NOW)

        assert result.stage == Stage.ERROR
        assert result.error is not None
        assert result.error.error_class == ErrorClass.JOB_FAILED
        assert store.list_calls == []

    @pytest.mark.unit
    def test_missing_results_is_not_found(self) -> None:
        """Test a completed job without a result file."""
        store = FakeObjectStore()
        store.add_objects(BUCKET, {})
        jobs = FakeJobClient([status_response("Completed", OUTPUT_URI)])
        orchestrator = make_orchestrator(store, jobs)

        result = orchestrator.run(SAMPLES, now=FIXED_NOW)

        assert result.stage == Stage.ERROR
        assert result.error is not None
        assert result.error.error_class == ErrorClass.NOT_FOUND


class TestOrchestratorBackground:
    """Tests for submit and close."""

    @pytest.mark.unit
    def test_submit_finishes_in_background(self) -> None:
        """Test submit returns while polling and reports the final result."""
        jobs = FakeJobClient(
            [status_response("InProgress"), status_response("Completed", OUTPUT_URI)]
        )
        orchestrator = make_orchestrator(make_store(), jobs)
        done = threading.Event()
        results: list[OrchestrationResult] = []

        def on_finished(result: OrchestrationResult) -> None:
            results.append(result)
            done.set()

        started = orchestrator.submit(SAMPLES, now=FIXED_NOW, on_finished=on_finished)

        assert started.stage == Stage.POLLING
        assert done.wait(5.0)
        assert results[0].success

    @pytest.mark.unit
    def test_close_cancels_polling(self) -> None:
        """Test teardown stops the background loop."""
        jobs = FakeJobClient([status_response("InProgress")])
        first_query = threading.Event()

        def wait(event: threading.Event, timeout: float) -> bool:
            first_query.set()
            return event.wait(0.01)

        orchestrator = EvaluationOrchestrator(
            make_store(),
            jobs,
            config=OrchestratorConfig(bucket_name=BUCKET),
            wait=wait,
        )
        orchestrator.submit(SAMPLES, now=FIXED_NOW)
        assert first_query.wait(5.0)

        assert orchestrator.close() is True
        calls = len(jobs.status_calls)
        threading.Event().wait(0.1)

        assert orchestrator.poller_state == PollerState.CANCELLED
        assert len(jobs.status_calls) == calls


class TestPreviousEvaluations:
    """Tests for listing, refreshing and exporting jobs."""

    @pytest.mark.unit
    def test_load_results(self) -> None:
        """Test manual refresh of a completed job."""
        jobs = FakeJobClient(
            [status_response("Completed", OUTPUT_URI, jobName="eval-job-x")]
        )
        orchestrator = make_orchestrator(make_store(), jobs)

        result = orchestrator.load_results("job-123")

        assert result.success
        assert result.summary is not None
        assert result.summary.status == JobStatus.COMPLETED
        assert jobs.status_calls == ["job-123"]

    @pytest.mark.unit
    def test_load_results_of_running_job(self) -> None:
        """Test a running job has nothing to load."""
        jobs = FakeJobClient([status_response("InProgress")])
        orchestrator = make_orchestrator(make_store(), jobs)

        result = orchestrator.load_results("job-123")

        assert result.error is not None
        assert result.error.error_class == ErrorClass.NOT_FOUND

    @pytest.mark.unit
    def test_export_results(self, tmp_path: Path) -> None:
        """Test raw records are written to the export file."""
        jobs = FakeJobClient([status_response("Completed", OUTPUT_URI)])
        orchestrator = make_orchestrator(make_store(), jobs)
        job_arn = "arn:aws:bedrock:us-east-1:123456789012:evaluation-job/abc123"

        result = orchestrator.export_results(job_arn, tmp_path)

        path = tmp_path / export_filename(job_arn)
        assert result.success
        assert path.name == "evaluation-results-abc123.json"
        assert len(json.loads(path.read_text(encoding="utf-8"))) == 2

    @pytest.mark.unit
    def test_list_jobs(self) -> None:
        """Test listing entries are parsed and bad ones skipped."""
        jobs = FakeJobClient()
        jobs.list_response = {
            "jobSummaries": [
                {
                    "jobArn": "arn:1",
                    "jobName": "eval-job-a",
                    "status": "Completed",
                    "creationTime": "2025-03-14T09:30:00Z",
                },
                {"jobArn": "arn:2", "jobName": "eval-job-b", "status": "Weird"},
            ],
            "nextToken": "page-2",
        }
        orchestrator = make_orchestrator(make_store(), jobs)

        listing = orchestrator.list_jobs(max_results=5)

        assert [job.job_id for job in listing.jobs] == ["arn:1"]
        assert listing.next_token == "page-2"
        assert jobs.list_calls == [(5, None)]
