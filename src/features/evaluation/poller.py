"""Status poller: watch a remote evaluation job until it ends."""

import threading
from collections.abc import Callable

import structlog

from src.features.evaluation.constants import (
    DEFAULT_MAX_POLL_ATTEMPTS,
    DEFAULT_POLL_INTERVAL_SECONDS,
)
from src.features.evaluation.errors import (
    ConfigError,
    FormatError,
    JobFailedError,
    OrchestratorError,
    PollTimeoutError,
    StageError,
    TransportError,
)
from src.features.evaluation.models import (
    EvaluationJob,
    JobStatus,
    JobStatusSnapshot,
    PollResult,
)
from src.features.evaluation.protocols import EvaluationJobClient
from src.features.evaluation.state_machine import PollerState, PollerStateMachine


logger = structlog.get_logger()

# wait(cancel_event, timeout_seconds) -> True if the event was set
WaitFunc = Callable[[threading.Event, float], bool]
StatusCallback = Callable[[EvaluationJob], None]
FinishedCallback = Callable[[PollResult], None]


def _event_wait(event: threading.Event, timeout: float) -> bool:
    return event.wait(timeout)


class StatusPoller:
    """Polls job status at a fixed interval until a terminal status.

    One loop is active at a time. Starting a new loop cancels the previous
    one, and once ``cancel()`` returns no further status query is issued.

    The loop either runs in the caller's thread (``run``) or on a daemon
    thread (``start``). Waiting between queries goes through ``wait`` so
    tests can substitute a simulated clock.
    """

    def __init__(
        self,
        jobs: EvaluationJobClient,
        interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
        max_attempts: int = DEFAULT_MAX_POLL_ATTEMPTS,
        wait: WaitFunc | None = None,
        on_status: StatusCallback | None = None,
    ) -> None:
        """Initialize the poller.

        Args:
            jobs: Evaluation job client.
            interval_seconds: Delay between two status queries.
            max_attempts: Status queries before giving up.
            wait: Interruptible sleep; defaults to ``threading.Event.wait``.
            on_status: Called with the job after every successful query.
        """
        if interval_seconds < 0:
            msg = f"Poll interval must not be negative: {interval_seconds}"
            raise ConfigError(msg)
        if max_attempts < 1:
            msg = f"Max poll attempts must be at least 1: {max_attempts}"
            raise ConfigError(msg)

        self._jobs = jobs
        self._interval = interval_seconds
        self._max_attempts = max_attempts
        self._wait = wait or _event_wait
        self._on_status = on_status

        self._lock = threading.Lock()
        self._machine = PollerStateMachine()
        self._cancel_event: threading.Event | None = None
        self._thread: threading.Thread | None = None
        self._job_id: str | None = None
        self._last_result: PollResult | None = None
        self._log = logger.bind(component="evaluation", subcomponent="poller")

    @property
    def state(self) -> PollerState:
        """Get the current poller state."""
        return self._machine.state

    @property
    def job_id(self) -> str | None:
        """Get the id of the job polled last."""
        return self._job_id

    @property
    def last_result(self) -> PollResult | None:
        """Get the result of the last loop that ended."""
        return self._last_result

    def is_polling(self) -> bool:
        """Check if a loop is active."""
        return self._machine.is_polling()

    def run(self, job_id: str, job: EvaluationJob | None = None) -> PollResult:
        """Poll in the calling thread until the job ends or is cancelled.

        Args:
            job_id: Id of the job to poll.
            job: Job record to update with each observed status.

        Returns:
            PollResult with the final state.

        Raises:
            ConfigError: If the job id is empty.
        """
        event = self._begin(job_id)
        return self._loop(job_id, event, job, None)

    def start(
        self,
        job_id: str,
        job: EvaluationJob | None = None,
        on_finished: FinishedCallback | None = None,
    ) -> None:
        """Poll on a background thread.

        Args:
            job_id: Id of the job to poll.
            job: Job record to update with each observed status.
            on_finished: Called with the result when the job completes or
                the loop fails. Not called after cancellation.

        Raises:
            ConfigError: If the job id is empty.
        """
        event = self._begin(job_id)
        thread = threading.Thread(
            target=self._loop,
            args=(job_id, event, job, on_finished),
            name=f"status-poller-{job_id}",
            daemon=True,
        )
        with self._lock:
            self._thread = thread
        thread.start()

    def cancel(self) -> bool:
        """Stop the active loop, waiting for an in-flight query to return.

        Returns:
            True if a loop was cancelled.
        """
        with self._lock:
            cancelled = self._cancel_locked()
            thread = self._thread
        self._join(thread)
        return cancelled

    def _begin(self, job_id: str) -> threading.Event:
        if not job_id or not job_id.strip():
            msg = "Job id is required to poll status"
            raise ConfigError(msg)

        with self._lock:
            restarted = self._cancel_locked()
            previous = self._thread
            self._thread = None
            event = threading.Event()
            self._cancel_event = event
            self._job_id = job_id
            self._machine.transition(PollerState.POLLING)

        if restarted:
            self._log.info("poll_restarted", job_id=job_id)
        self._join(previous)
        return event

    def _cancel_locked(self) -> bool:
        if self._cancel_event is None or not self._machine.is_polling():
            return False
        self._cancel_event.set()
        self._machine.transition(PollerState.CANCELLED)
        self._log.info("poll_cancelled", job_id=self._job_id)
        return True

    @staticmethod
    def _join(thread: threading.Thread | None) -> None:
        if thread is not None and thread is not threading.current_thread():
            thread.join()

    def _loop(
        self,
        job_id: str,
        event: threading.Event,
        job: EvaluationJob | None,
        on_finished: FinishedCallback | None,
    ) -> PollResult:
        log = self._log.bind(job_id=job_id)
        log.info(
            "poll_started",
            interval_seconds=self._interval,
            max_attempts=self._max_attempts,
        )
        polls = 0
        failed_polls = 0

        while not event.is_set():
            polls += 1
            snapshot: JobStatusSnapshot | None = None
            error: OrchestratorError | None = None
            try:
                snapshot = JobStatusSnapshot.from_response(
                    self._jobs.get_evaluation_job(job_id)
                )
            except TransportError as e:
                failed_polls += 1
                log.warning(
                    "poll_request_failed",
                    attempt=polls,
                    code=e.code.value,
                    error=e.message,
                )
            except FormatError as e:
                error = e

            if event.is_set():
                break

            if snapshot is not None:
                job = self._apply(job, job_id, snapshot)
                log.info("poll_status", attempt=polls, status=snapshot.status.value)
                if self._on_status is not None:
                    self._on_status(job)
                if snapshot.status == JobStatus.COMPLETED:
                    return self._finish(
                        event,
                        PollerState.COMPLETED,
                        job,
                        None,
                        polls,
                        failed_polls,
                        on_finished,
                    )
                if snapshot.status.is_failure:
                    error = JobFailedError(
                        job_id, snapshot.status.value, snapshot.failure_messages
                    )

            if error is None and polls >= self._max_attempts:
                error = PollTimeoutError(job_id, polls)

            if error is not None:
                log.error(
                    "poll_failed",
                    attempt=polls,
                    error_class=error.error_class.value,
                    error=error.message,
                )
                return self._finish(
                    event,
                    PollerState.FAILED,
                    job,
                    error,
                    polls,
                    failed_polls,
                    on_finished,
                )

            self._wait(event, self._interval)

        log.info("poll_stopped", polls=polls)
        return PollResult(
            state=PollerState.CANCELLED,
            job=job,
            polls=polls,
            failed_polls=failed_polls,
        )

    @staticmethod
    def _apply(
        job: EvaluationJob | None, job_id: str, snapshot: JobStatusSnapshot
    ) -> EvaluationJob:
        if job is None:
            job = EvaluationJob(
                job_id=job_id,
                job_name="",
                output_location=snapshot.output_location or "",
            )
        return job.with_snapshot(snapshot)

    def _finish(
        self,
        event: threading.Event,
        state: PollerState,
        job: EvaluationJob | None,
        error: OrchestratorError | None,
        polls: int,
        failed_polls: int,
        on_finished: FinishedCallback | None,
    ) -> PollResult:
        with self._lock:
            if event.is_set():
                # Cancelled while the last query was in flight.
                return PollResult(
                    state=PollerState.CANCELLED,
                    job=job,
                    polls=polls,
                    failed_polls=failed_polls,
                )
            event.set()
            self._machine.transition(state)
            result = PollResult(
                state=state,
                job=job,
                error=StageError.from_exception(error) if error else None,
                polls=polls,
                failed_polls=failed_polls,
            )
            self._last_result = result

        self._log.info(
            "poll_finished",
            job_id=job.job_id if job else self._job_id,
            state=state.name,
            polls=polls,
            failed_polls=failed_polls,
        )
        if on_finished is not None:
            on_finished(result)
        return result
