"""Job launcher: start a remote evaluation job."""

import structlog

from src.features.evaluation.errors import (
    ConfigError,
    FormatError,
    OrchestratorError,
    StageError,
)
from src.features.evaluation.models import EvaluationJob, LaunchResult
from src.features.evaluation.protocols import EvaluationJobClient


logger = structlog.get_logger()

# Response fields that may carry the job identifier, in priority order
JOB_ID_FIELDS = ("jobId", "evaluationJobId", "jobArn")


def extract_job_id(response: dict[str, object]) -> str | None:
    """Return the first non-empty job identifier field of a response."""
    for field_name in JOB_ID_FIELDS:
        value = response.get(field_name)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


class JobLauncher:
    """Starts evaluation jobs. Never polls and never retries."""

    def __init__(self, jobs: EvaluationJobClient) -> None:
        self._jobs = jobs
        self._log = logger.bind(component="evaluation", subcomponent="launcher")

    def start(
        self,
        bucket: str,
        input_key: str,
        output_folder: str,
        job_name: str,
    ) -> LaunchResult:
        """Start a job over an uploaded input file.

        Args:
            bucket: Bucket holding the input and receiving the output.
            input_key: Key of the uploaded JSON Lines input.
            output_folder: Folder (under the bucket) for the job output.
            job_name: Name of the job.

        Returns:
            LaunchResult with the accepted job or the classified error.
        """
        log = self._log.bind(job_name=job_name, bucket=bucket)
        try:
            if not bucket or not input_key or not job_name:
                msg = "Bucket, input key and job name are required to start a job"
                raise ConfigError(msg)

            response = self._jobs.create_evaluation_job(
                bucket, input_key, output_folder, job_name
            )
            job_id = extract_job_id(response)
            if job_id is None:
                msg = f"Job creation response has none of {', '.join(JOB_ID_FIELDS)}"
                raise FormatError(msg)
        except OrchestratorError as e:
            log.error(
                "job_launch_failed", error_class=e.error_class.value, error=e.message
            )
            return LaunchResult(error=StageError.from_exception(e))

        job = EvaluationJob(
            job_id=job_id,
            job_name=job_name,
            output_location=f"s3://{bucket}/{output_folder.strip('/')}/",
        )
        log.info("job_launched", job_id=job_id)
        return LaunchResult(job=job)
