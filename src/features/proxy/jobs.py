"""Bedrock evaluation job operations through the relay proxy."""

import structlog

from src.features.evaluation.errors import FormatError
from src.features.proxy.client import ProxyHttpClient
from src.features.proxy.constants import (
    BEDROCK_EVALUATION_STATUS_ROUTE,
    BEDROCK_EVALUATIONS_ROUTE,
)


logger = structlog.get_logger()


class ProxyEvaluationJobClient:
    """Evaluation job client backed by the relay's Bedrock routes."""

    def __init__(self, http: ProxyHttpClient) -> None:
        self._http = http
        self._log = logger.bind(component="proxy", subcomponent="bedrock")

    def create_evaluation_job(
        self,
        bucket: str,
        input_key: str,
        output_folder: str,
        job_name: str,
    ) -> dict[str, object]:
        """Create a RAG evaluation job over an uploaded input file."""
        data = self._http.post_json(
            BEDROCK_EVALUATIONS_ROUTE,
            {
                "s3BucketName": bucket,
                "inputFileKey": input_key,
                "outputFolder": output_folder,
                "jobName": job_name,
            },
        )
        response = _require_object(data, "create evaluation job")
        self._log.info(
            "bedrock_job_created",
            job_name=job_name,
            keys=sorted(response),
        )
        return response

    def get_evaluation_job(self, job_id: str) -> dict[str, object]:
        """Fetch the current status of a job.

        Single attempt; the status poller retries on its next tick.
        """
        data = self._http.get_json(
            BEDROCK_EVALUATION_STATUS_ROUTE, {"jobId": job_id}, retry=False
        )
        return _require_object(data, "get evaluation job")

    def list_evaluation_jobs(
        self,
        max_results: int = 10,
        next_token: str | None = None,
    ) -> dict[str, object]:
        """Fetch one page of recent evaluation jobs."""
        params: dict[str, str | int] = {"maxResults": max_results}
        if next_token:
            params["nextToken"] = next_token
        data = self._http.get_json(BEDROCK_EVALUATIONS_ROUTE, params)
        if isinstance(data, list):
            return {"jobSummaries": data}
        return _require_object(data, "list evaluation jobs")


def _require_object(data: object, operation: str) -> dict[str, object]:
    if not isinstance(data, dict):
        msg = f"Unexpected response to {operation}: {type(data).__name__}"
        raise FormatError(msg)
    return data
