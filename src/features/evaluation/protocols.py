"""Protocol interfaces for the orchestrator's remote collaborators.

Stages receive these through their constructors, so the proxy-backed
clients can be swapped for in-memory fakes in tests.
"""

from typing import Protocol, runtime_checkable


JsonValue = dict[str, object] | list[object] | str | int | float | bool | None


@runtime_checkable
class ObjectStoreClient(Protocol):
    """Protocol for object storage operations (S3 through the proxy)."""

    def put_object(
        self,
        bucket: str,
        key: str,
        content: str,
        content_type: str = "application/json",
    ) -> None:
        """Store an object.

        Raises:
            TransportError: If the object could not be stored.
        """
        ...

    def ensure_bucket_exists(self, bucket: str, region: str) -> None:
        """Create the bucket (with CORS configuration) if it is missing.

        Raises:
            TransportError: If the bucket could not be created.
        """
        ...

    def list_objects(self, bucket: str, prefix: str) -> list[str]:
        """List object keys under a prefix.

        Keys ending in ``/`` denote sub-directories.

        Raises:
            TransportError: If the listing failed.
        """
        ...

    def get_object_json(self, bucket: str, key: str) -> JsonValue:
        """Fetch an object and return its parsed JSON or JSON Lines content.

        Raises:
            TransportError: If the object could not be fetched.
            FormatError: If the content could not be parsed.
        """
        ...


@runtime_checkable
class EvaluationJobClient(Protocol):
    """Protocol for the remote evaluation job API (Bedrock through the proxy)."""

    def create_evaluation_job(
        self,
        bucket: str,
        input_key: str,
        output_folder: str,
        job_name: str,
    ) -> dict[str, object]:
        """Create an evaluation job and return the raw response.

        Raises:
            TransportError: If the job was not accepted.
        """
        ...

    def get_evaluation_job(self, job_id: str) -> dict[str, object]:
        """Return the raw status response of a job.

        Raises:
            TransportError: If the status could not be fetched.
        """
        ...

    def list_evaluation_jobs(
        self,
        max_results: int = 10,
        next_token: str | None = None,
    ) -> dict[str, object]:
        """Return one raw page of the job listing.

        Raises:
            TransportError: If the listing failed.
        """
        ...
