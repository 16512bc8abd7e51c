"""Upload stage: store the serialized evaluation input in S3."""

import random
from datetime import UTC, datetime

import structlog

from src.features.evaluation.constants import (
    BUCKET_SUFFIX_SEGMENT,
    DEFAULT_REGION,
    JSONL_CONTENT_TYPE,
    RANDOM_SUFFIX_ALPHABET,
    RANDOM_SUFFIX_LENGTH,
)
from src.features.evaluation.errors import (
    ConfigError,
    OrchestratorError,
    StageError,
    TransportError,
)
from src.features.evaluation.models import UploadResult, UploadTarget
from src.features.evaluation.protocols import ObjectStoreClient


logger = structlog.get_logger()


def derive_run_suffix(bucket_name: str, rng: random.Random) -> str:
    """Derive the suffix shared by the input key, output folder and job name.

    Buckets named ``mbe-eval-<timestamp>-<random>`` reuse their random part;
    any other bucket gets six random base-36 characters.

    Args:
        bucket_name: Target bucket name.
        rng: Random source used when the bucket carries no suffix.

    Returns:
        Run suffix.
    """
    parts = bucket_name.split("-")
    if len(parts) > BUCKET_SUFFIX_SEGMENT and parts[BUCKET_SUFFIX_SEGMENT]:
        return parts[BUCKET_SUFFIX_SEGMENT]
    return "".join(
        rng.choice(RANDOM_SUFFIX_ALPHABET) for _ in range(RANDOM_SUFFIX_LENGTH)
    )


def build_input_key(key_prefix: str, now: datetime, suffix: str) -> str:
    """Build ``{prefix}-{YYYY-MM-DD}-{suffix}.jsonl``."""
    return f"{key_prefix}-{now.strftime('%Y-%m-%d')}-{suffix}.jsonl"


class UploadStage:
    """Persists the evaluation input, creating the bucket on demand.

    The put is attempted at most twice: once, and once more after the
    bucket was created in response to a NoSuchBucket failure.
    """

    def __init__(
        self,
        store: ObjectStoreClient,
        region: str = DEFAULT_REGION,
        rng: random.Random | None = None,
        content_type: str = JSONL_CONTENT_TYPE,
    ) -> None:
        """Initialize the upload stage.

        Args:
            store: Object store client.
            region: Region used when the bucket has to be created.
            rng: Random source for run suffixes (seed it for stable keys).
            content_type: Content type of the uploaded object.
        """
        self._store = store
        self._region = region
        self._rng = rng or random.Random()  # noqa: S311
        self._content_type = content_type
        self._log = logger.bind(component="evaluation", subcomponent="upload")

    def upload(
        self,
        bucket_name: str,
        key_prefix: str,
        serialized_input: str,
        now: datetime | None = None,
    ) -> UploadResult:
        """Upload the serialized input.

        Args:
            bucket_name: Target bucket.
            key_prefix: Prefix of the object key.
            serialized_input: JSON Lines evaluation records.
            now: Timestamp whose date goes into the key (defaults to now, UTC).

        Returns:
            UploadResult with the stored target or the classified error.
        """
        if not bucket_name or not bucket_name.strip():
            error = ConfigError("S3 bucket name is required")
            self._log.warning("upload_rejected", error=error.message)
            return UploadResult(error=StageError.from_exception(error))

        bucket = bucket_name.strip()
        now = now or datetime.now(UTC)
        suffix = derive_run_suffix(bucket, self._rng)
        target = UploadTarget(
            bucket=bucket,
            key=build_input_key(key_prefix, now, suffix),
            content_type=self._content_type,
            suffix=suffix,
        )
        log = self._log.bind(bucket=target.bucket, key=target.key)
        log.info("upload_started", bytes=len(serialized_input))

        attempts = 0
        bucket_created = False
        try:
            attempts += 1
            try:
                self._put(target, serialized_input)
            except TransportError as e:
                if not e.is_missing_bucket:
                    raise
                log.warning("upload_bucket_missing", region=self._region)
                self._store.ensure_bucket_exists(target.bucket, self._region)
                bucket_created = True
                attempts += 1
                self._put(target, serialized_input)
        except OrchestratorError as e:
            log.error(
                "upload_failed",
                error_class=e.error_class.value,
                error=e.message,
                put_attempts=attempts,
            )
            return UploadResult(
                error=StageError.from_exception(e),
                put_attempts=attempts,
                bucket_created=bucket_created,
            )

        log.info(
            "upload_complete", put_attempts=attempts, bucket_created=bucket_created
        )
        return UploadResult(
            target=target, put_attempts=attempts, bucket_created=bucket_created
        )

    def _put(self, target: UploadTarget, content: str) -> None:
        self._store.put_object(target.bucket, target.key, content, target.content_type)
