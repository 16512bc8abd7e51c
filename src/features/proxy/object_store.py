"""S3 operations through the relay proxy."""

import json

import structlog

from src.features.evaluation.errors import FormatError
from src.features.evaluation.protocols import JsonValue
from src.features.proxy.client import ProxyHttpClient
from src.features.proxy.constants import (
    S3_ENSURE_BUCKET_ROUTE,
    S3_GET_OBJECT_JSON_ROUTE,
    S3_LIST_OBJECTS_ROUTE,
    S3_UPLOAD_ROUTE,
)


logger = structlog.get_logger()


class ProxyObjectStoreClient:
    """Object store client backed by the relay's S3 routes."""

    def __init__(self, http: ProxyHttpClient) -> None:
        self._http = http
        self._log = logger.bind(component="proxy", subcomponent="s3")

    def put_object(
        self,
        bucket: str,
        key: str,
        content: str,
        content_type: str = "application/json",
    ) -> None:
        """Upload a string object."""
        self._http.post(
            S3_UPLOAD_ROUTE,
            {
                "bucketName": bucket,
                "key": key,
                "content": content,
                "contentType": content_type,
            },
        )
        self._log.info(
            "s3_object_uploaded", bucket=bucket, key=key, bytes=len(content)
        )

    def ensure_bucket_exists(self, bucket: str, region: str) -> None:
        """Create the bucket and its CORS configuration if missing."""
        self._http.post(
            S3_ENSURE_BUCKET_ROUTE, {"bucketName": bucket, "region": region}
        )
        self._log.info("s3_bucket_ensured", bucket=bucket, region=region)

    def list_objects(self, bucket: str, prefix: str) -> list[str]:
        """List object keys under a prefix.

        The relay answers with a bare array or with ``{"objects": [...]}``;
        entries are ``{"key": ...}`` objects (``Key`` is accepted too).
        """
        data = self._http.get_json(
            S3_LIST_OBJECTS_ROUTE, {"bucketName": bucket, "prefix": prefix or None}
        )
        if isinstance(data, dict):
            data = data.get("objects", [])
        if not isinstance(data, list):
            msg = f"Unexpected object listing for s3://{bucket}/{prefix}"
            raise FormatError(msg)

        keys: list[str] = []
        for entry in data:
            if isinstance(entry, str):
                keys.append(entry)
            elif isinstance(entry, dict):
                key = entry.get("key") or entry.get("Key")
                if isinstance(key, str) and key:
                    keys.append(key)
        return keys

    def get_object_json(self, bucket: str, key: str) -> JsonValue:
        """Fetch an object parsed as JSON.

        The relay normally parses the object itself. When it returns the raw
        text instead, the text is parsed here as JSON or JSON Lines.
        """
        response = self._http.get(
            S3_GET_OBJECT_JSON_ROUTE, {"bucketName": bucket, "key": key}
        )
        content_type = response.headers.get("content-type", "")
        if "json" in content_type:
            return self._http.decode_json(response)
        return parse_json_document(response.text)


def parse_json_document(text: str) -> JsonValue:
    """Parse text holding a JSON document or JSON Lines records.

    A document starting with ``[`` and ending with ``]`` (or a single JSON
    object) is parsed as one value; anything else is parsed line by line.

    Args:
        text: Raw object content.

    Returns:
        Parsed value, or a list of records for JSON Lines.

    Raises:
        FormatError: If the text is neither JSON nor JSON Lines.
    """
    stripped = text.strip()
    if not stripped:
        return []

    if stripped.startswith("[") and stripped.endswith("]"):
        try:
            return json.loads(stripped)
        except json.JSONDecodeError as e:
            msg = f"Invalid JSON array: {e}"
            raise FormatError(msg) from e

    try:
        return json.loads(stripped)
    except json.JSONDecodeError:
        pass

    records: list[object] = []
    for line_number, line in enumerate(stripped.splitlines(), start=1):
        if not line.strip():
            continue
        try:
            records.append(json.loads(line))
        except json.JSONDecodeError as e:
            msg = f"Invalid JSON Lines record on line {line_number}: {e}"
            raise FormatError(msg) from e
    return records
