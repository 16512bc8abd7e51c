"""Clients for the JSON-over-HTTP relay in front of S3 and Bedrock.

The relay holds the AWS credentials for a session and exposes:
- S3 upload, bucket provisioning, listing, and JSON object reads
- Bedrock evaluation job creation, status, and listing
"""

from src.features.proxy.client import ProxyHttpClient, classify_http_error
from src.features.proxy.jobs import ProxyEvaluationJobClient
from src.features.proxy.models import ProxyConfig, RetryPolicy
from src.features.proxy.object_store import (
    ProxyObjectStoreClient,
    parse_json_document,
)


__all__ = [
    # Clients
    "ProxyHttpClient",
    "ProxyObjectStoreClient",
    "ProxyEvaluationJobClient",
    # Config
    "ProxyConfig",
    "RetryPolicy",
    # Helpers
    "classify_http_error",
    "parse_json_document",
]
