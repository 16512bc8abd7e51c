"""Constants for the evaluation orchestrator."""

from typing import Final


# Polling
DEFAULT_POLL_INTERVAL_SECONDS: Final = 5.0
DEFAULT_MAX_POLL_ATTEMPTS: Final = 720  # one hour at the default interval

# Upload
DEFAULT_REGION: Final = "us-east-1"
DEFAULT_KEY_PREFIX: Final = "mbe-responses"
JSONL_CONTENT_TYPE: Final = "application/json"
# Bucket naming convention: mbe-eval-<timestamp>-<suffix>
BUCKET_SUFFIX_SEGMENT: Final = 3
RANDOM_SUFFIX_LENGTH: Final = 6
RANDOM_SUFFIX_ALPHABET: Final = "0123456789abcdefghijklmnopqrstuvwxyz"

# Job naming
OUTPUT_FOLDER_PREFIX: Final = "output"
JOB_NAME_PREFIX: Final = "eval-job"

# Result discovery
PATH_SEPARATOR: Final = "/"
CANONICAL_RESULTS_FILENAME: Final = "evaluation_results.json"
JSONL_EXTENSION: Final = ".jsonl"
JSON_EXTENSION: Final = ".json"
METADATA_SUFFIX: Final = "metadata.json"
DEFAULT_MAX_DISCOVERY_LISTINGS: Final = 100

# Serialized input record
KNOWLEDGE_BASE_IDENTIFIER: Final = "user_knowledge_base"
