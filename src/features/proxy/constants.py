"""Routes and HTTP constants for the AWS relay proxy."""

from typing import Final


# S3 relay routes
S3_UPLOAD_ROUTE: Final = "/api/s3/upload"
S3_ENSURE_BUCKET_ROUTE: Final = "/api/s3/ensure-bucket"
S3_LIST_OBJECTS_ROUTE: Final = "/api/s3/list-objects"
S3_GET_OBJECT_JSON_ROUTE: Final = "/api/s3/get-object-json"

# Bedrock relay routes
BEDROCK_EVALUATIONS_ROUTE: Final = "/api/bedrock/evaluations"
BEDROCK_EVALUATION_STATUS_ROUTE: Final = "/api/bedrock/evaluations/status"

# HTTP Status Code Ranges
HTTP_STATUS_OK_MIN = 200
HTTP_STATUS_OK_MAX = 300
HTTP_STATUS_FORBIDDEN = 403
HTTP_STATUS_TOO_MANY_REQUESTS = 429
HTTP_STATUS_SERVER_ERROR_MIN = 500

# Markers the relay copies from AWS SDK errors into its error bodies
NO_SUCH_BUCKET_MARKER: Final = "NoSuchBucket"
ACCESS_DENIED_MARKER: Final = "AccessDenied"
CORS_MARKER: Final = "CORS"

# Longest error body excerpt kept in error messages
MAX_ERROR_BODY_CHARS: Final = 500
