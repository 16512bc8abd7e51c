"""JSON-over-HTTP client for the AWS relay proxy."""

import time

import httpx
import structlog

from src.features.evaluation.errors import (
    FormatError,
    TransportError,
    TransportErrorCode,
)
from src.features.proxy.constants import (
    ACCESS_DENIED_MARKER,
    CORS_MARKER,
    HTTP_STATUS_FORBIDDEN,
    HTTP_STATUS_OK_MAX,
    HTTP_STATUS_OK_MIN,
    MAX_ERROR_BODY_CHARS,
    NO_SUCH_BUCKET_MARKER,
)
from src.features.proxy.models import ProxyConfig, RetryPolicy


logger = structlog.get_logger()

NO_RETRY = RetryPolicy(max_retries=0)


class ProxyHttpClient:
    """HTTP client for the relay proxy.

    Provides:
    - JSON request bodies and query parameters
    - Session id forwarding
    - Retries with exponential backoff for idempotent reads
    - Classification of failures into TransportError codes
    """

    def __init__(
        self,
        config: ProxyConfig,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the proxy client.

        Args:
            config: Proxy connection settings.
            transport: Optional httpx transport (used to mock the proxy).
        """
        self._config = config
        self._client = httpx.Client(
            base_url=config.base_url,
            timeout=config.timeout_seconds,
            headers={
                "User-Agent": config.user_agent,
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
            transport=transport,
        )
        self._log = logger.bind(component="proxy")

    def __enter__(self) -> "ProxyHttpClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        """Close the underlying connection pool."""
        self._client.close()

    def get(
        self,
        path: str,
        params: dict[str, str | int] | None = None,
        retry: bool = True,
    ) -> httpx.Response:
        """Send a GET request, retrying transient failures.

        Args:
            path: Route relative to the proxy base URL.
            params: Query parameters. ``None`` values are dropped.
            retry: Whether transient failures are retried.

        Returns:
            Successful HTTP response.

        Raises:
            TransportError: If the request failed after all retries.
        """
        query = self._with_session(
            {k: v for k, v in (params or {}).items() if v is not None}
        )
        policy = self._config.retry_policy if retry else NO_RETRY

        attempt = 0
        while True:
            try:
                return self._send("GET", path, params=query)
            except TransportError as e:
                if not policy.should_retry(e, attempt):
                    raise
                delay_ms = policy.get_delay_ms(attempt)
                self._log.warning(
                    "proxy_retry_attempt",
                    path=path,
                    attempt=attempt + 1,
                    delay_ms=delay_ms,
                    code=e.code.value,
                    status_code=e.status_code,
                )
                time.sleep(delay_ms / 1000.0)
                attempt += 1

    def post(self, path: str, body: dict[str, object]) -> httpx.Response:
        """Send a POST request with a JSON body. Never retried.

        Args:
            path: Route relative to the proxy base URL.
            body: JSON body. ``None`` values are dropped.

        Returns:
            Successful HTTP response.

        Raises:
            TransportError: If the request failed.
        """
        payload = self._with_session(
            {k: v for k, v in body.items() if v is not None}
        )
        return self._send("POST", path, json=payload)

    def get_json(
        self,
        path: str,
        params: dict[str, str | int] | None = None,
        retry: bool = True,
    ) -> object:
        """Send a GET request and decode the JSON response.

        Raises:
            TransportError: If the request failed.
            FormatError: If the body is not valid JSON.
        """
        return self.decode_json(self.get(path, params, retry=retry))

    def post_json(self, path: str, body: dict[str, object]) -> object:
        """Send a POST request and decode the JSON response.

        Raises:
            TransportError: If the request failed.
            FormatError: If the body is not valid JSON.
        """
        return self.decode_json(self.post(path, body))

    @staticmethod
    def decode_json(response: httpx.Response) -> object:
        """Decode a JSON response body.

        An empty body decodes to an empty object.

        Raises:
            FormatError: If the body is not valid JSON.
        """
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            msg = f"Proxy returned invalid JSON: {e}"
            raise FormatError(msg) from e

    def _with_session(self, values: dict[str, object]) -> dict[str, object]:
        """Add the configured session id to request values."""
        if self._config.session_id and "sessionId" not in values:
            values["sessionId"] = self._config.session_id
        return values

    def _send(
        self,
        method: str,
        path: str,
        params: dict[str, object] | None = None,
        json: dict[str, object] | None = None,
    ) -> httpx.Response:
        """Send a single request and classify failures.

        Raises:
            TransportError: On network failure or non-2xx status.
        """
        start_ns = time.perf_counter_ns()
        try:
            response = self._client.request(method, path, params=params, json=json)
        except httpx.TimeoutException as e:
            msg = f"Request to {path} timed out: {e}"
            raise TransportError(msg, code=TransportErrorCode.NETWORK) from e
        except httpx.HTTPError as e:
            msg = f"Request to {path} failed: {e}"
            raise TransportError(msg, code=TransportErrorCode.NETWORK) from e

        duration_ms = (time.perf_counter_ns() - start_ns) / 1_000_000
        self._log.debug(
            "proxy_request_complete",
            method=method,
            path=path,
            status_code=response.status_code,
            duration_ms=round(duration_ms, 2),
        )

        if HTTP_STATUS_OK_MIN <= response.status_code < HTTP_STATUS_OK_MAX:
            return response

        raise classify_http_error(path, response.status_code, response.text)


def classify_http_error(path: str, status_code: int, body: str) -> TransportError:
    """Classify a non-2xx proxy response.

    Args:
        path: Route that was called.
        status_code: HTTP status code.
        body: Response body text.

    Returns:
        TransportError with the most specific code the body supports.
    """
    excerpt = body[:MAX_ERROR_BODY_CHARS].strip()
    msg = f"Proxy call {path} returned {status_code}"
    if excerpt:
        msg += f": {excerpt}"

    if NO_SUCH_BUCKET_MARKER in body:
        code = TransportErrorCode.NO_SUCH_BUCKET
    elif ACCESS_DENIED_MARKER in body or status_code == HTTP_STATUS_FORBIDDEN:
        code = TransportErrorCode.ACCESS_DENIED
    elif CORS_MARKER in body:
        code = TransportErrorCode.CORS
    else:
        code = TransportErrorCode.HTTP

    return TransportError(msg, code=code, status_code=status_code)
