"""Unit tests for proxy retry decisions."""

import pytest

from src.features.evaluation.errors import TransportError, TransportErrorCode
from src.features.proxy.models import ProxyConfig, RetryPolicy


class TestShouldRetry:
    """Tests for retry decision logic."""

    @pytest.fixture
    def policy(self) -> RetryPolicy:
        """Create a standard retry policy."""
        return RetryPolicy(max_retries=2)

    def test_retry_on_network_error(self, policy: RetryPolicy) -> None:
        """Test that network failures are retried until the cap."""
        error = TransportError("Connection refused")

        assert policy.should_retry(error, attempt=0) is True
        assert policy.should_retry(error, attempt=1) is True
        assert policy.should_retry(error, attempt=2) is False

    @pytest.mark.parametrize("status", [429, 500, 502, 503])
    def test_retry_on_throttle_and_5xx(self, policy: RetryPolicy, status: int) -> None:
        """Test that throttling and server errors are retried."""
        error = TransportError(
            "boom", code=TransportErrorCode.HTTP, status_code=status
        )

        assert policy.should_retry(error, attempt=0) is True

    def test_no_retry_on_client_errors(self, policy: RetryPolicy) -> None:
        """Test that 4xx responses other than 429 are final."""
        for code, status in [
            (TransportErrorCode.HTTP, 400),
            (TransportErrorCode.ACCESS_DENIED, 403),
            (TransportErrorCode.NO_SUCH_BUCKET, 404),
        ]:
            error = TransportError("nope", code=code, status_code=status)

            assert policy.should_retry(error, attempt=0) is False


class TestDelay:
    """Tests for backoff delay calculation."""

    def test_exponential_backoff(self) -> None:
        """Test delays double per attempt without jitter."""
        policy = RetryPolicy(base_delay_ms=100, jitter_factor=0.0)

        assert policy.get_delay_ms(0) == 100
        assert policy.get_delay_ms(1) == 200
        assert policy.get_delay_ms(2) == 400

    def test_delay_is_capped(self) -> None:
        """Test delays never exceed max_delay_ms before jitter."""
        policy = RetryPolicy(base_delay_ms=1000, max_delay_ms=1500, jitter_factor=0.0)

        assert policy.get_delay_ms(5) == 1500

    def test_jitter_bounds(self) -> None:
        """Test jitter adds at most jitter_factor of the delay."""
        policy = RetryPolicy(base_delay_ms=1000, jitter_factor=0.5)

        for _ in range(20):
            assert 1000 <= policy.get_delay_ms(0) <= 1500


class TestProxyConfig:
    """Tests for proxy connection settings."""

    def test_trailing_slash_removed(self) -> None:
        """Test the base URL is normalized."""
        config = ProxyConfig(base_url="http://localhost:3001/")

        assert config.base_url == "http://localhost:3001"

    def test_rejects_non_http_url(self) -> None:
        """Test a base URL without scheme is rejected."""
        with pytest.raises(ValueError, match="http"):
            ProxyConfig(base_url="localhost:3001")
