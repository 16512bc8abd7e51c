"""Factory wiring the orchestrator to the relay proxy."""

import httpx
import structlog

from src.features.evaluation.config import OrchestratorConfig
from src.features.evaluation.events import EventListener
from src.features.evaluation.orchestrator import EvaluationOrchestrator
from src.features.evaluation.poller import WaitFunc
from src.features.proxy.client import ProxyHttpClient
from src.features.proxy.jobs import ProxyEvaluationJobClient
from src.features.proxy.models import ProxyConfig
from src.features.proxy.object_store import ProxyObjectStoreClient
from src.settings.app import AppSettings


logger = structlog.get_logger()


def create_orchestrator(
    settings: AppSettings,
    listeners: list[EventListener] | None = None,
    transport: httpx.BaseTransport | None = None,
    wait: WaitFunc | None = None,
) -> tuple[EvaluationOrchestrator, ProxyHttpClient]:
    """Create an orchestrator backed by the relay proxy.

    The caller owns the returned HTTP client and closes it when done.

    Args:
        settings: Application settings.
        listeners: Receivers of progress events.
        transport: Optional httpx transport (used to mock the proxy).
        wait: Interruptible sleep used between status queries.

    Returns:
        Tuple of (orchestrator, http client).
    """
    http = ProxyHttpClient(
        ProxyConfig(
            base_url=settings.proxy_base_url,
            timeout_seconds=settings.request_timeout_seconds,
            session_id=settings.session_id,
        ),
        transport=transport,
    )
    config = OrchestratorConfig(
        bucket_name=settings.bucket_name,
        region=settings.aws_region,
        key_prefix=settings.key_prefix,
        poll_interval_seconds=settings.poll_interval_seconds,
        max_poll_attempts=settings.max_poll_attempts,
        max_discovery_listings=settings.max_discovery_listings,
    )
    logger.bind(component="evaluation", subcomponent="factory").info(
        "orchestrator_created",
        proxy_base_url=settings.proxy_base_url,
        region=config.region,
        bucket=config.bucket_name,
    )
    orchestrator = EvaluationOrchestrator(
        ProxyObjectStoreClient(http),
        ProxyEvaluationJobClient(http),
        config=config,
        listeners=listeners,
        wait=wait,
    )
    return orchestrator, http
