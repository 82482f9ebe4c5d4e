"""Bootstrap module for wiring the realtime core from configuration.

Handles:
- Loading configuration from TOML files
- Configuring structured logging
- Creating the configured record source
- Creating the CustomerDataService

Example usage:

    from kflow.bootstrap import bootstrap
    from kflow.feed import InMemoryChangeFeed

    feed = InMemoryChangeFeed()
    service = bootstrap(feed=feed)
    await service.start()
"""

from prometheus_client import start_http_server

from kflow.config import Settings, get_settings
from kflow.feed.channel import ChangeFeed
from kflow.observability.logging import get_logger, setup_logging
from kflow.realtime.service import CustomerDataService
from kflow.realtime.timers import Scheduler
from kflow.source.base import RecordSource
from kflow.source.inmemory import InMemoryRecordSource
from kflow.source.postgrest import PostgrestRecordSource

logger = get_logger(__name__)


def create_source(settings: Settings) -> RecordSource:
    """Create the record source selected by settings.source.backend.

    Raises:
        ValueError: If the postgrest backend is selected without url/api_key
    """
    config = settings.source
    if config.backend == "postgrest":
        if not config.url or not config.api_key:
            raise ValueError(
                "source.url and source.api_key are required for the postgrest backend "
                "(set KFLOW_SOURCE__URL and KFLOW_SOURCE__API_KEY)"
            )
        return PostgrestRecordSource(
            url=config.url,
            api_key=config.api_key,
            schema_name=config.schema_name,
            timeout=config.timeout,
        )
    return InMemoryRecordSource()


def bootstrap(
    settings: Settings | None = None,
    *,
    feed: ChangeFeed | None = None,
    source: RecordSource | None = None,
    scheduler: Scheduler | None = None,
    serve_metrics: bool = False,
) -> CustomerDataService:
    """Build a CustomerDataService from configuration.

    Args:
        settings: Settings to use (default: loaded from config files)
        feed: Change feed to subscribe to
        source: Record source override (default: from settings)
        scheduler: Scheduler override (default: asyncio loop)
        serve_metrics: Start the Prometheus HTTP endpoint if metrics are enabled

    Returns:
        A service ready to start()
    """
    settings = settings or get_settings()

    log_config = settings.observability.logging
    setup_logging(
        level=log_config.level,
        format=log_config.format,
        redact_pii=log_config.redact_pii,
    )

    metrics = settings.observability.metrics
    if serve_metrics and metrics.enabled:
        start_http_server(metrics.port)
        logger.info("metrics_server_started", port=metrics.port)

    source = source or create_source(settings)
    logger.info(
        "kflow_bootstrapped",
        app_name=settings.app_name,
        source_backend=settings.source.backend,
        feed=type(feed).__name__ if feed else None,
    )

    return CustomerDataService(
        source,
        feed,
        scheduler=scheduler,
        realtime=settings.realtime,
        highlight=settings.highlight,
        customer_types=settings.customer_types,
    )
