"""Wiring of a complete delivery pipeline from Settings."""

from __future__ import annotations

from webhook_relay.config import Settings
from webhook_relay.logging import configure_from_settings, get_logger
from webhook_relay.metrics import MetricsSink
from webhook_relay.processor import QueueProcessor
from webhook_relay.queue import DeadLetterQueue, DeadLetterStore, DeliveryQueue
from webhook_relay.webhooks import (
    CachingConfigProvider,
    ConfigResolver,
    DeliveryTracker,
    HttpTransport,
    WebhookSender,
)

logger = get_logger(__name__)


def build_processor(
    resolver: ConfigResolver,
    settings: Settings | None = None,
    *,
    http_client: HttpTransport | None = None,
    dead_letter_store: DeadLetterStore | None = None,
    metrics: MetricsSink | None = None,
    cache_configs: bool = False,
) -> QueueProcessor:
    """Create a QueueProcessor with every component built from settings.

    Relay logging is (re)configured from ``settings.log_level`` and
    ``settings.log_format``.

    Args:
        resolver: Async ``resolve(webhook_id)`` returning a WebhookConfig or None.
        settings: Optional settings. Uses defaults if None.
        http_client: Transport for the sender. Defaults to a pooled HttpClient.
        dead_letter_store: Persistence for quarantined deliveries. Defaults to memory.
        metrics: Optional sink shared by the tracker, quarantine and processor.
        cache_configs: Wrap ``resolver`` in a CachingConfigProvider.

    Returns:
        A processor that has not been started.

    Example:
        ```python
        provider = StaticConfigProvider([config])
        async with build_processor(provider, Settings(max_concurrent_deliveries=4)) as processor:
            await processor.queue.enqueue(delivery)
        ```
    """
    if settings is None:
        settings = Settings()
    configure_from_settings(settings)

    if cache_configs:
        resolver = CachingConfigProvider(resolver, ttl_seconds=settings.config_cache_ttl_seconds)

    processor = QueueProcessor(
        queue=DeliveryQueue.from_settings(settings),
        sender=WebhookSender(
            http_client=http_client,
            signature_header=settings.signature_header,
            circuit_breaker=settings.circuit_breaker,
        ),
        config_provider=resolver,
        tracker=DeliveryTracker(history_size=settings.tracker_history_size, metrics=metrics),
        dead_letter_queue=DeadLetterQueue(
            store=dead_letter_store,
            retention_days=settings.dead_letter_retention_days,
            metrics=metrics,
        ),
        metrics=metrics,
        queue_backlog_threshold=settings.queue_backlog_threshold,
        backlog_check_interval=settings.backlog_check_interval_seconds,
    )
    logger.debug(
        "Delivery pipeline built",
        env=settings.env,
        max_concurrent_deliveries=settings.max_concurrent_deliveries,
        cache_configs=cache_configs,
    )
    return processor
