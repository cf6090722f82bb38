"""Tests for building a processor from settings."""

from __future__ import annotations

import logging
from unittest.mock import AsyncMock

import pytest
from utils import FakeTransport, wait_until

from webhook_relay.config import Settings
from webhook_relay.logging import RELAY_LOGGER_NAME, configure_logging
from webhook_relay.metrics import DEAD_LETTERED_TOTAL, InMemoryMetrics
from webhook_relay.models import DeliveryResult, WebhookConfig, WebhookDelivery
from webhook_relay.pipeline import build_processor
from webhook_relay.queue import InMemoryDeadLetterStore
from webhook_relay.webhooks import StaticConfigProvider


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        max_concurrent_deliveries=3,
        queue_backlog_threshold=5,
        dead_letter_retention_days=7,
        signature_header="X-Hub-Signature",
    )


def test_components_follow_settings(settings: Settings, fake_transport: FakeTransport):
    processor = build_processor(StaticConfigProvider(), settings, http_client=fake_transport)

    assert processor.queue.max_concurrent_deliveries == 3
    assert processor.queue_backlog_threshold == 5
    assert processor.dead_letter_queue.retention_days == 7
    assert processor.tracker is not None
    assert not processor.is_running()


@pytest.mark.asyncio
async def test_delivers_with_configured_signature_header(
    settings: Settings,
    fake_transport: FakeTransport,
    sample_config: WebhookConfig,
    sample_delivery: WebhookDelivery,
) -> None:
    processor = build_processor(
        StaticConfigProvider([sample_config]), settings, http_client=fake_transport
    )

    async with processor:
        await processor.queue.enqueue(sample_delivery)
        await wait_until(lambda: sample_delivery.status == "completed")

    [request] = fake_transport.requests
    assert request.headers["X-Hub-Signature"].startswith("sha256=")
    assert "X-Signature" not in request.headers


@pytest.mark.asyncio
async def test_shared_metrics_and_store(
    settings: Settings,
    sample_config: WebhookConfig,
    sample_delivery: WebhookDelivery,
) -> None:
    metrics = InMemoryMetrics()
    store = InMemoryDeadLetterStore()
    transport = FakeTransport(default=DeliveryResult(success=False, status_code=502, error="HTTP 502"))
    processor = build_processor(
        StaticConfigProvider([sample_config]),
        settings,
        http_client=transport,
        dead_letter_store=store,
        metrics=metrics,
    )

    async with processor:
        await processor.queue.enqueue(sample_delivery)
        await wait_until(lambda: sample_delivery.status == "dead_lettered")
        await wait_until(
            lambda: metrics.counter(DEAD_LETTERED_TOTAL, {"webhook_id": sample_config.id}) == 1
        )

    assert len(await store.list_entries()) == 1


@pytest.mark.asyncio
async def test_cache_configs_wraps_resolver(
    settings: Settings,
    fake_transport: FakeTransport,
    sample_config: WebhookConfig,
    sample_delivery: WebhookDelivery,
) -> None:
    loader = AsyncMock(return_value=sample_config)
    processor = build_processor(
        loader, settings, http_client=fake_transport, cache_configs=True
    )

    await processor.process_webhook_delivery(sample_delivery)
    await processor.process_webhook_delivery(
        sample_delivery.model_copy(update={"id": "dlv_second"})
    )

    loader.assert_awaited_once_with(sample_config.id)
    assert processor.get_stats().successful_deliveries == 2


def test_logging_follows_settings(fake_transport: FakeTransport):
    relay_logger = logging.getLogger(RELAY_LOGGER_NAME)
    try:
        build_processor(
            StaticConfigProvider(),
            Settings(_env_file=None, log_level="DEBUG", log_format="text"),
            http_client=fake_transport,
        )
        assert relay_logger.level == logging.DEBUG
        assert len(relay_logger.handlers) == 1

        build_processor(
            StaticConfigProvider(),
            Settings(_env_file=None, log_level="WARNING"),
            http_client=fake_transport,
        )
        assert relay_logger.level == logging.WARNING
        assert len(relay_logger.handlers) == 1
    finally:
        configure_logging()
