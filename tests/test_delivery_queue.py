"""Tests for the DeliveryQueue worker pool."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest
import structlog
from utils import wait_until

from webhook_relay.config import Settings
from webhook_relay.exceptions import TransportError, ValidationError
from webhook_relay.models import WebhookDelivery
from webhook_relay.queue import DeliveryQueue


def copy_of(delivery: WebhookDelivery, delivery_id: str) -> WebhookDelivery:
    return delivery.model_copy(update={"id": delivery_id})


@pytest.fixture
def queue() -> DeliveryQueue:
    return DeliveryQueue(max_concurrent_deliveries=2, idle_poll_interval=0.01)


class TestEnqueue:
    """Tests for enqueue and counters while stopped."""

    @pytest.mark.asyncio
    async def test_enqueue_while_stopped(
        self, queue: DeliveryQueue, sample_delivery: WebhookDelivery
    ) -> None:
        await queue.enqueue(sample_delivery)
        assert queue.get_queue_size() == 1
        assert queue.get_processing_count() == 0
        assert not queue.is_processing()

    @pytest.mark.asyncio
    async def test_duplicate_id_rejected(
        self, queue: DeliveryQueue, sample_delivery: WebhookDelivery
    ) -> None:
        await queue.enqueue(sample_delivery)
        with pytest.raises(ValidationError):
            await queue.enqueue(sample_delivery.model_copy())

    def test_from_settings(self):
        queue = DeliveryQueue.from_settings(
            Settings(
                _env_file=None,
                max_concurrent_deliveries=4,
                retry_base_delay_seconds=2.0,
                max_retry_delay_seconds=30.0,
            )
        )
        assert queue.max_concurrent_deliveries == 4
        assert queue.retry_scheduler.base_delay == 2.0
        assert queue.retry_scheduler.max_delay == 30.0


class TestProcessing:
    """Tests for the worker loop."""

    @pytest.mark.asyncio
    async def test_successful_handler_completes(
        self, queue: DeliveryQueue, sample_delivery: WebhookDelivery
    ) -> None:
        handler = AsyncMock()
        queue.start_processing(handler)
        await queue.enqueue(sample_delivery)

        await wait_until(lambda: sample_delivery.status == "completed")
        await queue.stop_processing()

        handler.assert_awaited_once_with(sample_delivery)
        assert sample_delivery.attempts == 1
        assert queue.get_stats().completed_count == 1

    @pytest.mark.asyncio
    async def test_pending_before_start_is_processed(
        self, queue: DeliveryQueue, sample_delivery: WebhookDelivery
    ) -> None:
        handler = AsyncMock()
        await queue.enqueue(sample_delivery)
        queue.start_processing(handler)

        await wait_until(lambda: handler.await_count == 1)
        await queue.stop_processing()

    @pytest.mark.asyncio
    async def test_failure_retried_then_succeeds(
        self, queue: DeliveryQueue, sample_delivery: WebhookDelivery
    ) -> None:
        handler = AsyncMock(side_effect=[TransportError("HTTP 503"), None])
        on_exhausted = AsyncMock()
        queue.start_processing(handler, on_exhausted=on_exhausted)
        await queue.enqueue(sample_delivery)

        await wait_until(lambda: sample_delivery.status == "completed")
        await queue.stop_processing()

        assert handler.await_count == 2
        assert sample_delivery.attempts == 2
        on_exhausted.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_exhausted_calls_callback_once(
        self, queue: DeliveryQueue, sample_delivery: WebhookDelivery
    ) -> None:
        handler = AsyncMock(side_effect=TransportError("HTTP 500"))
        on_exhausted = AsyncMock()
        queue.start_processing(handler, on_exhausted=on_exhausted)
        await queue.enqueue(sample_delivery)

        await wait_until(lambda: on_exhausted.await_count == 1)
        await asyncio.sleep(0.05)
        await queue.stop_processing()

        assert handler.await_count == sample_delivery.max_attempts
        on_exhausted.assert_awaited_once()
        delivery, error = on_exhausted.await_args.args
        assert delivery is sample_delivery
        assert isinstance(error, TransportError)
        assert delivery.status == "dead_lettered"
        assert delivery.last_error == "HTTP 500"
        assert queue.get_queue_size() == 0

    @pytest.mark.asyncio
    async def test_exhausted_callback_error_is_logged(
        self, queue: DeliveryQueue, sample_delivery: WebhookDelivery
    ) -> None:
        sample_delivery.max_attempts = 1
        on_exhausted = AsyncMock(side_effect=RuntimeError("store down"))
        queue.start_processing(AsyncMock(side_effect=TransportError("x")), on_exhausted)
        await queue.enqueue(sample_delivery)

        await wait_until(lambda: on_exhausted.await_count == 1)
        await queue.stop_processing()
        assert queue.get_stats().exhausted_count == 1

    @pytest.mark.asyncio
    async def test_concurrency_ceiling(
        self, queue: DeliveryQueue, sample_delivery: WebhookDelivery
    ) -> None:
        active = 0
        peak = 0

        async def handler(delivery: WebhookDelivery) -> None:
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.02)
            active -= 1

        queue.start_processing(handler)
        for i in range(6):
            await queue.enqueue(copy_of(sample_delivery, f"dlv_{i}"))

        await wait_until(lambda: queue.get_stats().completed_count == 6)
        await queue.stop_processing()
        assert peak == 2

    @pytest.mark.asyncio
    async def test_binds_logging_context(
        self, queue: DeliveryQueue, sample_delivery: WebhookDelivery
    ) -> None:
        seen: dict[str, object] = {}

        async def handler(delivery: WebhookDelivery) -> None:
            seen.update(structlog.contextvars.get_contextvars())

        queue.start_processing(handler)
        await queue.enqueue(sample_delivery)
        await wait_until(lambda: bool(seen))
        await queue.stop_processing()

        assert seen["delivery_id"] == sample_delivery.id
        assert seen["webhook_id"] == sample_delivery.webhook_id


class TestStop:
    """Tests for start/stop lifecycle."""

    @pytest.mark.asyncio
    async def test_stop_waits_for_in_flight(
        self, queue: DeliveryQueue, sample_delivery: WebhookDelivery
    ) -> None:
        started = asyncio.Event()
        finished = False

        async def handler(delivery: WebhookDelivery) -> None:
            nonlocal finished
            started.set()
            await asyncio.sleep(0.05)
            finished = True

        queue.start_processing(handler)
        await queue.enqueue(sample_delivery)
        await started.wait()

        await queue.stop_processing()

        assert finished
        assert sample_delivery.status == "completed"
        assert not queue.is_processing()

    @pytest.mark.asyncio
    async def test_no_dispatch_after_stop(
        self, queue: DeliveryQueue, sample_delivery: WebhookDelivery
    ) -> None:
        handler = AsyncMock()
        queue.start_processing(handler)
        await queue.stop_processing()

        await queue.enqueue(sample_delivery)
        await asyncio.sleep(0.05)

        handler.assert_not_awaited()
        assert queue.get_queue_size() == 1

    @pytest.mark.asyncio
    async def test_stop_timeout_requeues(
        self, queue: DeliveryQueue, sample_delivery: WebhookDelivery
    ) -> None:
        started = asyncio.Event()

        async def handler(delivery: WebhookDelivery) -> None:
            started.set()
            await asyncio.sleep(10)

        queue.start_processing(handler)
        await queue.enqueue(sample_delivery)
        await started.wait()

        await queue.stop_processing(timeout=0.05)

        assert queue.get_processing_count() == 0
        assert queue.get_queue_size() == 1
        assert sample_delivery.status == "pending"
        assert sample_delivery.attempts == 0

    @pytest.mark.asyncio
    async def test_start_twice_and_stop_twice(self, queue: DeliveryQueue) -> None:
        handler = AsyncMock()
        queue.start_processing(handler)
        queue.start_processing(handler)
        assert queue.is_processing()
        await queue.stop_processing()
        await queue.stop_processing()
        assert not queue.is_processing()
