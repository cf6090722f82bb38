"""Queue processor: the handler that turns queued deliveries into HTTP calls.

For every attempt the processor resolves the webhook configuration,
validates it, sends the delivery and records the outcome. Failures are
raised back to the delivery queue, which owns the retry decision. Once a
delivery runs out of attempts the queue hands it back here and it is
quarantined in the dead-letter queue.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from typing import Any

from pydantic import BaseModel, ConfigDict

from webhook_relay.exceptions import ConfigurationError, RelayError, TransportError
from webhook_relay.logging import get_logger
from webhook_relay.metrics import (
    ACTIVE_DELIVERIES,
    BACKLOG_WARNINGS_TOTAL,
    QUEUE_SIZE,
    UTILIZATION_PERCENT,
    MetricsSink,
    emit_safely,
)
from webhook_relay.models import DeadLetterStats, DeliveryResult, WebhookConfig, WebhookDelivery
from webhook_relay.queue import DeadLetterQueue, DeliveryQueue, QueueStats
from webhook_relay.webhooks import ConfigResolver, DeliveryTracker, WebhookSender

logger = get_logger(__name__)

MAX_RETRIES_REASON = "Max retry attempts exceeded"
DEFAULT_BACKLOG_THRESHOLD = 100
# Minimum seconds between two backlog warnings
BACKLOG_WARNING_INTERVAL = 60.0


class ProcessorStats(BaseModel):
    """Processor counters and current queue occupancy."""

    model_config = ConfigDict(extra="forbid")

    is_running: bool
    total_processed: int
    successful_deliveries: int
    failed_deliveries: int
    current_queue_size: int
    processing_count: int
    max_concurrent_deliveries: int
    queue_backlog_warnings: int


class ProcessorStatus(BaseModel):
    """Everything an operator dashboard needs in one call."""

    model_config = ConfigDict(extra="forbid")

    stats: ProcessorStats
    queue: QueueStats
    dead_letter: DeadLetterStats | None = None
    slot_utilization_percent: float
    backlog_threshold: int


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


class QueueProcessor:
    """Runs deliveries from a DeliveryQueue through a WebhookSender.

    Example:
        ```python
        processor = QueueProcessor(
            queue=DeliveryQueue(max_concurrent_deliveries=10),
            sender=WebhookSender(),
            config_provider=StaticConfigProvider([config]),
            tracker=DeliveryTracker(),
            dead_letter_queue=DeadLetterQueue(),
        )
        processor.start()
        await processor.queue.enqueue(WebhookDelivery.for_event(config, event, sub.id))
        ...
        await processor.stop()
        ```
    """

    def __init__(
        self,
        queue: DeliveryQueue,
        sender: WebhookSender,
        config_provider: ConfigResolver,
        tracker: DeliveryTracker | None = None,
        dead_letter_queue: DeadLetterQueue | None = None,
        metrics: MetricsSink | None = None,
        queue_backlog_threshold: int = DEFAULT_BACKLOG_THRESHOLD,
        backlog_check_interval: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the processor.

        Args:
            queue: Delivery queue whose workers call this processor.
            sender: Performs the HTTP attempt.
            config_provider: Async ``resolve(webhook_id)`` returning the config or None.
            tracker: Optional per-attempt accounting.
            dead_letter_queue: Optional quarantine for exhausted deliveries.
            metrics: Optional sink for queue gauges and backlog warnings.
            queue_backlog_threshold: Queue size that triggers a backlog warning.
            backlog_check_interval: Seconds between background backlog checks.
            clock: Monotonic time source for warning rate limiting.
        """
        self.queue = queue
        self.sender = sender
        self.tracker = tracker
        self.dead_letter_queue = dead_letter_queue
        self._config_provider = config_provider
        self._metrics = metrics
        self.queue_backlog_threshold = queue_backlog_threshold
        self._backlog_check_interval = backlog_check_interval
        self._clock = clock

        self._running = False
        self._monitor_task: asyncio.Task[None] | None = None
        self._last_backlog_warning: float | None = None

        self.total_processed = 0
        self.successful_deliveries = 0
        self.failed_deliveries = 0
        self.queue_backlog_warnings = 0

    # Lifecycle

    def start(self) -> None:
        """Start the queue workers and backlog monitoring."""
        if self._running:
            logger.warning("Queue processor is already running")
            return

        self._running = True
        self.queue.start_processing(
            self.process_webhook_delivery,
            on_exhausted=self.handle_max_retries_exceeded,
        )
        self._monitor_task = asyncio.create_task(
            self._monitor_backlog(), name="queue-backlog-monitor"
        )
        logger.info(
            "Queue processor started",
            max_concurrent_deliveries=self.queue.max_concurrent_deliveries,
            backlog_threshold=self.queue_backlog_threshold,
        )

    async def stop(self, timeout: float | None = None) -> None:
        """Stop dispatching and wait for in-flight deliveries."""
        if not self._running:
            return

        self._running = False
        task, self._monitor_task = self._monitor_task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        await self.queue.stop_processing(timeout=timeout)
        logger.info(
            "Queue processor stopped",
            total_processed=self.total_processed,
            pending=self.queue.get_queue_size(),
        )

    def is_running(self) -> bool:
        return self._running

    async def __aenter__(self) -> QueueProcessor:
        """Async context manager entry."""
        self.start()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.stop()

    # Delivery handling

    async def process_webhook_delivery(self, delivery: WebhookDelivery) -> None:
        """Perform one attempt of a delivery.

        Every attempt is tracked exactly once, whatever its outcome. Unexpected
        errors from the sender are recorded as failed attempts and re-raised.

        Raises:
            ConfigurationError: If the webhook config is missing, inactive or invalid.
            TransportError: If the endpoint could not be reached or rejected the request.
        """
        start = time.perf_counter()
        try:
            config = await self._resolve_config(delivery)
            result = await self.sender.send_webhook(delivery, config)
        except Exception as e:
            if isinstance(e, ConfigurationError):
                error = e.message
            else:
                error = str(e) or type(e).__name__
            await self._record_attempt(delivery, DeliveryResult.failure(error, _elapsed_ms(start)))
            raise

        await self._record_attempt(delivery, result)
        if not result.success:
            raise TransportError(
                result.error or "Webhook delivery failed", status_code=result.status_code
            )

    async def _resolve_config(self, delivery: WebhookDelivery) -> WebhookConfig:
        try:
            config = await self._config_provider(delivery.webhook_id)
        except Exception as e:
            raise ConfigurationError(
                f"Failed to resolve webhook configuration for ID {delivery.webhook_id}: {e}"
            ) from e

        if config is None:
            raise ConfigurationError(
                f"Webhook configuration not found for ID: {delivery.webhook_id}"
            )
        if not config.active:
            raise ConfigurationError(f"Webhook {delivery.webhook_id} is inactive")

        validation = self.sender.validate_webhook_config(config)
        if not validation.is_valid:
            raise ConfigurationError(
                f"Invalid webhook configuration: {validation.error_message}"
            )
        return config

    async def _record_attempt(self, delivery: WebhookDelivery, result: DeliveryResult) -> None:
        self.total_processed += 1
        if result.success:
            self.successful_deliveries += 1
            logger.info(
                "Webhook delivered",
                delivery_id=delivery.id,
                webhook_id=delivery.webhook_id,
                attempts=delivery.attempts,
                status_code=result.status_code,
                response_time_ms=result.response_time_ms,
            )
        else:
            self.failed_deliveries += 1
            logger.warning(
                "Webhook delivery attempt failed",
                delivery_id=delivery.id,
                webhook_id=delivery.webhook_id,
                attempts=delivery.attempts,
                max_attempts=delivery.max_attempts,
                status_code=result.status_code,
                error=result.error,
            )

        if self.tracker is None:
            return
        try:
            await self.tracker.track_delivery(delivery, result)
        except Exception as e:
            logger.error(
                "Failed to track delivery attempt",
                delivery_id=delivery.id,
                webhook_id=delivery.webhook_id,
                error=str(e),
            )

    async def handle_max_retries_exceeded(
        self, delivery: WebhookDelivery, last_error: str | BaseException
    ) -> str | None:
        """Quarantine a delivery that used up its attempts.

        Returns:
            The dead-letter entry id, or None if nothing was quarantined.
        """
        if isinstance(last_error, BaseException):
            error = str(last_error) or type(last_error).__name__
        else:
            error = last_error

        if self.dead_letter_queue is None:
            delivery.status = "failed"
            logger.error(
                "Delivery exhausted retries and no dead-letter queue is configured",
                delivery_id=delivery.id,
                webhook_id=delivery.webhook_id,
                attempts=delivery.attempts,
                last_error=error,
            )
            return None

        entry_id = await self.dead_letter_queue.add_failed_delivery(
            delivery,
            reason=MAX_RETRIES_REASON,
            last_error=error,
            retryable=not isinstance(last_error, ConfigurationError),
        )
        if entry_id is None:
            delivery.status = "failed"
            return None

        logger.warning(
            "Delivery moved to dead-letter queue",
            delivery_id=delivery.id,
            webhook_id=delivery.webhook_id,
            entry_id=entry_id,
            attempts=delivery.attempts,
            max_attempts=delivery.max_attempts,
            last_error=error,
        )
        return entry_id

    async def retry_from_dead_letter(self, entry_id: str) -> bool:
        """Re-enqueue a quarantined delivery with a fresh attempt budget.

        The entry is removed only after the delivery is back in the queue.
        """
        if self.dead_letter_queue is None:
            logger.warning("Replay requested but no dead-letter queue is configured")
            return False

        try:
            delivery = await self.dead_letter_queue.retry_delivery(entry_id)
            if delivery is None:
                logger.warning("Dead-letter entry not found", entry_id=entry_id)
                return False
            await self.queue.enqueue(delivery)
        except RelayError as e:
            logger.error("Failed to replay dead-letter entry", entry_id=entry_id, error=e.message)
            return False

        await self.dead_letter_queue.remove_entry(entry_id)
        logger.info(
            "Dead-letter entry replayed",
            entry_id=entry_id,
            delivery_id=delivery.id,
            webhook_id=delivery.webhook_id,
        )
        return True

    async def get_dead_letter_stats(self) -> DeadLetterStats | None:
        if self.dead_letter_queue is None:
            return None
        return await self.dead_letter_queue.get_stats()

    # Monitoring

    def get_stats(self) -> ProcessorStats:
        return ProcessorStats(
            is_running=self._running,
            total_processed=self.total_processed,
            successful_deliveries=self.successful_deliveries,
            failed_deliveries=self.failed_deliveries,
            current_queue_size=self.queue.get_queue_size(),
            processing_count=self.queue.get_processing_count(),
            max_concurrent_deliveries=self.queue.max_concurrent_deliveries,
            queue_backlog_warnings=self.queue_backlog_warnings,
        )

    def get_delivery_slot_utilization(self) -> float:
        """Percentage of delivery slots in use."""
        return self.queue.get_processing_count() / self.queue.max_concurrent_deliveries * 100

    async def get_detailed_status(self) -> ProcessorStatus:
        return ProcessorStatus(
            stats=self.get_stats(),
            queue=self.queue.get_stats(),
            dead_letter=await self.get_dead_letter_stats(),
            slot_utilization_percent=self.get_delivery_slot_utilization(),
            backlog_threshold=self.queue_backlog_threshold,
        )

    def check_backlog(self) -> bool:
        """Publish queue gauges and warn when the queue is backed up.

        Returns:
            True if the queue size exceeds the backlog threshold.
        """
        queue_size = self.queue.get_queue_size()
        emit_safely(self._metrics, "gauge", QUEUE_SIZE, queue_size)
        emit_safely(self._metrics, "gauge", ACTIVE_DELIVERIES, self.queue.get_processing_count())
        emit_safely(self._metrics, "gauge", UTILIZATION_PERCENT, self.get_delivery_slot_utilization())

        if queue_size <= self.queue_backlog_threshold:
            return False

        now = self._clock()
        if (
            self._last_backlog_warning is None
            or now - self._last_backlog_warning >= BACKLOG_WARNING_INTERVAL
        ):
            self._last_backlog_warning = now
            self.queue_backlog_warnings += 1
            emit_safely(self._metrics, "counter", BACKLOG_WARNINGS_TOTAL)
            logger.warning(
                "Delivery queue backlog detected",
                queue_size=queue_size,
                threshold=self.queue_backlog_threshold,
                processing_count=self.queue.get_processing_count(),
            )
        return True

    async def _monitor_backlog(self) -> None:
        while self._running:
            try:
                self.check_backlog()
            except Exception:
                logger.exception("Backlog check failed")
            await asyncio.sleep(self._backlog_check_interval)
