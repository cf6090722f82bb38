"""Per-webhook delivery accounting.

Every attempt, successful or not, is recorded once. Each webhook keeps a
bounded window of recent records for debugging plus running counters that
are never truncated, so statistics stay exact after old records are
evicted from the window.
"""

from __future__ import annotations

import asyncio
import math
from collections import deque
from dataclasses import dataclass

from pydantic import ValidationError as PydanticValidationError

from webhook_relay.exceptions import TrackingError
from webhook_relay.logging import get_logger
from webhook_relay.metrics import (
    DELIVERIES_TOTAL,
    DELIVERY_FAILURE_TOTAL,
    DELIVERY_SUCCESS_TOTAL,
    RESPONSE_TIME_MS,
    MetricsSink,
    emit_safely,
)
from webhook_relay.models import DeliveryRecord, DeliveryResult, DeliveryStats, WebhookDelivery

logger = get_logger(__name__)

DEFAULT_HISTORY_SIZE = 1000


@dataclass
class _WebhookCounters:
    total: int = 0
    successful: int = 0
    failed: int = 0
    response_time_ms: int = 0


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


class DeliveryTracker:
    """Records delivery attempts and reports per-webhook statistics.

    Example:
        ```python
        tracker = DeliveryTracker()
        await tracker.track_delivery(delivery, result)
        stats = await tracker.get_delivery_stats(delivery.webhook_id)
        recent = tracker.get_recent_deliveries(delivery.webhook_id, limit=5)
        ```
    """

    def __init__(
        self,
        history_size: int = DEFAULT_HISTORY_SIZE,
        metrics: MetricsSink | None = None,
    ) -> None:
        """Initialize the tracker.

        Args:
            history_size: Records kept per webhook (oldest evicted first).
            metrics: Optional sink for delivery counters and response times.
        """
        self._history_size = history_size
        self._metrics = metrics
        self._history: dict[str, deque[DeliveryRecord]] = {}
        self._counters: dict[str, _WebhookCounters] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock_for(self, webhook_id: str) -> asyncio.Lock:
        lock = self._locks.get(webhook_id)
        if lock is None:
            lock = self._locks[webhook_id] = asyncio.Lock()
        return lock

    async def track_delivery(self, delivery: WebhookDelivery, result: DeliveryResult) -> None:
        """Record the outcome of one attempt.

        Raises:
            TrackingError: If the record cannot be built from the inputs.
        """
        try:
            record = DeliveryRecord(
                delivery_id=delivery.id,
                webhook_id=delivery.webhook_id,
                success=result.success,
                status_code=result.status_code,
                response_time_ms=result.response_time_ms,
                error=result.error,
                attempt=delivery.attempts,
            )
        except PydanticValidationError as e:
            raise TrackingError(f"Cannot record delivery {delivery.id}: {e}") from e

        async with self._lock_for(delivery.webhook_id):
            history = self._history.get(delivery.webhook_id)
            if history is None:
                history = self._history[delivery.webhook_id] = deque(maxlen=self._history_size)
            history.append(record)

            counters = self._counters.setdefault(delivery.webhook_id, _WebhookCounters())
            counters.total += 1
            counters.response_time_ms += record.response_time_ms
            if record.success:
                counters.successful += 1
            else:
                counters.failed += 1

        labels = {"webhook_id": delivery.webhook_id}
        emit_safely(self._metrics, "counter", DELIVERIES_TOTAL, labels=labels)
        emit_safely(
            self._metrics,
            "counter",
            DELIVERY_SUCCESS_TOTAL if record.success else DELIVERY_FAILURE_TOTAL,
            labels=labels,
        )
        emit_safely(
            self._metrics, "histogram", RESPONSE_TIME_MS, record.response_time_ms, labels=labels
        )

    async def get_delivery_stats(self, webhook_id: str) -> DeliveryStats:
        """Aggregate statistics over every attempt tracked for a webhook.

        Unknown webhooks report zeros.
        """
        if webhook_id not in self._counters:
            return DeliveryStats()
        async with self._lock_for(webhook_id):
            counters = self._counters.get(webhook_id)
            if counters is None or counters.total == 0:
                return DeliveryStats()
            return DeliveryStats(
                total_deliveries=counters.total,
                successful_deliveries=counters.successful,
                failed_deliveries=counters.failed,
                average_response_time=_round_half_up(counters.response_time_ms / counters.total),
            )

    def get_recent_deliveries(self, webhook_id: str, limit: int = 10) -> list[DeliveryRecord]:
        """Return up to ``limit`` most recent records, oldest first."""
        if limit <= 0:
            return []
        history = self._history.get(webhook_id)
        if not history:
            return []
        return list(history)[-limit:]

    def clear_history(self, webhook_id: str | None = None) -> None:
        """Forget records and counters for one webhook, or for all of them."""
        if webhook_id is None:
            self._history.clear()
            self._counters.clear()
            self._locks.clear()
            logger.debug("Cleared delivery history for all webhooks")
            return
        self._history.pop(webhook_id, None)
        self._counters.pop(webhook_id, None)
        self._locks.pop(webhook_id, None)
        logger.debug("Cleared delivery history", webhook_id=webhook_id)

    def tracked_webhooks(self) -> list[str]:
        return sorted(self._counters)
