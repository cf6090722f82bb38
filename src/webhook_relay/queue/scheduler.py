"""Delivery storage and scheduling, independent of any worker loop.

Holds pending and in-flight deliveries. Due times live in a min-heap keyed
by ``(next_retry_at, sequence)``, and the clock is injected, so backoff and
the concurrency ceiling can be exercised without running workers.

Every method is synchronous: under asyncio no other coroutine can observe
a half-applied state change, which keeps the size and processing counters
consistent with the deliveries actually held.
"""

from __future__ import annotations

import heapq
import itertools
from collections.abc import Callable
from datetime import datetime

from webhook_relay.exceptions import ValidationError
from webhook_relay.models import WebhookDelivery, utc_now

from .retry import RetryScheduler


class DeliveryScheduler:
    """Pending/in-flight bookkeeping with exponential-backoff rescheduling.

    State per delivery: ``pending -> delivering -> completed | pending
    (retry) | dead_lettered``.

    Example:
        ```python
        scheduler = DeliveryScheduler(max_concurrent=2, clock=fake_clock)
        scheduler.add(delivery)
        claimed = scheduler.acquire()  # status "delivering", attempts 1
        retried = scheduler.fail(claimed, "HTTP 503")  # True, due again in 1s
        ```
    """

    def __init__(
        self,
        max_concurrent: int = 10,
        retry_scheduler: RetryScheduler | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self.max_concurrent = max_concurrent
        self.retry_scheduler = retry_scheduler or RetryScheduler()
        self._clock = clock
        self._heap: list[tuple[datetime, int, str]] = []
        self._sequence = itertools.count()
        self._pending: dict[str, WebhookDelivery] = {}
        self._in_flight: dict[str, WebhookDelivery] = {}
        self.completed_count = 0
        self.retried_count = 0
        self.exhausted_count = 0

    @property
    def queue_size(self) -> int:
        """Pending deliveries, including those waiting for a retry."""
        return len(self._pending)

    @property
    def processing_count(self) -> int:
        return len(self._in_flight)

    def contains(self, delivery_id: str) -> bool:
        return delivery_id in self._pending or delivery_id in self._in_flight

    def get(self, delivery_id: str) -> WebhookDelivery | None:
        return self._pending.get(delivery_id) or self._in_flight.get(delivery_id)

    def add(self, delivery: WebhookDelivery) -> None:
        """Accept a new delivery: pending, zero attempts, due now.

        Raises:
            ValidationError: If a delivery with the same id is already held.
        """
        if self.contains(delivery.id):
            raise ValidationError("id", f"Delivery {delivery.id} is already queued")
        delivery.status = "pending"
        delivery.attempts = 0
        delivery.next_retry_at = None
        delivery.last_error = None
        self._push(delivery, self._clock())

    def acquire(self) -> WebhookDelivery | None:
        """Claim the earliest due delivery, if the concurrency ceiling allows.

        The claimed delivery moves to ``delivering`` with ``attempts`` + 1.
        """
        if len(self._in_flight) >= self.max_concurrent:
            return None
        now = self._clock()
        while self._heap and self._heap[0][0] <= now:
            _, _, delivery_id = heapq.heappop(self._heap)
            delivery = self._pending.pop(delivery_id, None)
            if delivery is None:
                continue
            delivery.status = "delivering"
            delivery.attempts += 1
            delivery.next_retry_at = None
            self._in_flight[delivery.id] = delivery
            return delivery
        return None

    def complete(self, delivery: WebhookDelivery) -> None:
        """Mark an in-flight delivery completed and drop it."""
        self._in_flight.pop(delivery.id, None)
        delivery.status = "completed"
        self.completed_count += 1

    def fail(self, delivery: WebhookDelivery, error: str) -> bool:
        """Record a failed attempt.

        Returns:
            True if a retry was scheduled; False if the delivery is exhausted,
            in which case it is removed with status ``dead_lettered``.
        """
        self._in_flight.pop(delivery.id, None)
        delivery.last_error = error

        if self.retry_scheduler.should_retry(delivery):
            base = (
                delivery.retry_base_delay_ms / 1000
                if delivery.retry_base_delay_ms is not None
                else None
            )
            due = self.retry_scheduler.calculate_next_retry(delivery.attempts, self._clock(), base)
            delivery.status = "pending"
            delivery.next_retry_at = due
            self._push(delivery, due)
            self.retried_count += 1
            return True

        delivery.status = "dead_lettered"
        self.exhausted_count += 1
        return False

    def release(self, delivery: WebhookDelivery) -> None:
        """Return an interrupted in-flight delivery to pending, due now.

        The interrupted attempt is not counted.
        """
        if self._in_flight.pop(delivery.id, None) is None:
            return
        delivery.attempts = max(0, delivery.attempts - 1)
        delivery.status = "pending"
        delivery.next_retry_at = None
        self._push(delivery, self._clock())

    def seconds_until_next_due(self) -> float | None:
        """Seconds until the earliest pending delivery is due; None when empty."""
        while self._heap and self._heap[0][2] not in self._pending:
            heapq.heappop(self._heap)
        if not self._heap:
            return None
        return max(0.0, (self._heap[0][0] - self._clock()).total_seconds())

    def has_due(self) -> bool:
        remaining = self.seconds_until_next_due()
        return remaining is not None and remaining <= 0

    def _push(self, delivery: WebhookDelivery, due: datetime) -> None:
        self._pending[delivery.id] = delivery
        heapq.heappush(self._heap, (due, next(self._sequence), delivery.id))
