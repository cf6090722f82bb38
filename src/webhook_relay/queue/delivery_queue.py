"""Delivery queue with a bounded asyncio worker pool.

The queue owns a DeliveryScheduler for storage and backoff, plus
``max_concurrent_deliveries`` worker tasks. Each worker claims one due
delivery, awaits the handler to completion, then claims the next. A
handler that returns completes the delivery; a handler that raises fails
the attempt, and the scheduler either reschedules it with backoff or
reports it exhausted, in which case ``on_exhausted`` is awaited once.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict

from webhook_relay.logging import bind_context, get_logger, unbind_context
from webhook_relay.models import WebhookDelivery, utc_now

from .retry import RetryScheduler
from .scheduler import DeliveryScheduler

if TYPE_CHECKING:
    from webhook_relay.config import Settings

logger = get_logger(__name__)

DeliveryHandler = Callable[[WebhookDelivery], Awaitable[None]]
ExhaustedHandler = Callable[[WebhookDelivery, Exception], Awaitable[object]]

# Shortest idle sleep, so a due-but-unclaimable delivery cannot spin a worker
_MIN_WAIT_SECONDS = 0.001


class QueueStats(BaseModel):
    """Snapshot of queue state and lifetime counters."""

    model_config = ConfigDict(extra="forbid")

    is_processing: bool
    pending_count: int
    processing_count: int
    max_concurrent_deliveries: int
    completed_count: int
    retried_count: int
    exhausted_count: int


class DeliveryQueue:
    """Schedules deliveries and runs them on a bounded worker pool.

    Example:
        ```python
        queue = DeliveryQueue(max_concurrent_deliveries=10)
        queue.start_processing(handler, on_exhausted=quarantine)
        await queue.enqueue(delivery)
        ...
        await queue.stop_processing()
        ```
    """

    def __init__(
        self,
        max_concurrent_deliveries: int = 10,
        retry_scheduler: RetryScheduler | None = None,
        idle_poll_interval: float = 0.5,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize the queue.

        Args:
            max_concurrent_deliveries: Worker pool size and in-flight ceiling.
            retry_scheduler: Backoff policy. Defaults to 1s base, 60s cap.
            idle_poll_interval: Longest an idle worker sleeps before re-checking.
            clock: Time source for due times.
        """
        self.max_concurrent_deliveries = max_concurrent_deliveries
        self._scheduler = DeliveryScheduler(
            max_concurrent=max_concurrent_deliveries,
            retry_scheduler=retry_scheduler,
            clock=clock,
        )
        self._idle_poll_interval = idle_poll_interval
        self._wakeup = asyncio.Condition()
        self._workers: list[asyncio.Task[None]] = []
        self._processing = False
        self._handler: DeliveryHandler | None = None
        self._on_exhausted: ExhaustedHandler | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> DeliveryQueue:
        return cls(
            max_concurrent_deliveries=settings.max_concurrent_deliveries,
            retry_scheduler=RetryScheduler(
                base_delay=settings.retry_base_delay_seconds,
                max_delay=settings.max_retry_delay_seconds,
                jitter=settings.retry_jitter,
            ),
            idle_poll_interval=settings.idle_poll_interval_seconds,
        )

    @property
    def scheduler(self) -> DeliveryScheduler:
        return self._scheduler

    @property
    def retry_scheduler(self) -> RetryScheduler:
        return self._scheduler.retry_scheduler

    def is_processing(self) -> bool:
        return self._processing

    async def enqueue(self, delivery: WebhookDelivery) -> None:
        """Add a delivery as pending with zero attempts.

        Deliveries can be enqueued while processing is stopped; they wait
        until the next ``start_processing``.

        Raises:
            ValidationError: If the delivery id is already in the queue.
        """
        self._scheduler.add(delivery)
        logger.debug(
            "Delivery enqueued",
            delivery_id=delivery.id,
            webhook_id=delivery.webhook_id,
            max_attempts=delivery.max_attempts,
        )
        await self._notify()

    def get_queue_size(self) -> int:
        """Pending deliveries, including scheduled retries."""
        return self._scheduler.queue_size

    def get_processing_count(self) -> int:
        """Deliveries currently being delivered."""
        return self._scheduler.processing_count

    def get_stats(self) -> QueueStats:
        return QueueStats(
            is_processing=self._processing,
            pending_count=self._scheduler.queue_size,
            processing_count=self._scheduler.processing_count,
            max_concurrent_deliveries=self.max_concurrent_deliveries,
            completed_count=self._scheduler.completed_count,
            retried_count=self._scheduler.retried_count,
            exhausted_count=self._scheduler.exhausted_count,
        )

    def start_processing(
        self,
        handler: DeliveryHandler,
        on_exhausted: ExhaustedHandler | None = None,
    ) -> None:
        """Start the worker pool.

        Must be called from a running event loop. Calling it again while
        processing is a no-op.

        Args:
            handler: Awaited once per attempt; raising fails the attempt.
            on_exhausted: Awaited with the delivery and the exception from
                its final attempt once the attempt ceiling is reached.
        """
        if self._processing:
            logger.warning("Delivery queue is already processing")
            return

        self._handler = handler
        self._on_exhausted = on_exhausted
        self._processing = True
        self._workers = [
            asyncio.create_task(self._worker_loop(), name=f"delivery-worker-{i}")
            for i in range(self.max_concurrent_deliveries)
        ]
        logger.info(
            "Delivery queue processing started",
            workers=self.max_concurrent_deliveries,
            pending=self._scheduler.queue_size,
        )

    async def stop_processing(self, timeout: float | None = None) -> None:
        """Stop dispatching and wait for in-flight deliveries to finish.

        No new delivery is claimed once this is called. Handlers already
        running are allowed to complete. If ``timeout`` elapses first the
        remaining workers are cancelled and their deliveries go back to
        pending.
        """
        if not self._processing:
            return

        self._processing = False
        await self._notify(notify_all=True)

        workers, self._workers = self._workers, []
        done, still_running = await asyncio.wait(workers, timeout=timeout)
        for task in still_running:
            task.cancel()
        if still_running:
            await asyncio.gather(*still_running, return_exceptions=True)
            logger.warning("Cancelled in-flight deliveries on stop", count=len(still_running))

        logger.info(
            "Delivery queue processing stopped",
            pending=self._scheduler.queue_size,
        )

    async def _notify(self, notify_all: bool = False) -> None:
        async with self._wakeup:
            if notify_all:
                self._wakeup.notify_all()
            else:
                self._wakeup.notify()

    async def _worker_loop(self) -> None:
        while self._processing:
            delivery = self._scheduler.acquire()
            if delivery is None:
                await self._wait_for_work()
                continue
            await self._dispatch(delivery)

    async def _wait_for_work(self) -> None:
        async with self._wakeup:
            if not self._processing or self._scheduler.has_due():
                return
            remaining = self._scheduler.seconds_until_next_due()
            timeout = self._idle_poll_interval
            if remaining is not None:
                timeout = max(min(remaining, timeout), _MIN_WAIT_SECONDS)
            try:
                await asyncio.wait_for(self._wakeup.wait(), timeout=timeout)
            except TimeoutError:
                pass

    async def _dispatch(self, delivery: WebhookDelivery) -> None:
        assert self._handler is not None
        bind_context(delivery_id=delivery.id, webhook_id=delivery.webhook_id)
        try:
            await self._handler(delivery)
        except asyncio.CancelledError:
            self._scheduler.release(delivery)
            raise
        except Exception as e:
            error = str(e) or type(e).__name__
            if self._scheduler.fail(delivery, error):
                logger.info(
                    "Delivery scheduled for retry",
                    attempts=delivery.attempts,
                    max_attempts=delivery.max_attempts,
                    next_retry_at=delivery.next_retry_at.isoformat()
                    if delivery.next_retry_at
                    else None,
                    error=error,
                )
                await self._notify()
            else:
                await self._handle_exhausted(delivery, e)
        else:
            self._scheduler.complete(delivery)
        finally:
            unbind_context("delivery_id", "webhook_id")

    async def _handle_exhausted(self, delivery: WebhookDelivery, error: Exception) -> None:
        if self._on_exhausted is None:
            logger.error(
                "Delivery exhausted retries with no exhaustion handler",
                attempts=delivery.attempts,
                max_attempts=delivery.max_attempts,
                last_error=delivery.last_error,
            )
            return
        try:
            await self._on_exhausted(delivery, error)
        except Exception:
            logger.exception("Exhaustion handler failed", attempts=delivery.attempts)
