"""Dead-letter quarantine for deliveries that exhausted their retries.

Entries keep a snapshot of the failed delivery so an operator can inspect
it and replay it later. Quarantine must never take the pipeline down:
store failures are logged and reported as a missing entry id.
"""

from __future__ import annotations

import asyncio
from collections import Counter
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Protocol, runtime_checkable

from webhook_relay.exceptions import QuarantineError
from webhook_relay.logging import get_logger
from webhook_relay.metrics import DEAD_LETTERED_TOTAL, MetricsSink, emit_safely
from webhook_relay.models import (
    DeadLetterEntry,
    DeadLetterStats,
    FailureReasonCount,
    WebhookDelivery,
    utc_now,
)

logger = get_logger(__name__)

DEFAULT_RETENTION_DAYS = 30
TOP_FAILURE_REASONS = 10


@runtime_checkable
class DeadLetterStore(Protocol):
    """Persistence for dead-letter entries."""

    async def store_entry(self, entry: DeadLetterEntry) -> str: ...

    async def get_entry(self, entry_id: str) -> DeadLetterEntry | None: ...

    async def delete_entry(self, entry_id: str) -> bool: ...

    async def list_entries(self) -> list[DeadLetterEntry]: ...


class InMemoryDeadLetterStore:
    """Process-local store. Entries are lost on restart."""

    def __init__(self) -> None:
        self._entries: dict[str, DeadLetterEntry] = {}

    async def store_entry(self, entry: DeadLetterEntry) -> str:
        self._entries[entry.id] = entry
        return entry.id

    async def get_entry(self, entry_id: str) -> DeadLetterEntry | None:
        return self._entries.get(entry_id)

    async def delete_entry(self, entry_id: str) -> bool:
        return self._entries.pop(entry_id, None) is not None

    async def list_entries(self) -> list[DeadLetterEntry]:
        return list(self._entries.values())


class DeadLetterQueue:
    """Quarantines permanently failed deliveries and supports replay.

    Example:
        ```python
        dlq = DeadLetterQueue()
        entry_id = await dlq.add_failed_delivery(
            delivery, reason="Max retry attempts exceeded", last_error="HTTP 503"
        )
        replay = await dlq.retry_delivery(entry_id)
        await queue.enqueue(replay)
        await dlq.remove_entry(entry_id)
        ```
    """

    def __init__(
        self,
        store: DeadLetterStore | None = None,
        retention_days: int = DEFAULT_RETENTION_DAYS,
        metrics: MetricsSink | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize the dead-letter queue.

        Args:
            store: Entry persistence. Defaults to an in-memory store.
            retention_days: Age after which ``cleanup_old_entries`` drops entries.
            metrics: Optional sink for the dead-lettered counter.
            clock: Time source for ``failed_at`` and retention.
        """
        self._store: DeadLetterStore = store or InMemoryDeadLetterStore()
        self.retention_days = retention_days
        self._metrics = metrics
        self._clock = clock
        self._lock = asyncio.Lock()
        self._cleanup_task: asyncio.Task[None] | None = None

    async def add_failed_delivery(
        self,
        delivery: WebhookDelivery,
        reason: str,
        last_error: str | None = None,
        retryable: bool = True,
    ) -> str | None:
        """Quarantine a delivery.

        Returns:
            The new entry id, or None if the entry could not be stored.
        """
        try:
            entry = DeadLetterEntry(
                delivery=delivery.model_copy(deep=True),
                reason=reason,
                last_error=last_error or delivery.last_error or "",
                failed_at=self._clock(),
                attempts=delivery.attempts,
                retryable=retryable,
            )
            async with self._lock:
                entry_id = await self._store.store_entry(entry)
        except Exception as e:
            error = e if isinstance(e, QuarantineError) else QuarantineError(str(e))
            logger.error(
                "Failed to quarantine delivery",
                delivery_id=delivery.id,
                webhook_id=delivery.webhook_id,
                reason=reason,
                error=error.message,
            )
            return None

        emit_safely(
            self._metrics,
            "counter",
            DEAD_LETTERED_TOTAL,
            labels={"webhook_id": delivery.webhook_id},
        )
        logger.info(
            "Delivery quarantined",
            entry_id=entry_id,
            delivery_id=delivery.id,
            webhook_id=delivery.webhook_id,
            reason=reason,
            attempts=delivery.attempts,
        )
        return entry_id

    async def get_entry(self, entry_id: str) -> DeadLetterEntry | None:
        async with self._lock:
            return await self._store.get_entry(entry_id)

    async def retry_delivery(self, entry_id: str) -> WebhookDelivery | None:
        """Build a fresh copy of a quarantined delivery for re-enqueueing.

        The copy keeps the original delivery id so receivers can deduplicate.
        The entry itself stays until ``remove_entry`` is called.
        """
        entry = await self.get_entry(entry_id)
        if entry is None:
            return None
        return entry.delivery.model_copy(
            deep=True,
            update={
                "attempts": 0,
                "status": "pending",
                "next_retry_at": None,
                "last_error": None,
                "replayed_from": entry.id,
            },
        )

    async def remove_entry(self, entry_id: str) -> bool:
        async with self._lock:
            removed = await self._store.delete_entry(entry_id)
        if removed:
            logger.debug("Dead-letter entry removed", entry_id=entry_id)
        return removed

    async def get_failed_deliveries(
        self, limit: int = 50, offset: int = 0
    ) -> list[DeadLetterEntry]:
        """Entries newest first."""
        entries = await self._sorted_entries()
        return entries[offset : offset + limit]

    async def get_failed_deliveries_for_webhook(
        self, webhook_id: str, limit: int = 50
    ) -> list[DeadLetterEntry]:
        entries = await self._sorted_entries()
        return [e for e in entries if e.webhook_id == webhook_id][:limit]

    async def cleanup_old_entries(self) -> int:
        """Delete entries older than the retention period.

        Returns:
            Number of entries removed.
        """
        cutoff = self._clock() - timedelta(days=self.retention_days)
        removed = 0
        async with self._lock:
            for entry in await self._store.list_entries():
                if entry.failed_at < cutoff and await self._store.delete_entry(entry.id):
                    removed += 1
        if removed:
            logger.info(
                "Expired dead-letter entries removed",
                removed=removed,
                retention_days=self.retention_days,
            )
        return removed

    def start_cleanup(self, interval_seconds: float = 3600.0) -> None:
        """Run ``cleanup_old_entries`` periodically in the background."""
        if self._cleanup_task is not None and not self._cleanup_task.done():
            return
        self._cleanup_task = asyncio.create_task(
            self._cleanup_loop(interval_seconds), name="dead-letter-cleanup"
        )

    async def stop_cleanup(self) -> None:
        task, self._cleanup_task = self._cleanup_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _cleanup_loop(self, interval_seconds: float) -> None:
        while True:
            await asyncio.sleep(interval_seconds)
            try:
                await self.cleanup_old_entries()
            except Exception:
                logger.exception("Dead-letter cleanup failed")

    async def get_stats(self) -> DeadLetterStats:
        now = self._clock()
        async with self._lock:
            entries = await self._store.list_entries()

        reasons = Counter(entry.reason for entry in entries)
        return DeadLetterStats(
            total_entries=len(entries),
            retryable_entries=sum(1 for e in entries if e.retryable),
            entries_last_24h=sum(1 for e in entries if e.failed_at >= now - timedelta(hours=24)),
            entries_last_7d=sum(1 for e in entries if e.failed_at >= now - timedelta(days=7)),
            top_failure_reasons=[
                FailureReasonCount(reason=reason, count=count)
                for reason, count in reasons.most_common(TOP_FAILURE_REASONS)
            ],
        )

    async def _sorted_entries(self) -> list[DeadLetterEntry]:
        async with self._lock:
            entries = await self._store.list_entries()
        return sorted(entries, key=lambda e: e.failed_at, reverse=True)
