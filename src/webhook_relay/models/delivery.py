"""Delivery models: units of work, attempt results and accounting records."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Literal

from pydantic import BaseModel, ConfigDict, Field

from .base import generate_id, utc_now
from .event import BlockchainEvent

if TYPE_CHECKING:
    from .webhook import WebhookConfig

# Lifecycle of a delivery inside the relay
DeliveryStatus = Literal["pending", "delivering", "completed", "failed", "dead_lettered"]


class WebhookDelivery(BaseModel):
    """One event destined for one webhook.

    Created by the event source at enqueue time. Only the delivery queue
    changes ``attempts``, ``status`` and ``next_retry_at``; the processor
    sets terminal status.

    Attributes:
        id: Unique identifier. Subscribers deduplicate on this id.
        subscription_id: Subscription that matched the event.
        webhook_id: Target webhook.
        event: Triggering blockchain event.
        payload: Pre-rendered request body, sent byte-for-byte.
        attempts: Dispatch attempts so far.
        max_attempts: Attempt ceiling, copied from the webhook at enqueue.
        retry_base_delay_ms: Backoff base copied from the webhook (optional).
        status: Current lifecycle state.
        next_retry_at: When the delivery becomes due again.
        last_error: Error from the most recent failed attempt.
        replayed_from: Dead-letter entry this delivery was replayed from.
        created_at: When the delivery was produced.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: generate_id("dlv"))
    subscription_id: str = Field(description="Subscription that matched the event")
    webhook_id: str = Field(description="ID of the target webhook")
    event: BlockchainEvent = Field(description="Triggering event")
    payload: str = Field(description="Rendered JSON body")
    attempts: int = Field(default=0, ge=0, description="Dispatch attempts so far")
    max_attempts: int = Field(default=3, ge=1, description="Attempt ceiling")
    retry_base_delay_ms: int | None = Field(
        default=None, ge=0, description="Backoff base delay in milliseconds"
    )
    status: DeliveryStatus = Field(default="pending", description="Delivery status")
    next_retry_at: datetime | None = Field(default=None, description="When next due")
    last_error: str | None = Field(default=None, description="Most recent error")
    replayed_from: str | None = Field(
        default=None, description="Dead-letter entry id when replayed"
    )
    created_at: datetime = Field(default_factory=utc_now)

    @classmethod
    def for_event(
        cls,
        webhook: WebhookConfig,
        event: BlockchainEvent,
        subscription_id: str,
    ) -> WebhookDelivery:
        """Create a delivery for an event, rendering the webhook's payload format.

        A webhook configured with zero retry attempts still gets one attempt.
        """
        from webhook_relay.formatting import render_payload

        return cls(
            subscription_id=subscription_id,
            webhook_id=webhook.id,
            event=event,
            payload=render_payload(event, webhook.format),
            max_attempts=max(1, webhook.retry_attempts),
            retry_base_delay_ms=webhook.retry_base_delay_ms,
        )

    @property
    def is_exhausted(self) -> bool:
        """True once no attempts remain."""
        return self.attempts >= self.max_attempts


class DeliveryResult(BaseModel):
    """Outcome of one sender invocation. Never persisted on its own."""

    model_config = ConfigDict(extra="forbid")

    success: bool = Field(description="Whether the endpoint accepted the delivery")
    status_code: int | None = Field(default=None, description="HTTP status if a response arrived")
    response_time_ms: int = Field(default=0, ge=0, description="Wall-clock time in ms")
    error: str | None = Field(default=None, description="Error description if failed")

    @classmethod
    def failure(cls, error: str, response_time_ms: int = 0) -> DeliveryResult:
        """Build a failed result that never reached the endpoint."""
        return cls(success=False, error=error, response_time_ms=response_time_ms)


class DeliveryRecord(BaseModel):
    """Immutable snapshot of one delivery attempt."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    delivery_id: str
    webhook_id: str
    timestamp: datetime = Field(default_factory=utc_now)
    success: bool
    status_code: int | None = None
    response_time_ms: int = Field(default=0, ge=0)
    error: str | None = None
    attempt: int = Field(default=0, ge=0)


class DeliveryStats(BaseModel):
    """Aggregate delivery statistics for a webhook."""

    model_config = ConfigDict(extra="forbid")

    total_deliveries: int = 0
    successful_deliveries: int = 0
    failed_deliveries: int = 0
    average_response_time: int = 0


__all__ = [
    "DeliveryRecord",
    "DeliveryResult",
    "DeliveryStats",
    "DeliveryStatus",
    "WebhookDelivery",
]
