"""Dead-letter quarantine models."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from .base import generate_id, utc_now
from .delivery import WebhookDelivery


class DeadLetterEntry(BaseModel):
    """A delivery that exhausted its retries, kept for inspection and replay.

    Attributes:
        id: Unique identifier for this entry.
        delivery: Snapshot of the delivery at the time it failed.
        reason: Structured failure reason, e.g. "Max retry attempts exceeded".
        last_error: Error observed on the final attempt.
        failed_at: When the delivery was quarantined.
        attempts: Attempts made before giving up.
        retryable: Whether a replay is expected to help.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: generate_id("dlq"))
    delivery: WebhookDelivery = Field(description="Delivery snapshot")
    reason: str = Field(description="Failure reason")
    last_error: str = Field(default="", description="Last observed error")
    failed_at: datetime = Field(default_factory=utc_now)
    attempts: int = Field(default=0, ge=0)
    retryable: bool = Field(default=True)

    @property
    def webhook_id(self) -> str:
        return self.delivery.webhook_id


class FailureReasonCount(BaseModel):
    """How many entries share a failure reason."""

    reason: str
    count: int


class DeadLetterStats(BaseModel):
    """Summary of the dead-letter queue contents."""

    model_config = ConfigDict(extra="forbid")

    total_entries: int = 0
    retryable_entries: int = 0
    entries_last_24h: int = 0
    entries_last_7d: int = 0
    top_failure_reasons: list[FailureReasonCount] = Field(default_factory=list)


__all__ = [
    "DeadLetterEntry",
    "DeadLetterStats",
    "FailureReasonCount",
]
