"""Data models for the webhook relay.

Configuration:
    - WebhookConfig: Subscriber endpoint and delivery policy
    - EventSubscription, FilterExpression: Which events a webhook receives

Delivery:
    - BlockchainEvent: Triggering contract event
    - WebhookDelivery: One event destined for one webhook
    - DeliveryResult: Outcome of one send attempt
    - DeliveryRecord, DeliveryStats: Per-webhook accounting

Quarantine:
    - DeadLetterEntry, DeadLetterStats: Permanently failed deliveries
"""

from .base import ValidationIssue, ValidationResult, generate_id, utc_now
from .dead_letter import DeadLetterEntry, DeadLetterStats, FailureReasonCount
from .delivery import (
    DeliveryRecord,
    DeliveryResult,
    DeliveryStats,
    DeliveryStatus,
    WebhookDelivery,
)
from .event import BlockchainEvent, FilterExpression, FilterOperator
from .webhook import EventSubscription, FilterValue, WebhookConfig

__all__ = [
    # Base types
    "ValidationIssue",
    "ValidationResult",
    "generate_id",
    "utc_now",
    # Configuration
    "EventSubscription",
    "FilterExpression",
    "FilterOperator",
    "FilterValue",
    "WebhookConfig",
    # Delivery
    "BlockchainEvent",
    "DeliveryRecord",
    "DeliveryResult",
    "DeliveryStats",
    "DeliveryStatus",
    "WebhookDelivery",
    # Quarantine
    "DeadLetterEntry",
    "DeadLetterStats",
    "FailureReasonCount",
]
