"""Delivery scheduling, retry backoff and dead-letter quarantine."""

from .dead_letter import DeadLetterQueue, DeadLetterStore, InMemoryDeadLetterStore
from .delivery_queue import DeliveryHandler, DeliveryQueue, ExhaustedHandler, QueueStats
from .retry import RetryScheduler
from .scheduler import DeliveryScheduler

__all__ = [
    "DeadLetterQueue",
    "DeadLetterStore",
    "DeliveryHandler",
    "DeliveryQueue",
    "DeliveryScheduler",
    "ExhaustedHandler",
    "InMemoryDeadLetterStore",
    "QueueStats",
    "RetryScheduler",
]
