"""Webhook Relay: reliable delivery of blockchain events to HTTP endpoints.

Matched contract events are rendered into per-webhook payloads, queued,
POSTed with bounded concurrency and retried with exponential backoff.
Deliveries that keep failing are quarantined in a dead-letter queue for
inspection and replay.

Quick Start:
    from webhook_relay import StaticConfigProvider, WebhookDelivery, build_processor

    provider = StaticConfigProvider([config])
    async with build_processor(provider) as processor:
        delivery = WebhookDelivery.for_event(config, event, subscription.id)
        await processor.queue.enqueue(delivery)

Components:
    - WebhookSender: One signed HTTP attempt per call
    - DeliveryTracker: Per-webhook attempt history and statistics
    - DeliveryQueue: Scheduling, backoff and the worker pool
    - DeadLetterQueue: Quarantine and replay of exhausted deliveries
    - QueueProcessor: Glue between the queue and the sender
"""

__version__ = "0.1.0"

# Configuration
from .config import CircuitBreakerSettings, Settings, settings

# Exceptions
from .exceptions import (
    ConfigurationError,
    QuarantineError,
    RelayError,
    TrackingError,
    TransportError,
    ValidationError,
)

# Logging
from .logging import (
    bind_context,
    configure_from_settings,
    configure_logging,
    get_logger,
    unbind_context,
)

# Models
from .models import (
    BlockchainEvent,
    DeadLetterEntry,
    DeadLetterStats,
    DeliveryRecord,
    DeliveryResult,
    DeliveryStats,
    EventSubscription,
    WebhookConfig,
    WebhookDelivery,
)

# Pipeline
from .pipeline import build_processor
from .processor import ProcessorStats, ProcessorStatus, QueueProcessor
from .queue import DeadLetterQueue, DeliveryQueue, InMemoryDeadLetterStore, RetryScheduler
from .webhooks import (
    CachingConfigProvider,
    DeliveryTracker,
    HttpClient,
    StaticConfigProvider,
    WebhookSender,
)

__all__ = [
    # Version
    "__version__",
    # Configuration
    "CircuitBreakerSettings",
    "Settings",
    "settings",
    # Exceptions
    "ConfigurationError",
    "QuarantineError",
    "RelayError",
    "TrackingError",
    "TransportError",
    "ValidationError",
    # Logging
    "bind_context",
    "configure_from_settings",
    "configure_logging",
    "get_logger",
    "unbind_context",
    # Models
    "BlockchainEvent",
    "DeadLetterEntry",
    "DeadLetterStats",
    "DeliveryRecord",
    "DeliveryResult",
    "DeliveryStats",
    "EventSubscription",
    "WebhookConfig",
    "WebhookDelivery",
    # Pipeline
    "CachingConfigProvider",
    "DeadLetterQueue",
    "DeliveryQueue",
    "DeliveryTracker",
    "HttpClient",
    "InMemoryDeadLetterStore",
    "ProcessorStats",
    "ProcessorStatus",
    "QueueProcessor",
    "RetryScheduler",
    "StaticConfigProvider",
    "WebhookSender",
    "build_processor",
]
