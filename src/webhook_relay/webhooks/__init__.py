"""Webhook dispatch: HTTP transport, signing, circuit breaking and accounting.

Example:
    ```python
    from webhook_relay.webhooks import DeliveryTracker, WebhookSender

    sender = WebhookSender()
    result = await sender.send_webhook(delivery, config)

    tracker = DeliveryTracker()
    await tracker.track_delivery(delivery, result)
    ```
"""

from .circuit_breaker import CircuitBreaker, CircuitBreakerStats, CircuitState
from .config_provider import (
    CachingConfigProvider,
    ConfigLoader,
    ConfigResolver,
    StaticConfigProvider,
)
from .http_client import HttpClient, HttpTransport
from .sender import (
    WebhookSender,
    compute_signature,
    validate_webhook_config,
    verify_signature,
)
from .tracker import DeliveryTracker

__all__ = [
    "CachingConfigProvider",
    "CircuitBreaker",
    "CircuitBreakerStats",
    "CircuitState",
    "ConfigLoader",
    "ConfigResolver",
    "DeliveryTracker",
    "HttpClient",
    "HttpTransport",
    "StaticConfigProvider",
    "WebhookSender",
    "compute_signature",
    "validate_webhook_config",
    "verify_signature",
]
