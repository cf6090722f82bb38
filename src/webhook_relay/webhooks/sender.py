"""Webhook sender: validation, signing and one HTTP attempt per call.

The sender is stateless with respect to deliveries. It never raises for
ordinary delivery failures (non-2xx, timeout, network error); those come
back as ``DeliveryResult(success=False)``. It raises ConfigurationError
only when called without the configuration for the delivery's webhook.
"""

from __future__ import annotations

import hashlib
import hmac
import time
from typing import TYPE_CHECKING, Any

from pydantic import HttpUrl, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from webhook_relay.config import CircuitBreakerSettings
from webhook_relay.exceptions import ConfigurationError
from webhook_relay.formatting import get_supported_formats
from webhook_relay.logging import get_logger
from webhook_relay.models import (
    DeliveryResult,
    ValidationIssue,
    ValidationResult,
    WebhookConfig,
    WebhookDelivery,
)

from .circuit_breaker import CircuitBreaker, CircuitBreakerStats
from .http_client import HttpClient

if TYPE_CHECKING:
    from .http_client import HttpTransport

logger = get_logger(__name__)

MAX_TIMEOUT_MS = 300_000
MAX_RETRY_ATTEMPTS = 10

_url_adapter: TypeAdapter[HttpUrl] = TypeAdapter(HttpUrl)


def compute_signature(payload: bytes | str, secret: str) -> str:
    """Compute HMAC-SHA256 signature for a webhook payload.

    Args:
        payload: Exact body bytes (str is encoded as UTF-8).
        secret: Shared secret for HMAC.

    Returns:
        Signature in format "sha256=<hex_digest>".
    """
    body = payload.encode("utf-8") if isinstance(payload, str) else payload
    signature = hmac.new(
        key=secret.encode("utf-8"),
        msg=body,
        digestmod=hashlib.sha256,
    ).hexdigest()
    return f"sha256={signature}"


def verify_signature(payload: bytes | str, secret: str, signature: str) -> bool:
    """Verify HMAC-SHA256 signature for a webhook payload.

    Args:
        payload: Body that was signed.
        secret: Shared secret for HMAC.
        signature: Signature to verify (format: "sha256=<hex_digest>").

    Returns:
        True if signature is valid, False otherwise.
    """
    expected = compute_signature(payload, secret)
    return hmac.compare_digest(expected, signature)


def validate_webhook_config(config: WebhookConfig) -> ValidationResult:
    """Check a webhook configuration is usable for delivery.

    Checks the URL is a well-formed HTTP(S) URL, the format is supported,
    the timeout is positive (and at most five minutes), the retry ceiling
    is between 0 and 10, and headers are non-empty string names with
    string values.
    """
    errors: list[ValidationIssue] = []

    if not config.url:
        errors.append(ValidationIssue(field="url", message="URL is required", value=config.url))
    else:
        try:
            _url_adapter.validate_python(config.url)
        except PydanticValidationError:
            errors.append(
                ValidationIssue(
                    field="url",
                    message="URL must be a valid HTTP or HTTPS URL",
                    value=config.url,
                )
            )

    formats = get_supported_formats()
    if config.format not in formats:
        errors.append(
            ValidationIssue(
                field="format",
                message=f"Format must be one of: {', '.join(formats)}",
                value=config.format,
            )
        )

    if config.timeout_ms <= 0:
        errors.append(
            ValidationIssue(
                field="timeout_ms", message="Timeout must be a positive number", value=config.timeout_ms
            )
        )
    elif config.timeout_ms > MAX_TIMEOUT_MS:
        errors.append(
            ValidationIssue(
                field="timeout_ms",
                message=f"Timeout cannot exceed {MAX_TIMEOUT_MS}ms (5 minutes)",
                value=config.timeout_ms,
            )
        )

    if config.retry_attempts < 0:
        errors.append(
            ValidationIssue(
                field="retry_attempts",
                message="Retry attempts must be a non-negative number",
                value=config.retry_attempts,
            )
        )
    elif config.retry_attempts > MAX_RETRY_ATTEMPTS:
        errors.append(
            ValidationIssue(
                field="retry_attempts",
                message=f"Retry attempts cannot exceed {MAX_RETRY_ATTEMPTS}",
                value=config.retry_attempts,
            )
        )

    for name, value in config.headers.items():
        if not isinstance(name, str) or not name.strip():
            errors.append(
                ValidationIssue(
                    field="headers", message="Header names must be non-empty strings", value=name
                )
            )
        if not isinstance(value, str):
            errors.append(
                ValidationIssue(field="headers", message="Header values must be strings", value=value)
            )

    return ValidationResult(is_valid=not errors, errors=errors)


class WebhookSender:
    """Performs single delivery attempts against webhook endpoints.

    Handles:
    - Header assembly (content type, custom headers, delivery metadata)
    - HMAC-SHA256 signing of the exact body bytes
    - Per-webhook circuit breaking
    - Turning transport outcomes into DeliveryResults

    Example:
        ```python
        sender = WebhookSender()
        result = await sender.send_webhook(delivery, config)
        if not result.success:
            print(result.error)
        ```
    """

    def __init__(
        self,
        http_client: HttpTransport | None = None,
        signature_header: str = "X-Signature",
        circuit_breaker: CircuitBreakerSettings | None = None,
    ) -> None:
        """Initialize the sender.

        Args:
            http_client: Transport used for the POST. Defaults to HttpClient.
            signature_header: Header name carrying the HMAC signature.
            circuit_breaker: Breaker tuning; defaults to CircuitBreakerSettings().
        """
        self._http = http_client or HttpClient()
        self._signature_header = signature_header
        self._breaker_settings = circuit_breaker or CircuitBreakerSettings()
        self._breakers: dict[str, CircuitBreaker] = {}

    def validate_webhook_config(self, config: WebhookConfig) -> ValidationResult:
        return validate_webhook_config(config)

    def build_headers(
        self, delivery: WebhookDelivery, config: WebhookConfig, body: bytes
    ) -> dict[str, str]:
        """Assemble request headers.

        Custom headers may override Content-Type; delivery metadata and the
        signature are always set by the relay.
        """
        headers: dict[str, str] = {"Content-Type": "application/json"}
        headers.update({str(k): str(v) for k, v in config.headers.items()})
        headers["X-Webhook-Delivery-Id"] = delivery.id
        headers["X-Webhook-Event"] = delivery.event.event_name
        if config.secret:
            headers[self._signature_header] = compute_signature(body, config.secret)
        return headers

    async def send_webhook(
        self, delivery: WebhookDelivery, config: WebhookConfig | None
    ) -> DeliveryResult:
        """Perform one delivery attempt.

        Args:
            delivery: Delivery whose pre-rendered payload is sent as the body.
            config: Resolved configuration of ``delivery.webhook_id``.

        Returns:
            DeliveryResult describing the attempt.

        Raises:
            ConfigurationError: If config is missing or belongs to another webhook.
        """
        if config is None:
            raise ConfigurationError(
                f"Webhook configuration not found for ID: {delivery.webhook_id}"
            )
        if config.id != delivery.webhook_id:
            raise ConfigurationError(
                f"Configuration {config.id} does not belong to webhook {delivery.webhook_id}"
            )

        breaker = self._get_circuit_breaker(config.id)
        if breaker is not None and not breaker.can_execute():
            stats = breaker.get_stats()
            return DeliveryResult.failure(
                f"Circuit breaker is {stats.state.value} for webhook {config.id}; "
                f"retry in {stats.seconds_until_retry or 0:.0f}s"
            )

        body = delivery.payload.encode("utf-8")
        headers = self.build_headers(delivery, config, body)
        start = time.perf_counter()

        try:
            result = await self._http.post(config.url, body, headers, config.timeout_ms)
        except Exception as e:
            logger.exception(
                "Webhook transport raised", delivery_id=delivery.id, webhook_id=config.id
            )
            result = DeliveryResult.failure(
                f"Unexpected error: {e}",
                response_time_ms=int((time.perf_counter() - start) * 1000),
            )

        if breaker is not None:
            if result.success:
                breaker.record_success()
            else:
                breaker.record_failure()

        logger.debug(
            "Webhook attempt finished",
            delivery_id=delivery.id,
            webhook_id=config.id,
            success=result.success,
            status_code=result.status_code,
            response_time_ms=result.response_time_ms,
        )
        return result

    def _get_circuit_breaker(self, webhook_id: str) -> CircuitBreaker | None:
        if not self._breaker_settings.enabled:
            return None
        breaker = self._breakers.get(webhook_id)
        if breaker is None:
            breaker = CircuitBreaker(
                failure_threshold=self._breaker_settings.failure_threshold,
                reset_timeout=self._breaker_settings.reset_timeout_seconds,
                monitoring_window=self._breaker_settings.monitoring_window_seconds,
            )
            self._breakers[webhook_id] = breaker
        return breaker

    def get_circuit_breaker_stats(self, webhook_id: str) -> CircuitBreakerStats | None:
        breaker = self._breakers.get(webhook_id)
        return breaker.get_stats() if breaker else None

    def reset_circuit_breaker(self, webhook_id: str) -> None:
        breaker = self._breakers.get(webhook_id)
        if breaker:
            breaker.reset()

    def force_circuit_breaker_open(self, webhook_id: str) -> None:
        breaker = self._get_circuit_breaker(webhook_id)
        if breaker:
            breaker.force_open()

    async def aclose(self) -> None:
        """Release the transport's connections if it supports closing."""
        close: Any = getattr(self._http, "aclose", None)
        if close is not None:
            await close()
