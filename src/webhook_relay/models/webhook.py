"""Webhook configuration models.

A webhook is a subscriber-registered HTTP endpoint plus its delivery
policy. Configurations are owned by an external store; the relay only
reads them, one lookup per delivery attempt.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .base import generate_id
from .event import BlockchainEvent, FilterExpression

FilterValue = FilterExpression | list[Any] | str | int | float | bool


class EventSubscription(BaseModel):
    """Which contract events a webhook wants to receive.

    Attributes:
        id: Unique identifier for this subscription.
        contract_address: One contract address or a list of them.
        event_name: One event name or a list of them.
        filters: Argument filters. A literal means equality, a list means
            membership, and a FilterExpression applies its operator.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: generate_id("sub"))
    contract_address: str | list[str] = Field(description="Contract address(es) to watch")
    event_name: str | list[str] = Field(description="Event name(s) to watch")
    filters: dict[str, FilterValue] = Field(
        default_factory=dict,
        description="Structured argument filters, all of which must match",
    )

    def matches(self, event: BlockchainEvent) -> bool:
        """Check whether an event satisfies this subscription."""
        addresses = (
            [self.contract_address]
            if isinstance(self.contract_address, str)
            else self.contract_address
        )
        if event.contract_address.lower() not in {a.lower() for a in addresses}:
            return False

        names = [self.event_name] if isinstance(self.event_name, str) else self.event_name
        if event.event_name not in names:
            return False

        for name, expected in self.filters.items():
            actual = event.get_value(name)
            if isinstance(expected, FilterExpression):
                expression = expected
            elif isinstance(expected, list):
                expression = FilterExpression(operator="in", value=expected)
            else:
                expression = FilterExpression(operator="eq", value=expected)
            if not expression.evaluate(actual):
                return False
        return True


class WebhookConfig(BaseModel):
    """Configuration for a registered webhook.

    Field values are not range-checked on construction; the sender's
    ``validate_webhook_config`` reports problems so a bad row from the
    configuration store fails a delivery attempt instead of the loader.

    Attributes:
        id: Unique identifier for this webhook.
        url: HTTP(S) endpoint receiving deliveries.
        format: Payload shape (generic, zapier, make, n8n).
        headers: Custom headers added to every request.
        secret: Shared secret for HMAC-SHA256 signatures (optional).
        timeout_ms: Per-request timeout in milliseconds.
        retry_attempts: Maximum delivery attempts per event.
        retry_base_delay_ms: Initial retry delay (doubles each attempt).
        active: Whether this webhook accepts deliveries.
        subscriptions: Events this webhook subscribes to.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: generate_id("whk"))
    url: str = Field(description="HTTP(S) endpoint to receive events")
    format: str = Field(default="generic", description="Registered payload format name")
    headers: dict[str, Any] = Field(default_factory=dict, description="Custom request headers")
    secret: str | None = Field(default=None, description="Shared secret for HMAC signatures")
    timeout_ms: int = Field(default=30000, description="Request timeout in milliseconds")
    retry_attempts: int = Field(default=3, description="Maximum delivery attempts")
    retry_base_delay_ms: int = Field(
        default=1000, ge=0, description="Initial retry delay in milliseconds"
    )
    active: bool = Field(default=True, description="Whether the webhook is active")
    subscriptions: list[EventSubscription] = Field(
        default_factory=list,
        description="Event subscriptions feeding this webhook",
    )

    def subscribes_to(self, event: BlockchainEvent) -> bool:
        """Check if this webhook is active and subscribed to the given event."""
        return self.active and any(sub.matches(event) for sub in self.subscriptions)


__all__ = [
    "EventSubscription",
    "FilterValue",
    "WebhookConfig",
]
