"""Payload formatting for webhook deliveries.

Renders blockchain events into the JSON body each platform expects.

Example:
    ```python
    from webhook_relay.formatting import render_payload

    body = render_payload(event, "zapier")
    ```
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from pydantic import TypeAdapter

from webhook_relay.exceptions import ValidationError

from .base import PayloadFormatter
from .formatters import GenericFormatter, MakeFormatter, N8nFormatter, ZapierFormatter

if TYPE_CHECKING:
    from webhook_relay.models import BlockchainEvent

_FORMATTERS: dict[str, type[PayloadFormatter]] = {
    "generic": GenericFormatter,
    "zapier": ZapierFormatter,
    "make": MakeFormatter,
    "n8n": N8nFormatter,
}

_payload_adapter: TypeAdapter[dict[str, Any]] = TypeAdapter(dict[str, Any])


def get_supported_formats() -> list[str]:
    """List the payload formats the relay can render."""
    return list(_FORMATTERS)


def create_formatter(format: str) -> PayloadFormatter:
    """Create the formatter for a webhook format.

    Raises:
        ValidationError: If the format is not supported.
    """
    try:
        return _FORMATTERS[format]()
    except KeyError:
        raise ValidationError(
            "format",
            f"Unsupported webhook format: {format}. "
            f"Supported formats: {', '.join(get_supported_formats())}",
        ) from None


def render_payload(event: BlockchainEvent, format: str = "generic") -> str:
    """Render an event into the compact JSON body sent to the webhook.

    Args:
        event: Event to render.
        format: Target payload format.

    Returns:
        JSON string. Stored on the delivery and sent without re-serialization.
    """
    payload = create_formatter(format).format_payload(event)
    return _payload_adapter.dump_json(payload).decode("utf-8")


__all__ = [
    "GenericFormatter",
    "MakeFormatter",
    "N8nFormatter",
    "PayloadFormatter",
    "ZapierFormatter",
    "create_formatter",
    "get_supported_formats",
    "render_payload",
]
