"""Base class for payload formatters.

Formatters turn a BlockchainEvent into the JSON shape an automation
platform expects. The rendered string is stored on the delivery and sent
unchanged, so the signature always covers the exact body bytes.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from webhook_relay.models import BlockchainEvent

_CAMEL_BOUNDARY = re.compile(r"([A-Z])")


class PayloadFormatter(ABC):
    """Abstract base class for platform-specific payload formatters.

    Example:
        ```python
        formatter = ZapierFormatter()
        body = formatter.format_payload(event)
        ```
    """

    format: str = ""

    @abstractmethod
    def format_payload(self, event: BlockchainEvent) -> dict[str, Any]:
        """Build the payload structure for an event.

        Args:
            event: Event to format.

        Returns:
            JSON-serializable payload.
        """
        ...

    @staticmethod
    def format_timestamp(timestamp: datetime) -> str:
        """ISO-8601 in UTC with millisecond precision and a Z suffix."""
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=UTC)
        value = timestamp.astimezone(UTC).isoformat(timespec="milliseconds")
        return value.replace("+00:00", "Z")

    @staticmethod
    def to_snake_case(name: str) -> str:
        return _CAMEL_BOUNDARY.sub(r"_\1", name).lower()

    @classmethod
    def flatten(cls, data: dict[str, Any], prefix: str = "") -> dict[str, Any]:
        """Flatten nested maps into ``parent_child`` keys. Lists are kept as-is."""
        flattened: dict[str, Any] = {}
        for key, value in data.items():
            new_key = f"{prefix}_{key}" if prefix else key
            if isinstance(value, dict) and value:
                flattened.update(cls.flatten(value, new_key))
            else:
                flattened[new_key] = value
        return flattened
