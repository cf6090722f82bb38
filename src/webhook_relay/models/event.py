"""Blockchain event models and subscription filter expressions."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from .base import utc_now

FilterOperator = Literal["eq", "ne", "gt", "lt", "in", "contains"]

# Top-level event attributes addressable by filters, keyed by filter name
_EVENT_FIELDS = {
    "contractAddress": "contract_address",
    "contract_address": "contract_address",
    "eventName": "event_name",
    "event_name": "event_name",
    "blockNumber": "block_number",
    "block_number": "block_number",
    "transactionHash": "transaction_hash",
    "transaction_hash": "transaction_hash",
    "logIndex": "log_index",
    "log_index": "log_index",
    "timestamp": "timestamp",
}


class BlockchainEvent(BaseModel):
    """A decoded contract event that triggered a delivery.

    Attributes:
        contract_address: Emitting contract (hex address).
        event_name: Decoded event name, e.g. "Transfer".
        block_number: Block the log was included in.
        transaction_hash: Transaction that emitted the log.
        log_index: Position of the log within the block.
        args: Decoded event arguments.
        timestamp: Block timestamp.
    """

    model_config = ConfigDict(extra="forbid")

    contract_address: str = Field(description="Emitting contract address")
    event_name: str = Field(description="Decoded event name")
    block_number: int = Field(ge=0, description="Block number")
    transaction_hash: str = Field(description="Transaction hash")
    log_index: int = Field(default=0, ge=0, description="Log index within the block")
    args: dict[str, Any] = Field(default_factory=dict, description="Decoded event arguments")
    timestamp: datetime = Field(default_factory=utc_now, description="Block timestamp")

    def get_value(self, name: str) -> Any:
        """Look up a filterable value by name.

        Top-level event fields are addressed by name (camelCase or
        snake_case). Anything else is read from ``args``; ``args.a.b``
        walks nested argument maps.
        """
        if name in _EVENT_FIELDS:
            return getattr(self, _EVENT_FIELDS[name])

        path = name[len("args.") :] if name.startswith("args.") else name
        current: Any = self.args
        for key in path.split("."):
            if not isinstance(current, dict) or key not in current:
                return None
            current = current[key]
        return current


def _is_address(value: object) -> bool:
    return isinstance(value, str) and value.startswith("0x") and len(value) == 42


def _as_int(value: object) -> int | None:
    # Token amounts arrive as decimal strings; compare them numerically
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value, 0)
        except ValueError:
            return None
    return None


def _equals(actual: Any, expected: Any) -> bool:
    if actual is None or expected is None:
        return actual is expected
    if _is_address(actual) or _is_address(expected):
        return str(actual).lower() == str(expected).lower()
    actual_int, expected_int = _as_int(actual), _as_int(expected)
    if actual_int is not None and expected_int is not None:
        return actual_int == expected_int
    return bool(actual == expected)


def _compare(actual: Any, expected: Any) -> int | None:
    actual_int, expected_int = _as_int(actual), _as_int(expected)
    if actual_int is not None and expected_int is not None:
        return (actual_int > expected_int) - (actual_int < expected_int)
    if isinstance(actual, (int, float)) and isinstance(expected, (int, float)):
        return (actual > expected) - (actual < expected)
    if isinstance(actual, str) and isinstance(expected, str):
        return (actual > expected) - (actual < expected)
    return None


class FilterExpression(BaseModel):
    """A comparison applied to one event value.

    Example:
        ```python
        expr = FilterExpression(operator="gt", value="1000000000000000000")
        expr.evaluate("2500000000000000000")  # True
        ```
    """

    model_config = ConfigDict(extra="forbid")

    operator: FilterOperator = Field(description="Comparison operator")
    value: Any = Field(description="Right-hand side of the comparison")

    def evaluate(self, actual: Any) -> bool:
        """Apply this expression to an event value."""
        if self.operator == "eq":
            return _equals(actual, self.value)
        if self.operator == "ne":
            return not _equals(actual, self.value)
        if self.operator in ("gt", "lt"):
            result = _compare(actual, self.value)
            if result is None:
                return False
            return result > 0 if self.operator == "gt" else result < 0
        if self.operator == "in":
            if not isinstance(self.value, (list, tuple, set)):
                return False
            return any(_equals(actual, candidate) for candidate in self.value)
        # contains
        if isinstance(actual, str) and isinstance(self.value, str):
            return self.value.lower() in actual.lower()
        if isinstance(actual, (list, tuple)):
            return any(_equals(item, self.value) for item in actual)
        return False


__all__ = [
    "BlockchainEvent",
    "FilterExpression",
    "FilterOperator",
]
