"""Concrete payload formatters for supported automation platforms."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from .base import PayloadFormatter

if TYPE_CHECKING:
    from webhook_relay.models import BlockchainEvent


class GenericFormatter(PayloadFormatter):
    """Original event structure with camelCase keys."""

    format = "generic"

    def format_payload(self, event: BlockchainEvent) -> dict[str, Any]:
        return {
            "contractAddress": event.contract_address,
            "eventName": event.event_name,
            "blockNumber": event.block_number,
            "transactionHash": event.transaction_hash,
            "logIndex": event.log_index,
            "args": dict(event.args),
            "timestamp": self.format_timestamp(event.timestamp),
        }


class ZapierFormatter(PayloadFormatter):
    """Flat snake_case structure; arguments become ``arg_<name>`` fields.

    Zapier cannot address nested keys in its field mapper, so nested
    arguments are flattened with underscores.
    """

    format = "zapier"

    def format_payload(self, event: BlockchainEvent) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "event_name": event.event_name,
            "contract_address": event.contract_address,
            "block_number": event.block_number,
            "transaction_hash": event.transaction_hash,
            "log_index": event.log_index,
            "timestamp": self.format_timestamp(event.timestamp),
        }
        for key, value in self.flatten(event.args).items():
            payload[f"arg_{self.to_snake_case(key)}"] = value
        return payload


class MakeFormatter(PayloadFormatter):
    """Make.com structure: ``metadata`` plus ``data``."""

    format = "make"

    def format_payload(self, event: BlockchainEvent) -> dict[str, Any]:
        return {
            "metadata": {
                "eventName": event.event_name,
                "contractAddress": event.contract_address,
                "blockNumber": event.block_number,
                "transactionHash": event.transaction_hash,
                "logIndex": event.log_index,
                "timestamp": self.format_timestamp(event.timestamp),
            },
            "data": dict(event.args),
        }


class N8nFormatter(PayloadFormatter):
    """n8n structure: a single ``eventData`` object with nested parameters."""

    format = "n8n"

    def format_payload(self, event: BlockchainEvent) -> dict[str, Any]:
        return {
            "eventData": {
                "name": event.event_name,
                "contractAddress": event.contract_address,
                "blockNumber": event.block_number,
                "transactionHash": event.transaction_hash,
                "logIndex": event.log_index,
                "timestamp": self.format_timestamp(event.timestamp),
                "parameters": dict(event.args),
            }
        }
