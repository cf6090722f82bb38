"""Tests for payload formatters."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone

import pytest
from conftest import RECIPIENT, SENDER, TOKEN

from webhook_relay.exceptions import ValidationError
from webhook_relay.formatting import (
    GenericFormatter,
    MakeFormatter,
    N8nFormatter,
    PayloadFormatter,
    ZapierFormatter,
    create_formatter,
    get_supported_formats,
    render_payload,
)
from webhook_relay.models import BlockchainEvent


class TestFormatterHelpers:
    """Tests for PayloadFormatter helpers."""

    def test_format_timestamp_utc_milliseconds(self):
        ts = datetime(2024, 5, 1, 12, 30, 0, 123456, tzinfo=timezone.utc)
        assert PayloadFormatter.format_timestamp(ts) == "2024-05-01T12:30:00.123Z"

    def test_format_timestamp_converts_offsets(self):
        ts = datetime(2024, 5, 1, 14, 30, tzinfo=timezone(timedelta(hours=2)))
        assert PayloadFormatter.format_timestamp(ts) == "2024-05-01T12:30:00.000Z"

    def test_format_timestamp_naive_is_utc(self):
        assert PayloadFormatter.format_timestamp(datetime(2024, 1, 1)) == "2024-01-01T00:00:00.000Z"

    def test_to_snake_case(self):
        assert PayloadFormatter.to_snake_case("tokenId") == "token_id"
        assert PayloadFormatter.to_snake_case("value") == "value"

    def test_flatten(self):
        data = {"order": {"maker": "a", "fees": {"bps": 30}}, "ids": [1, 2], "empty": {}}
        assert PayloadFormatter.flatten(data) == {
            "order_maker": "a",
            "order_fees_bps": 30,
            "ids": [1, 2],
            "empty": {},
        }


class TestFormatters:
    """Tests for each platform payload."""

    def test_generic(self, sample_event: BlockchainEvent) -> None:
        payload = GenericFormatter().format_payload(sample_event)
        assert payload == {
            "contractAddress": TOKEN,
            "eventName": "Transfer",
            "blockNumber": 18_000_000,
            "transactionHash": "0x" + "ab" * 32,
            "logIndex": 3,
            "args": {"from": SENDER, "to": RECIPIENT, "value": "2500000000000000000"},
            "timestamp": "2024-05-01T12:30:00.123Z",
        }

    def test_zapier_is_flat(self, sample_event: BlockchainEvent) -> None:
        sample_event.args["tokenId"] = 7
        payload = ZapierFormatter().format_payload(sample_event)
        assert payload["event_name"] == "Transfer"
        assert payload["contract_address"] == TOKEN
        assert payload["arg_from"] == SENDER
        assert payload["arg_token_id"] == 7
        assert not any(isinstance(v, dict) for v in payload.values())

    def test_make_has_metadata_and_data(self, sample_event: BlockchainEvent) -> None:
        payload = MakeFormatter().format_payload(sample_event)
        assert payload["metadata"]["eventName"] == "Transfer"
        assert payload["metadata"]["blockNumber"] == 18_000_000
        assert payload["data"] == sample_event.args

    def test_n8n_event_data(self, sample_event: BlockchainEvent) -> None:
        payload = N8nFormatter().format_payload(sample_event)
        assert payload["eventData"]["name"] == "Transfer"
        assert payload["eventData"]["parameters"]["to"] == RECIPIENT


class TestRegistry:
    """Tests for formatter lookup and rendering."""

    def test_supported_formats(self):
        assert get_supported_formats() == ["generic", "zapier", "make", "n8n"]

    @pytest.mark.parametrize("fmt", ["generic", "zapier", "make", "n8n"])
    def test_create_formatter(self, fmt: str) -> None:
        assert create_formatter(fmt).format == fmt

    def test_unknown_format(self):
        with pytest.raises(ValidationError) as exc_info:
            create_formatter("xml")
        assert exc_info.value.field == "format"
        assert "xml" in exc_info.value.message

    def test_render_payload_is_compact_json(self, sample_event: BlockchainEvent) -> None:
        body = render_payload(sample_event)
        assert ": " not in body
        assert json.loads(body)["args"]["value"] == "2500000000000000000"

    def test_render_payload_is_deterministic(self, sample_event: BlockchainEvent) -> None:
        assert render_payload(sample_event, "make") == render_payload(sample_event, "make")
