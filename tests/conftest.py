"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import sys
from datetime import UTC, datetime
from pathlib import Path

import pytest

# Add tests directory to path so utils can be imported
tests_dir = Path(__file__).parent
if str(tests_dir) not in sys.path:
    sys.path.insert(0, str(tests_dir))

from utils import FakeTransport  # noqa: E402

from webhook_relay.models import (  # noqa: E402
    BlockchainEvent,
    EventSubscription,
    WebhookConfig,
    WebhookDelivery,
)

TOKEN = "0x" + "11" * 20
SENDER = "0x" + "Aa" * 20
RECIPIENT = "0x" + "Bb" * 20


@pytest.fixture
def sample_event() -> BlockchainEvent:
    """Create a sample ERC-20 Transfer event."""
    return BlockchainEvent(
        contract_address=TOKEN,
        event_name="Transfer",
        block_number=18_000_000,
        transaction_hash="0x" + "ab" * 32,
        log_index=3,
        args={"from": SENDER, "to": RECIPIENT, "value": "2500000000000000000"},
        timestamp=datetime(2024, 5, 1, 12, 30, 0, 123000, tzinfo=UTC),
    )


@pytest.fixture
def sample_subscription() -> EventSubscription:
    """Create a subscription for Transfer events of the sample token."""
    return EventSubscription(id="sub_test123", contract_address=TOKEN, event_name="Transfer")


@pytest.fixture
def sample_config(sample_subscription: EventSubscription) -> WebhookConfig:
    """Create a sample webhook configuration with immediate retries."""
    return WebhookConfig(
        id="whk_test123",
        url="https://example.com/webhook",
        secret="test_secret_16chars",
        headers={"Authorization": "Bearer token"},
        timeout_ms=5000,
        retry_attempts=3,
        retry_base_delay_ms=0,
        subscriptions=[sample_subscription],
    )


@pytest.fixture
def sample_delivery(
    sample_config: WebhookConfig,
    sample_event: BlockchainEvent,
    sample_subscription: EventSubscription,
) -> WebhookDelivery:
    """Create a delivery of the sample event to the sample webhook."""
    return WebhookDelivery.for_event(sample_config, sample_event, sample_subscription.id)


@pytest.fixture
def fake_transport() -> FakeTransport:
    """Create a transport that succeeds with a 150ms response by default."""
    return FakeTransport()
