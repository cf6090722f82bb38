"""Test doubles shared across the test suite."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from webhook_relay.models import DeliveryResult


@dataclass
class SentRequest:
    url: str
    content: bytes
    headers: dict[str, str]
    timeout_ms: int


@dataclass
class FakeTransport:
    """HttpTransport returning scripted results and recording every call.

    ``results`` is consumed in order; once exhausted ``default`` is returned.
    ``delay`` is awaited before answering to simulate a slow endpoint.
    """

    default: DeliveryResult = field(
        default_factory=lambda: DeliveryResult(success=True, status_code=200, response_time_ms=150)
    )
    results: list[DeliveryResult] = field(default_factory=list)
    delay: float = 0.0
    requests: list[SentRequest] = field(default_factory=list)

    async def post(
        self,
        url: str,
        content: bytes,
        headers: Mapping[str, str],
        timeout_ms: int,
    ) -> DeliveryResult:
        self.requests.append(SentRequest(url, content, dict(headers), timeout_ms))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.results:
            return self.results.pop(0)
        return self.default


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 1, 1, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeMonotonic:
    """Manually advanced monotonic clock in seconds."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll ``predicate`` until it holds, failing the test after ``timeout``."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("Condition not met before timeout")
        await asyncio.sleep(0.005)
