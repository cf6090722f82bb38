"""Retry backoff policy for failed deliveries.

Delays grow exponentially with the attempt number:
``base * 2 ** (attempt - 1)``, capped at ``max_delay``. So with the
defaults, after the first failure the delivery waits 1s, then 2s, 4s, ...
up to 60s.
"""

from __future__ import annotations

import random
from collections.abc import Callable
from datetime import datetime, timedelta

from webhook_relay.models import WebhookDelivery

# Keeps 2 ** exponent within float range for absurd attempt counts
_MAX_EXPONENT = 62


class RetryScheduler:
    """Computes backoff delays and retry eligibility.

    Example:
        ```python
        scheduler = RetryScheduler(base_delay=1.0, max_delay=60.0)
        scheduler.get_backoff_delay(1)  # 1.0
        scheduler.get_backoff_delay(3)  # 4.0
        scheduler.get_backoff_delay(10)  # 60.0
        ```
    """

    def __init__(
        self,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        jitter: float = 0.0,
        rng: Callable[[], float] = random.random,
    ) -> None:
        """Initialize the policy.

        Args:
            base_delay: Seconds to wait after the first failed attempt.
            max_delay: Upper bound for a single delay, before jitter.
            jitter: Fraction of the delay added at random (0 disables).
            rng: Source of uniform [0, 1) values for jitter.
        """
        if base_delay < 0 or max_delay < 0:
            raise ValueError("Retry delays must be non-negative")
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.jitter = jitter
        self._rng = rng

    def get_backoff_delay(self, attempt: int, base_delay: float | None = None) -> float:
        """Seconds to wait after failed attempt number ``attempt`` (1-indexed)."""
        base = self.base_delay if base_delay is None else base_delay
        exponent = min(max(attempt - 1, 0), _MAX_EXPONENT)
        delay = min(base * (2**exponent), self.max_delay)
        if self.jitter:
            delay += delay * self.jitter * self._rng()
        return delay

    def calculate_next_retry(
        self, attempt: int, now: datetime, base_delay: float | None = None
    ) -> datetime:
        return now + timedelta(seconds=self.get_backoff_delay(attempt, base_delay))

    def should_retry(self, delivery: WebhookDelivery) -> bool:
        return delivery.attempts < delivery.max_attempts and delivery.status != "completed"
