"""Per-webhook circuit breaker.

Stops hammering an endpoint that keeps failing. After ``failure_threshold``
failures the circuit opens and sends are refused until ``reset_timeout``
elapses; then one trial send is allowed (half-open). A successful trial
closes the circuit, a failed one re-opens it.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from enum import Enum

from pydantic import BaseModel, ConfigDict


class CircuitState(str, Enum):
    """State of a circuit breaker."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreakerStats(BaseModel):
    """Snapshot of a breaker for monitoring."""

    model_config = ConfigDict(extra="forbid")

    state: CircuitState
    failure_count: int
    success_count: int
    seconds_until_retry: float | None = None


class CircuitBreaker:
    """Failure counter with open/half-open/closed states.

    Times come from ``clock`` (monotonic seconds) so tests can drive it.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        reset_timeout: float = 60.0,
        monitoring_window: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self.monitoring_window = monitoring_window
        self._clock = clock
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._last_failure_at: float | None = None
        self._next_attempt_at: float | None = None

    @property
    def state(self) -> CircuitState:
        return self._state

    def can_execute(self) -> bool:
        """Check whether a send may proceed, moving open -> half-open when due."""
        if self._state is CircuitState.OPEN:
            if self._next_attempt_at is not None and self._clock() >= self._next_attempt_at:
                self._state = CircuitState.HALF_OPEN
                return True
            return False
        return True

    def record_success(self) -> None:
        self._success_count += 1
        if self._state is CircuitState.HALF_OPEN:
            self.reset()
            return
        # Forget failures that fell out of the monitoring window
        if (
            self._last_failure_at is not None
            and self._clock() - self._last_failure_at > self.monitoring_window
        ):
            self._failure_count = 0
            self._last_failure_at = None

    def record_failure(self) -> None:
        self._failure_count += 1
        self._last_failure_at = self._clock()

        if self._state is CircuitState.HALF_OPEN:
            self._open()
        elif self._state is CircuitState.CLOSED and self._failure_count >= self.failure_threshold:
            self._open()

    def reset(self) -> None:
        """Close the circuit and clear all counters."""
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._last_failure_at = None
        self._next_attempt_at = None

    def force_open(self) -> None:
        self._open()

    def get_stats(self) -> CircuitBreakerStats:
        retry_in = None
        if self._state is CircuitState.OPEN and self._next_attempt_at is not None:
            retry_in = max(0.0, self._next_attempt_at - self._clock())
        return CircuitBreakerStats(
            state=self._state,
            failure_count=self._failure_count,
            success_count=self._success_count,
            seconds_until_retry=retry_in,
        )

    def _open(self) -> None:
        self._state = CircuitState.OPEN
        self._next_attempt_at = self._clock() + self.reset_timeout
