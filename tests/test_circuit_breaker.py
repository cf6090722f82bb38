"""Tests for the per-webhook circuit breaker."""

from utils import FakeMonotonic

from webhook_relay.webhooks import CircuitBreaker, CircuitState


def make_breaker(clock: FakeMonotonic, threshold: int = 3) -> CircuitBreaker:
    return CircuitBreaker(failure_threshold=threshold, reset_timeout=60, clock=clock)


class TestCircuitBreaker:
    """State transitions of CircuitBreaker."""

    def test_starts_closed(self):
        breaker = make_breaker(FakeMonotonic())
        assert breaker.state is CircuitState.CLOSED
        assert breaker.can_execute()

    def test_opens_at_threshold(self):
        breaker = make_breaker(FakeMonotonic())
        for _ in range(2):
            breaker.record_failure()
        assert breaker.state is CircuitState.CLOSED
        breaker.record_failure()
        assert breaker.state is CircuitState.OPEN
        assert not breaker.can_execute()

    def test_recent_failures_accumulate_across_successes(self):
        """A success inside the monitoring window does not reset the count."""
        breaker = make_breaker(FakeMonotonic())
        breaker.record_failure()
        breaker.record_failure()
        breaker.record_success()
        breaker.record_failure()
        assert breaker.state is CircuitState.OPEN

    def test_half_open_after_reset_timeout(self):
        clock = FakeMonotonic()
        breaker = make_breaker(clock, threshold=1)
        breaker.record_failure()

        clock.advance(59)
        assert not breaker.can_execute()
        clock.advance(1)
        assert breaker.can_execute()
        assert breaker.state is CircuitState.HALF_OPEN

    def test_successful_trial_closes(self):
        clock = FakeMonotonic()
        breaker = make_breaker(clock, threshold=1)
        breaker.record_failure()
        clock.advance(60)
        breaker.can_execute()

        breaker.record_success()

        stats = breaker.get_stats()
        assert stats.state is CircuitState.CLOSED
        assert stats.failure_count == 0

    def test_failed_trial_reopens(self):
        clock = FakeMonotonic()
        breaker = make_breaker(clock, threshold=1)
        breaker.record_failure()
        clock.advance(60)
        breaker.can_execute()

        breaker.record_failure()

        assert breaker.state is CircuitState.OPEN
        assert breaker.get_stats().seconds_until_retry == 60

    def test_old_failures_forgotten_on_success(self):
        clock = FakeMonotonic()
        breaker = make_breaker(clock)
        breaker.record_failure()
        breaker.record_failure()
        clock.advance(301)
        breaker.record_success()
        assert breaker.get_stats().failure_count == 0

    def test_force_open_and_reset(self):
        breaker = make_breaker(FakeMonotonic())
        breaker.force_open()
        assert not breaker.can_execute()
        breaker.reset()
        assert breaker.can_execute()
        assert breaker.get_stats().seconds_until_retry is None
