"""
Tests for the count-based circuit breaker.
"""
import pytest

from order_worker.core.exceptions import CircuitOpenError
from order_worker.infrastructure.resilience.circuit_breaker import CircuitBreaker, CircuitBreakerState


async def record(breaker: CircuitBreaker, *outcomes: bool) -> None:
    """Record outcomes, True meaning failure."""
    for failed in outcomes:
        permit = await breaker.acquire()
        if failed:
            await breaker.record_failure(permit)
        else:
            await breaker.record_success(permit)


@pytest.fixture
def breaker(policy, fake_clock) -> CircuitBreaker:
    return CircuitBreaker(policy, clock=fake_clock)


class TestClosedState:
    """Tests for the CLOSED state and the rolling window."""

    @pytest.mark.asyncio
    async def test_starts_closed(self, breaker):
        assert breaker.state == CircuitBreakerState.CLOSED
        assert breaker.is_closed is True

    @pytest.mark.asyncio
    async def test_does_not_open_before_minimum_calls(self, breaker):
        await record(breaker, True, True, True)

        assert breaker.state == CircuitBreakerState.CLOSED
        assert breaker.get_metrics()["failure_rate"] == -1.0

    @pytest.mark.asyncio
    async def test_opens_when_failure_rate_reaches_threshold(self, breaker):
        await record(breaker, False, False, True, True)

        assert breaker.state == CircuitBreakerState.OPEN

    @pytest.mark.asyncio
    async def test_stays_closed_below_threshold(self, breaker):
        await record(breaker, False, False, False, True)

        assert breaker.state == CircuitBreakerState.CLOSED
        assert breaker.get_metrics()["failure_rate"] == 25.0

    @pytest.mark.asyncio
    async def test_window_only_keeps_recent_calls(self, breaker):
        await record(breaker, True, False, False, False, False, False)
        await record(breaker, True)

        # Window is [False, False, False, True]
        assert breaker.state == CircuitBreakerState.CLOSED


class TestOpenState:
    """Tests for rejection and cool-down."""

    @pytest.mark.asyncio
    async def test_rejects_calls_while_open(self, breaker, fake_clock):
        await record(breaker, True, True, True, True)
        fake_clock.advance(10)

        with pytest.raises(CircuitOpenError) as exc_info:
            await breaker.acquire()

        assert exc_info.value.retry_after == pytest.approx(20.0)
        assert breaker.get_metrics()["not_permitted_calls"] == 1

    @pytest.mark.asyncio
    async def test_moves_to_half_open_after_cool_down(self, breaker, fake_clock):
        await record(breaker, True, True, True, True)
        fake_clock.advance(30)

        await breaker.acquire()

        assert breaker.state == CircuitBreakerState.HALF_OPEN


class TestHalfOpenState:
    """Tests for trial calls."""

    @pytest.mark.asyncio
    async def test_successful_trials_close_the_circuit(self, breaker, fake_clock):
        await record(breaker, True, True, True, True)
        fake_clock.advance(30)

        await record(breaker, False, False)

        assert breaker.state == CircuitBreakerState.CLOSED
        assert breaker.get_metrics()["buffered_calls"] == 0

    @pytest.mark.asyncio
    async def test_failed_trials_reopen_the_circuit(self, breaker, fake_clock):
        await record(breaker, True, True, True, True)
        fake_clock.advance(30)

        await record(breaker, False, True)

        assert breaker.state == CircuitBreakerState.OPEN
        with pytest.raises(CircuitOpenError):
            await breaker.acquire()

    @pytest.mark.asyncio
    async def test_rejects_calls_beyond_permitted_trials(self, breaker, fake_clock):
        await record(breaker, True, True, True, True)
        fake_clock.advance(30)

        await breaker.acquire()
        await breaker.acquire()

        with pytest.raises(CircuitOpenError):
            await breaker.acquire()

    @pytest.mark.asyncio
    async def test_released_permit_frees_a_trial_slot(self, breaker, fake_clock):
        await record(breaker, True, True, True, True)
        fake_clock.advance(30)

        first = await breaker.acquire()
        await breaker.acquire()
        await breaker.release(first)

        await breaker.acquire()
        assert breaker.state == CircuitBreakerState.HALF_OPEN

    @pytest.mark.asyncio
    async def test_stale_outcome_does_not_count_as_trial(self, breaker, fake_clock):
        stale_permit = await breaker.acquire()
        await record(breaker, True, True, True, True)
        fake_clock.advance(30)
        await breaker.acquire()

        await breaker.record_failure(stale_permit)

        assert breaker.state == CircuitBreakerState.HALF_OPEN


class TestCall:
    """Tests for the call() convenience wrapper."""

    @pytest.mark.asyncio
    async def test_call_records_outcomes(self, breaker):
        async def ok():
            return "done"

        async def boom():
            raise RuntimeError("boom")

        assert await breaker.call(ok) == "done"
        with pytest.raises(RuntimeError):
            await breaker.call(boom)

        metrics = breaker.get_metrics()
        assert metrics["successful_calls"] == 1
        assert metrics["failed_calls"] == 1

    @pytest.mark.asyncio
    async def test_reset_closes_the_circuit(self, breaker):
        await record(breaker, True, True, True, True)

        await breaker.reset()

        assert breaker.state == CircuitBreakerState.CLOSED
        assert breaker.get_metrics()["failed_calls"] == 0
