"""
Count-based circuit breaker for calls to the enricher API.

CLOSED keeps a rolling window of the last N call outcomes and opens once the
failure rate reaches the configured threshold. OPEN rejects every call until
the cool-down has elapsed, after which a limited number of trial calls are
admitted in HALF_OPEN. The trial outcomes decide between CLOSED and OPEN.
"""
import asyncio
import time
from collections import deque
from enum import Enum
from typing import Any, Callable, Deque, Dict, List, Optional

from order_worker.core.exceptions import CircuitOpenError
from order_worker.core.logging import get_logger
from order_worker.infrastructure.resilience.policy import ResiliencePolicy

logger = get_logger(__name__)


class CircuitBreakerState(str, Enum):
    """States of the circuit breaker."""
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


class CircuitBreaker:
    """
    Circuit breaker shared by every concurrent call to one upstream.

    ``acquire`` returns a permit identifying the state generation the call was
    admitted under. Outcomes recorded with a permit from an older generation
    only update the counters, so a slow call started while CLOSED cannot
    decide the outcome of a later HALF_OPEN trial.
    """

    def __init__(
        self,
        policy: ResiliencePolicy,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the circuit breaker.

        Args:
            policy: Thresholds and timings for this upstream
            clock: Monotonic clock in seconds, injectable for tests
        """
        self.name = policy.name
        self.policy = policy
        self._clock = clock
        self._lock = asyncio.Lock()

        self._state = CircuitBreakerState.CLOSED
        self._generation = 0
        self._opened_at = 0.0
        self._window: Deque[bool] = deque(maxlen=policy.sliding_window_size)
        self._half_open_admitted = 0
        self._half_open_outcomes: List[bool] = []

        self._successful_calls = 0
        self._failed_calls = 0
        self._not_permitted_calls = 0

    @property
    def state(self) -> CircuitBreakerState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state == CircuitBreakerState.OPEN

    @property
    def is_closed(self) -> bool:
        return self._state == CircuitBreakerState.CLOSED

    async def acquire(self) -> int:
        """
        Ask permission to perform one call.

        Returns:
            int: Permit to pass back to record_success or record_failure

        Raises:
            CircuitOpenError: If the circuit is open or the half-open trial
                slots are all taken
        """
        async with self._lock:
            if self._state == CircuitBreakerState.OPEN:
                remaining = self._opened_at + self.policy.wait_duration_in_open_state - self._clock()
                if remaining > 0:
                    self._not_permitted_calls += 1
                    raise CircuitOpenError(self.name, retry_after=remaining)
                self._transition_to(CircuitBreakerState.HALF_OPEN)

            if self._state == CircuitBreakerState.HALF_OPEN:
                if self._half_open_admitted >= self.policy.permitted_calls_in_half_open_state:
                    self._not_permitted_calls += 1
                    raise CircuitOpenError(self.name)
                self._half_open_admitted += 1

            return self._generation

    async def record_success(self, permit: int) -> None:
        """Record a call that reached the upstream and got an answer."""
        await self._record(permit, failed=False)

    async def record_failure(self, permit: int) -> None:
        """Record a call that failed after all retries."""
        await self._record(permit, failed=True)

    async def release(self, permit: int) -> None:
        """Give back a permit whose call was cancelled before completing."""
        async with self._lock:
            if (
                permit == self._generation
                and self._state == CircuitBreakerState.HALF_OPEN
                and self._half_open_admitted > 0
            ):
                self._half_open_admitted -= 1

    async def call(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """
        Execute an async function under circuit breaker protection.

        Every exception raised by ``func`` counts as a failure.

        Raises:
            CircuitOpenError: If the circuit rejects the call
        """
        permit = await self.acquire()
        try:
            result = await func(*args, **kwargs)
        except asyncio.CancelledError:
            await self.release(permit)
            raise
        except Exception:
            await self.record_failure(permit)
            raise
        await self.record_success(permit)
        return result

    async def _record(self, permit: int, failed: bool) -> None:
        async with self._lock:
            if failed:
                self._failed_calls += 1
            else:
                self._successful_calls += 1

            if permit != self._generation:
                return

            if self._state == CircuitBreakerState.CLOSED:
                self._window.append(failed)
                rate = self._window_failure_rate()
                if rate is not None and rate >= self.policy.failure_rate_threshold:
                    logger.warning(
                        f"Circuit breaker '{self.name}' OPEN: failure rate {rate:.1f}% "
                        f"over last {len(self._window)} calls"
                    )
                    self._transition_to(CircuitBreakerState.OPEN)

            elif self._state == CircuitBreakerState.HALF_OPEN:
                self._half_open_outcomes.append(failed)
                if len(self._half_open_outcomes) >= self.policy.permitted_calls_in_half_open_state:
                    rate = 100.0 * sum(self._half_open_outcomes) / len(self._half_open_outcomes)
                    if rate >= self.policy.failure_rate_threshold:
                        logger.warning(
                            f"Circuit breaker '{self.name}' reopened: trial failure rate {rate:.1f}%"
                        )
                        self._transition_to(CircuitBreakerState.OPEN)
                    else:
                        logger.info(f"Circuit breaker '{self.name}' CLOSED: upstream recovered")
                        self._transition_to(CircuitBreakerState.CLOSED)

    def _window_failure_rate(self) -> Optional[float]:
        minimum = min(self.policy.minimum_number_of_calls, self.policy.sliding_window_size)
        if len(self._window) < minimum or not self._window:
            return None
        return 100.0 * sum(self._window) / len(self._window)

    def _transition_to(self, new_state: CircuitBreakerState) -> None:
        previous = self._state
        self._state = new_state
        self._generation += 1
        self._half_open_admitted = 0
        self._half_open_outcomes = []

        if new_state == CircuitBreakerState.OPEN:
            self._opened_at = self._clock()
        elif new_state == CircuitBreakerState.CLOSED:
            self._window.clear()

        logger.info(
            f"Circuit breaker '{self.name}' transitioned from {previous.value} to {new_state.value}"
        )

    def get_metrics(self) -> Dict[str, Any]:
        """
        Snapshot of the breaker state and counters.

        Returns:
            Dict[str, Any]: State, window failure rate and call counters
        """
        rate = self._window_failure_rate()
        return {
            "name": self.name,
            "state": self._state.value,
            "failure_rate": round(rate, 2) if rate is not None else -1.0,
            "buffered_calls": len(self._window),
            "failed_buffered_calls": sum(self._window),
            "successful_calls": self._successful_calls,
            "failed_calls": self._failed_calls,
            "not_permitted_calls": self._not_permitted_calls,
        }

    async def reset(self) -> None:
        """Force the breaker back to CLOSED with an empty window."""
        async with self._lock:
            self._transition_to(CircuitBreakerState.CLOSED)
            self._successful_calls = 0
            self._failed_calls = 0
            self._not_permitted_calls = 0
