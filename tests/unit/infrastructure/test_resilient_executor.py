"""
Tests for ResilientExecutor: breaker, retry, fallback and error mapping together.
"""
import pytest

from order_worker.core.exceptions import (
    CircuitOpenError,
    ExternalApiError,
    NotFoundError,
    ProductNotFoundError,
    ServiceUnavailableError,
    UpstreamError,
)
from order_worker.infrastructure.resilience.circuit_breaker import CircuitBreakerState
from order_worker.infrastructure.resilience.executor import ResilientExecutor


class CountingOperation:
    def __init__(self, error=None, result="value"):
        self.error = error
        self.result = result
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def executor(policy, fake_clock) -> ResilientExecutor:
    return ResilientExecutor(
        policy,
        unavailable_message="Product service temporarily unavailable",
        clock=fake_clock,
    )


class TestClassification:
    """Tests for mapping upstream failures to domain errors."""

    @pytest.mark.asyncio
    async def test_success_passes_through(self, executor):
        operation = CountingOperation()

        assert await executor.execute(operation, "Product", "P-1") == "value"
        assert executor.get_metrics()["successful_calls"] == 1

    @pytest.mark.asyncio
    async def test_404_becomes_not_found_without_retry(self, executor):
        operation = CountingOperation(UpstreamError(404, "missing"))

        with pytest.raises(ProductNotFoundError) as exc_info:
            await executor.execute(operation, "Product", "P-404")

        assert exc_info.value.entity_id == "P-404"
        assert isinstance(exc_info.value, NotFoundError)
        assert operation.calls == 1

    @pytest.mark.asyncio
    async def test_404_is_not_a_breaker_failure(self, executor):
        for _ in range(6):
            with pytest.raises(NotFoundError):
                await executor.execute(CountingOperation(UpstreamError(404, "")), "Product", "P")

        assert executor.circuit_breaker.state == CircuitBreakerState.CLOSED

    @pytest.mark.asyncio
    async def test_server_error_becomes_external_api_error_after_retries(self, executor):
        operation = CountingOperation(UpstreamError(500, "boom"))

        with pytest.raises(ExternalApiError) as exc_info:
            await executor.execute(operation, "Product", "P-1")

        assert not isinstance(exc_info.value, ServiceUnavailableError)
        assert operation.calls == 3
        assert isinstance(exc_info.value.cause, UpstreamError)
        assert exc_info.value.__cause__ is exc_info.value.cause

    @pytest.mark.asyncio
    async def test_client_error_is_not_retried(self, executor):
        operation = CountingOperation(UpstreamError(400, "bad request"))

        with pytest.raises(ExternalApiError):
            await executor.execute(operation, "Customer", "C-1")

        assert operation.calls == 1

    @pytest.mark.asyncio
    async def test_unexpected_exception_becomes_external_api_error(self, executor):
        with pytest.raises(ExternalApiError) as exc_info:
            await executor.execute(CountingOperation(KeyError("price")), "Product", "P-1")

        assert isinstance(exc_info.value.cause, KeyError)


class TestCircuitBreaking:
    """Tests for fallback when the circuit is open."""

    async def trip(self, executor):
        for _ in range(4):
            with pytest.raises(ExternalApiError):
                await executor.execute(CountingOperation(UpstreamError(503, "")), "Product", "P")

    @pytest.mark.asyncio
    async def test_failure_that_opens_circuit_goes_to_fallback(self, executor):
        for _ in range(3):
            with pytest.raises(ExternalApiError) as exc_info:
                await executor.execute(CountingOperation(UpstreamError(503, "")), "Product", "P")
            assert not isinstance(exc_info.value, ServiceUnavailableError)

        with pytest.raises(ServiceUnavailableError):
            await executor.execute(CountingOperation(UpstreamError(503, "")), "Product", "P")

        assert executor.circuit_breaker.state == CircuitBreakerState.OPEN

    @pytest.mark.asyncio
    async def test_open_circuit_short_circuits_without_calling_upstream(self, executor):
        await self.trip(executor)
        operation = CountingOperation()

        with pytest.raises(ServiceUnavailableError) as exc_info:
            await executor.execute(operation, "Product", "P-1")

        assert operation.calls == 0
        assert exc_info.value.detail == "Product service temporarily unavailable"
        assert isinstance(exc_info.value.cause, CircuitOpenError)
        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_recovers_after_cool_down(self, executor, fake_clock):
        await self.trip(executor)
        fake_clock.advance(30)

        for _ in range(2):
            assert await executor.execute(CountingOperation(), "Product", "P-1") == "value"

        assert executor.circuit_breaker.state == CircuitBreakerState.CLOSED
