"""
Resilient execution of single upstream calls.

Composition, outermost first: circuit breaker, then retry, then the raw call.
The breaker sees one outcome per logical call, after retries are exhausted.
Failures are classified exactly once, here, so nothing above this module sees
transport exceptions.
"""
import asyncio
import time
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from order_worker.core.exceptions import CircuitOpenError, NotFoundError
from order_worker.core.logging import get_logger
from order_worker.infrastructure.error.fallback import FallbackHandler, service_unavailable
from order_worker.infrastructure.error.handler import ErrorHandler
from order_worker.infrastructure.resilience.circuit_breaker import CircuitBreaker
from order_worker.infrastructure.resilience.policy import ResiliencePolicy
from order_worker.infrastructure.resilience.retry import RetryPolicy

logger = get_logger(__name__)

T = TypeVar("T")


class ResilientExecutor:
    """
    Wraps calls to one upstream with circuit breaking, retry, fallback and
    error classification.

    One executor, and so one circuit breaker, is shared by every call to the
    same upstream service.
    """

    def __init__(
        self,
        policy: ResiliencePolicy,
        circuit_breaker: Optional[CircuitBreaker] = None,
        retry_policy: Optional[RetryPolicy] = None,
        error_handler: Optional[ErrorHandler] = None,
        fallback_handler: Optional[FallbackHandler] = None,
        unavailable_message: Optional[str] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
    ):
        """
        Initialize the executor.

        Args:
            policy: Retry and circuit breaker parameters
            circuit_breaker: Breaker to share, built from the policy if omitted
            retry_policy: Retry policy, built from the policy if omitted
            error_handler: Classifier for upstream failures
            fallback_handler: Registry producing the unavailable error
            unavailable_message: Message used by the default fallback
            clock: Monotonic clock for the breaker
            sleep: Coroutine used to wait between retries
        """
        self.name = policy.name
        self.policy = policy
        self.circuit_breaker = circuit_breaker or CircuitBreaker(policy, clock=clock)
        self.retry_policy = retry_policy or RetryPolicy(policy, sleep=sleep)
        self.error_handler = error_handler or ErrorHandler(logger)
        self.fallback_handler = fallback_handler or FallbackHandler(logger)

        if not self.fallback_handler.has_fallback(self.name):
            self.fallback_handler.register_fallback(
                self.name,
                service_unavailable(unavailable_message or f"{self.name} temporarily unavailable"),
            )

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        entity_type: str,
        entity_id: str,
    ) -> T:
        """
        Run one upstream call under the resilience policy.

        Args:
            operation: Zero-argument coroutine factory performing one attempt
            entity_type: "Product" or "Customer", used for error mapping
            entity_id: Identifier being fetched

        Returns:
            The operation's result

        Raises:
            NotFoundError: The upstream answered 404
            ServiceUnavailableError: The circuit is open
            ExternalApiError: Any other failure after retries
        """
        request_params: Dict[str, Any] = {"entity_type": entity_type, "entity_id": entity_id}

        try:
            permit = await self.circuit_breaker.acquire()
        except CircuitOpenError as e:
            logger.warning(f"Call to {self.name} for {entity_type} {entity_id} short-circuited: {e}")
            raise self.fallback_handler.execute_fallback(self.name, request_params, e) from e

        try:
            result = await self.retry_policy.call(operation)
        except asyncio.CancelledError:
            await self.circuit_breaker.release(permit)
            raise
        except Exception as e:
            error = self.error_handler.to_domain_error(e, self.name, entity_type, entity_id)

            if isinstance(error, NotFoundError):
                # The upstream answered; absence is not an availability failure
                await self.circuit_breaker.record_success(permit)
                raise error from e

            await self.circuit_breaker.record_failure(permit)
            if self.circuit_breaker.is_open:
                raise self.fallback_handler.execute_fallback(self.name, request_params, error) from e
            raise error from e

        await self.circuit_breaker.record_success(permit)
        return result

    def get_metrics(self) -> Dict[str, Any]:
        return self.circuit_breaker.get_metrics()
