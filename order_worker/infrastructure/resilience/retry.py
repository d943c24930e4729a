import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, TypeVar

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_none,
)

from order_worker.core.exceptions import UpstreamError
from order_worker.core.logging import get_logger
from order_worker.infrastructure.resilience.policy import ResiliencePolicy

logger = get_logger(__name__)

T = TypeVar("T")


class RetryPolicy:
    """
    Retries a single upstream call on transient failures.

    Only UpstreamError is ever retried: statuses in the policy's retryable set
    and, when enabled, failures that produced no HTTP response at all. Once
    attempts are exhausted the last failure is re-raised unchanged.
    """

    def __init__(
        self,
        policy: ResiliencePolicy,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
    ):
        self.policy = policy
        self._sleep = sleep or asyncio.sleep

    def is_retryable(self, exc: BaseException) -> bool:
        """
        Decide whether a failure is transient.

        Args:
            exc: Exception raised by the upstream call

        Returns:
            bool: True if another attempt should be made
        """
        if not isinstance(exc, UpstreamError):
            return False
        if exc.status_code is None:
            return self.policy.retry_on_transport_error
        return exc.status_code in self.policy.retry_status_codes

    def _build_wait(self):
        if self.policy.initial_backoff <= 0:
            return wait_none()
        return wait_exponential(
            multiplier=self.policy.initial_backoff,
            exp_base=self.policy.backoff_multiplier,
            max=self.policy.max_backoff,
        )

    def build_retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self.policy.max_attempts),
            wait=self._build_wait(),
            retry=retry_if_exception(self.is_retryable),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            sleep=self._sleep,
            reraise=True,
        )

    async def call(self, operation: Callable[[], Awaitable[T]]) -> T:
        """
        Run the operation, retrying transient failures.

        Args:
            operation: Zero-argument coroutine factory performing one attempt

        Returns:
            The operation's result

        Raises:
            Exception: The last failure once retries are exhausted, or the
                first non-retryable failure
        """
        # Iterating keeps each attempt awaited even when operation is a plain
        # lambda returning a coroutine
        async for attempt in self.build_retrying():
            with attempt:
                return await operation()
