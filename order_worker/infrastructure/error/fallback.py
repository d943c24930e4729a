"""
Fallback mechanism for the order enrichment worker.

A fallback never fabricates data: it produces the error the caller sees when
an upstream is unavailable, wrapping the failure that triggered it.
"""
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List

from order_worker.core.exceptions import ServiceUnavailableError

# Builds the exception to raise from the request parameters and the cause
FallbackStrategy = Callable[[Dict[str, Any], BaseException], BaseException]


@dataclass
class FallbackRegistration:
    strategy: FallbackStrategy
    priority: int = 0


def service_unavailable(message: str) -> FallbackStrategy:
    """
    Build a strategy that reports the upstream as temporarily unavailable.

    Args:
        message: Human readable message for the error

    Returns:
        FallbackStrategy: Strategy producing a ServiceUnavailableError
    """
    def strategy(request_params: Dict[str, Any], error: BaseException) -> BaseException:
        return ServiceUnavailableError(detail=message, cause=error, context=dict(request_params))

    return strategy


class FallbackHandler:
    """
    Manages fallback strategies per protected operation.
    """

    def __init__(self, logger: logging.Logger):
        """
        Initialize the fallback handler.

        Args:
            logger: Logger instance for fallback operations
        """
        self.logger = logger
        self._registry: Dict[str, List[FallbackRegistration]] = {}

    def register_fallback(
        self,
        operation_key: str,
        strategy: FallbackStrategy,
        priority: int = 0
    ) -> None:
        """
        Register a fallback strategy for a specific operation.

        Args:
            operation_key: Unique identifier for the operation
            strategy: Callable producing the exception to raise
            priority: Higher priorities are tried first
        """
        registrations = self._registry.setdefault(operation_key, [])
        registrations.append(FallbackRegistration(strategy=strategy, priority=priority))
        registrations.sort(key=lambda r: r.priority, reverse=True)

        self.logger.debug(
            f"Registered fallback strategy for operation '{operation_key}' with priority {priority}"
        )

    def has_fallback(self, operation_key: str) -> bool:
        return bool(self._registry.get(operation_key))

    def execute_fallback(
        self,
        operation_key: str,
        request_params: Dict[str, Any],
        error: BaseException
    ) -> BaseException:
        """
        Execute the fallback for an operation.

        Args:
            operation_key: Unique identifier for the operation
            request_params: Parameters for the operation
            error: The failure that triggered the fallback

        Returns:
            BaseException: The exception the caller should raise. Falls back
                to a generic ServiceUnavailableError when no strategy is
                registered or every strategy fails.
        """
        for registration in self._registry.get(operation_key, []):
            try:
                result = registration.strategy(request_params, error)
            except Exception as e:
                self.logger.warning(
                    f"Fallback strategy for '{operation_key}' failed: {str(e)}. "
                    f"Trying next strategy if available."
                )
                continue

            self.logger.info(
                f"Fallback executed for operation '{operation_key}': {type(result).__name__}"
            )
            return result

        return ServiceUnavailableError(cause=error, context=dict(request_params))
