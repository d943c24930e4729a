"""
Resilience package for calls to the enricher API.
Provides the circuit breaker, retry policy and the executor composing them.
"""

from order_worker.infrastructure.resilience.circuit_breaker import CircuitBreaker, CircuitBreakerState
from order_worker.infrastructure.resilience.executor import ResilientExecutor
from order_worker.infrastructure.resilience.policy import ResiliencePolicy
from order_worker.infrastructure.resilience.retry import RetryPolicy

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerState",
    "ResilientExecutor",
    "ResiliencePolicy",
    "RetryPolicy",
]
