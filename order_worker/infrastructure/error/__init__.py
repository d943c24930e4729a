"""
Error handling package for the order enrichment worker.
Provides upstream error classification and fallback strategies.
"""

from order_worker.infrastructure.error.handler import (
    ErrorHandler,
    ErrorDetails,
    ErrorCategory,
    ErrorSeverity
)

from order_worker.infrastructure.error.fallback import (
    FallbackHandler,
    service_unavailable
)

__all__ = [
    "ErrorHandler",
    "ErrorDetails",
    "ErrorCategory",
    "ErrorSeverity",
    "FallbackHandler",
    "service_unavailable",
]
