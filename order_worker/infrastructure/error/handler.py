"""
Error handling module for the order enrichment worker.
Classifies enricher API failures into domain errors and logs them by severity.
"""
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from order_worker.core.exceptions import (
    APIException,
    CircuitOpenError,
    CustomerNotFoundError,
    ExternalApiError,
    NotFoundError,
    ProductNotFoundError,
    UpstreamError,
)

NOT_FOUND_TYPES = {
    "Product": ProductNotFoundError,
    "Customer": CustomerNotFoundError,
}


class ErrorCategory(str, Enum):
    """Categorization of upstream errors for processing and reporting."""
    RATE_LIMIT = "rate_limit"
    CONNECTION = "connection"
    RESOURCE_NOT_FOUND = "resource_not_found"
    CLIENT_ERROR = "client_error"
    SERVER_ERROR = "server_error"
    CIRCUIT_OPEN = "circuit_open"
    UNKNOWN = "unknown"


class ErrorSeverity(str, Enum):
    """Severity levels for errors."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorDetails(BaseModel):
    """Structured error details for consistency in logging and reporting."""
    timestamp: datetime
    category: ErrorCategory
    severity: ErrorSeverity
    message: str
    source: str
    http_status_code: Optional[int] = None
    context: Dict[str, Any] = Field(default_factory=dict)


class ErrorHandler:
    """
    Central error processing for calls to the enricher API.

    Turns transport failures into the domain error taxonomy exactly once, at
    the resilience boundary, and logs each failure at a level matching its
    severity.
    """

    def __init__(self, logger: logging.Logger):
        """
        Initialize the error handler.

        Args:
            logger: Logger instance for error logging
        """
        self.logger = logger

    def categorize_error(
        self,
        exception: BaseException,
        source: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> ErrorDetails:
        """
        Categorize an error based on the exception type and status code.

        Args:
            exception: The exception that occurred
            source: Source identifier, e.g. "productService"
            context: Additional context about the error

        Returns:
            ErrorDetails: Structured details about the error
        """
        category = ErrorCategory.UNKNOWN
        severity = ErrorSeverity.HIGH
        http_status_code = None

        if isinstance(exception, CircuitOpenError):
            category = ErrorCategory.CIRCUIT_OPEN
            severity = ErrorSeverity.MEDIUM
        elif isinstance(exception, UpstreamError):
            http_status_code = exception.status_code
            if http_status_code is None:
                category = ErrorCategory.CONNECTION
                severity = ErrorSeverity.HIGH
            elif http_status_code == 404:
                category = ErrorCategory.RESOURCE_NOT_FOUND
                severity = ErrorSeverity.LOW
            elif http_status_code == 429:
                category = ErrorCategory.RATE_LIMIT
                severity = ErrorSeverity.MEDIUM
            elif http_status_code >= 500:
                category = ErrorCategory.SERVER_ERROR
                severity = ErrorSeverity.HIGH
            else:
                category = ErrorCategory.CLIENT_ERROR
                severity = ErrorSeverity.MEDIUM

        return ErrorDetails(
            timestamp=datetime.now(timezone.utc),
            category=category,
            severity=severity,
            message=str(exception),
            source=source,
            http_status_code=http_status_code,
            context=context or {},
        )

    def to_domain_error(
        self,
        exception: BaseException,
        source: str,
        entity_type: str,
        entity_id: str,
    ) -> APIException:
        """
        Map an upstream failure to the domain error taxonomy and log it.

        Args:
            exception: Failure raised by the upstream call after retries
            source: Name of the protected upstream
            entity_type: "Product" or "Customer"
            entity_id: Identifier that was requested

        Returns:
            APIException: NotFoundError for a 404, ExternalApiError otherwise
        """
        if isinstance(exception, APIException):
            return exception

        details = self.categorize_error(
            exception,
            source=source,
            context={"entity_type": entity_type, "entity_id": entity_id},
        )
        self.log_error(details)

        if details.category == ErrorCategory.RESOURCE_NOT_FOUND:
            not_found_type = NOT_FOUND_TYPES.get(entity_type)
            if not_found_type is not None:
                return not_found_type(entity_id)
            return NotFoundError(entity_type, entity_id)

        return ExternalApiError(
            detail=f"Failed to fetch {entity_type.lower()}: {entity_id}",
            cause=exception,
            context={"source": source, "category": details.category.value},
        )

    def log_error(self, error_details: ErrorDetails) -> None:
        """
        Log error details at the appropriate level.

        Args:
            error_details: Structured error information
        """
        log_data = {
            "category": error_details.category.value,
            "severity": error_details.severity.value,
            "source": error_details.source,
        }
        if error_details.http_status_code is not None:
            log_data["http_status_code"] = error_details.http_status_code
        if error_details.context:
            log_data.update(error_details.context)

        extra = {"data": log_data}
        if error_details.severity in (ErrorSeverity.CRITICAL, ErrorSeverity.HIGH):
            self.logger.error(f"Upstream error from {error_details.source}: {error_details.message}", extra=extra)
        elif error_details.severity == ErrorSeverity.MEDIUM:
            self.logger.warning(f"Upstream error from {error_details.source}: {error_details.message}", extra=extra)
        else:
            self.logger.info(f"Upstream error from {error_details.source}: {error_details.message}", extra=extra)
