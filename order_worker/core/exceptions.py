from fastapi import status
from typing import Any, Dict, Optional, Union


class APIException(Exception):
    """
    Base exception for API errors.

    All domain exceptions raised by the worker inherit from this class so the
    HTTP layer can render them with a consistent envelope.
    """

    def __init__(
        self,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail: str = "An unexpected error occurred",
        code: str = "internal_error",
        context: Optional[Dict[str, Any]] = None
    ):
        self.status_code = status_code
        self.detail = detail
        self.code = code
        self.context = context or {}
        super().__init__(self.detail)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to a dictionary for consistent response format."""
        return {
            "error": {
                "code": self.code,
                "message": self.detail,
                "status_code": self.status_code,
                "context": self.context
            }
        }


class NotFoundError(APIException):
    """Exception raised when the upstream or the store has no such entity."""

    def __init__(
        self,
        entity_type: str,
        entity_id: Union[str, int],
        detail: Optional[str] = None,
        code: str = "not_found_error",
        context: Optional[Dict[str, Any]] = None
    ):
        if detail is None:
            detail = f"{entity_type} not found with ID: {entity_id}"

        merged_context = {
            "entity_type": entity_type,
            "entity_id": str(entity_id)
        }
        if context:
            merged_context.update(context)

        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=detail,
            code=code,
            context=merged_context
        )
        self.entity_type = entity_type
        self.entity_id = str(entity_id)


class ProductNotFoundError(NotFoundError):
    def __init__(self, product_id: str, context: Optional[Dict[str, Any]] = None):
        super().__init__("Product", product_id, code="product_not_found", context=context)


class CustomerNotFoundError(NotFoundError):
    def __init__(self, customer_id: str, context: Optional[Dict[str, Any]] = None):
        super().__init__("Customer", customer_id, code="customer_not_found", context=context)


class OrderNotFoundError(NotFoundError):
    def __init__(self, order_id: str, context: Optional[Dict[str, Any]] = None):
        super().__init__("Order", order_id, code="order_not_found", context=context)


class ExternalApiError(APIException):
    """
    Exception raised when a call to the enricher API fails for any reason
    other than the entity being absent.

    The underlying failure is kept on ``cause`` and is also chained with
    ``raise ... from`` by the code that raises this error.
    """

    def __init__(
        self,
        detail: str = "External API error",
        cause: Optional[BaseException] = None,
        code: str = "external_api_error",
        status_code: int = status.HTTP_503_SERVICE_UNAVAILABLE,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(status_code=status_code, detail=detail, code=code, context=context)
        self.cause = cause

        if cause is not None:
            self.context["original_error"] = str(cause)


class ServiceUnavailableError(ExternalApiError):
    """Raised by the fallback path when the circuit is open."""

    def __init__(
        self,
        detail: str = "Service temporarily unavailable",
        cause: Optional[BaseException] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            detail=detail,
            cause=cause,
            code="service_unavailable",
            context=context
        )


class OrderProcessingError(APIException):
    """Exception raised when an order cannot be enriched and persisted."""

    def __init__(
        self,
        detail: str = "Order processing failed",
        code: str = "order_processing_error",
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
            code=code,
            context=context
        )


class LockAcquisitionError(APIException):
    """Exception raised when a per-order lock cannot be acquired in time."""

    def __init__(self, lock_key: str, wait_seconds: float):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Could not acquire lock for key: {lock_key}",
            code="lock_acquisition_error",
            context={"lock_key": lock_key, "wait_seconds": wait_seconds}
        )


class ValidationException(APIException):
    """Exception raised when data validation fails."""

    def __init__(
        self,
        detail: str = "Validation error",
        code: str = "validation_error",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        merged_context = {"field": field} if field else {}
        if context:
            merged_context.update(context)

        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=detail,
            code=code,
            context=merged_context
        )


class RepositoryError(APIException):
    """Exception raised when the order store fails."""

    def __init__(
        self,
        detail: str = "Repository operation failed",
        original_exception: Optional[Exception] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=detail,
            code="repository_error",
            context=context
        )
        self.original_exception = original_exception

        if original_exception is not None:
            self.context["original_error"] = str(original_exception)


class UpstreamError(Exception):
    """
    Transport-level failure reported by the enricher client.

    ``status_code`` is None when no HTTP response was received (timeouts,
    refused connections). This type never leaves the resilience layer.
    """

    def __init__(self, status_code: Optional[int], message: str):
        self.status_code = status_code
        self.message = message
        super().__init__(f"[{status_code}] {message}" if status_code is not None else message)


class CircuitOpenError(Exception):
    """Raised when a call is rejected because the circuit breaker is open."""

    def __init__(self, name: str, retry_after: Optional[float] = None):
        self.name = name
        self.retry_after = retry_after
        message = f"Circuit breaker '{name}' is open"
        if retry_after is not None:
            message += f", retry after {retry_after:.1f}s"
        super().__init__(message)
