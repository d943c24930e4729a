from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from order_worker.core.exceptions import (
    APIException,
    ExternalApiError,
    NotFoundError,
    ValidationException,
)
from order_worker.core.logging import get_logger

logger = get_logger(__name__)


async def handle_api_exception(request: Request, exc: APIException) -> JSONResponse:
    """
    Handle APIException instances.

    Args:
        request: FastAPI request object
        exc: APIException instance

    Returns:
        JSONResponse: Formatted error response
    """
    logger.error(
        f"API Exception: {exc.detail}",
        extra={"data": {"status_code": exc.status_code, "error_code": exc.code}}
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def handle_not_found_exception(request: Request, exc: NotFoundError) -> JSONResponse:
    """Handle entity not found errors."""
    logger.info(
        f"Entity not found: {exc.detail}",
        extra={"data": {"entity_type": exc.entity_type, "entity_id": exc.entity_id}}
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def handle_validation_exception(request: Request, exc: ValidationException) -> JSONResponse:
    """Handle domain validation errors."""
    logger.warning(f"Validation error: {exc.detail}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def handle_external_api_exception(request: Request, exc: ExternalApiError) -> JSONResponse:
    """
    Handle enricher API failures.

    The underlying transport error is logged but not echoed to the client.
    """
    logger.error(
        f"External API error: {exc.detail}",
        extra={"data": {"error_code": exc.code, "original_error": exc.context.get("original_error")}}
    )
    safe_context = {k: v for k, v in exc.context.items() if k != "original_error"}
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": {
                "code": exc.code,
                "message": exc.detail,
                "status_code": exc.status_code,
                "context": safe_context
            }
        }
    )


async def handle_request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle request body and parameter validation errors."""
    errors = [
        {"loc": list(error["loc"]), "msg": error["msg"], "type": error["type"]}
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": {
                "code": "validation_error",
                "message": "Request validation error",
                "status_code": status.HTTP_422_UNPROCESSABLE_ENTITY,
                "context": {"errors": errors}
            }
        }
    )


async def handle_unexpected_exception(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    logger.error(f"Unhandled exception: {str(exc)}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": {
                "code": "internal_server_error",
                "message": "An unexpected error occurred",
                "status_code": status.HTTP_500_INTERNAL_SERVER_ERROR
            }
        }
    )
