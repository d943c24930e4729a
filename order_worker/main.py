import time
import uuid
from contextlib import asynccontextmanager
from typing import Callable, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from order_worker.api import error_handlers
from order_worker.container import Container
from order_worker.core.config import get_settings, load_env_file
from order_worker.core.exceptions import (
    APIException,
    ExternalApiError,
    NotFoundError,
    ValidationException,
)
from order_worker.core.logging import configure_logging, get_logger, set_correlation_id

# Load environment variables and configure logging early
load_env_file()
configure_logging()
logger = get_logger(__name__)


def create_application(container: Optional[Container] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        container: Prebuilt components; built from settings at startup if omitted

    Returns:
        FastAPI: Configured FastAPI application instance
    """
    settings = get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting up Order Enrichment Worker")
        app.state.container = container or Container.build(settings)
        await app.state.container.start()
        try:
            yield
        finally:
            logger.info("Shutting down Order Enrichment Worker")
            await app.state.container.shutdown()

    app = FastAPI(
        title=settings.PROJECT_NAME,
        openapi_url=f"{settings.API_V1_STR}/openapi.json",
        docs_url=f"{settings.API_V1_STR}/docs",
        redoc_url=f"{settings.API_V1_STR}/redoc",
        debug=settings.DEBUG,
        lifespan=lifespan,
    )

    configure_middleware(app)
    handle_exceptions(app)
    register_routers(app)

    return app


def configure_middleware(app: FastAPI) -> None:
    """
    Configure middleware components for the FastAPI application.

    Args:
        app: FastAPI application instance
    """
    settings = get_settings()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.BACKEND_CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def add_correlation_id(request: Request, call_next: Callable):
        correlation_id = request.headers.get("X-Correlation-ID") or str(uuid.uuid4())
        set_correlation_id(correlation_id)

        start_time = time.time()
        response = await call_next(request)
        response.headers["X-Correlation-ID"] = correlation_id

        process_time = time.time() - start_time
        logger.info(
            "Request completed",
            extra={
                "data": {
                    "request_path": request.url.path,
                    "method": request.method,
                    "status_code": response.status_code,
                    "process_time_ms": round(process_time * 1000, 2)
                }
            }
        )
        return response


def handle_exceptions(app: FastAPI) -> None:
    """
    Configure global exception handlers for the FastAPI application.

    Args:
        app: FastAPI application instance
    """
    app.add_exception_handler(NotFoundError, error_handlers.handle_not_found_exception)
    app.add_exception_handler(ValidationException, error_handlers.handle_validation_exception)
    app.add_exception_handler(ExternalApiError, error_handlers.handle_external_api_exception)
    app.add_exception_handler(APIException, error_handlers.handle_api_exception)
    app.add_exception_handler(RequestValidationError, error_handlers.handle_request_validation_error)
    app.add_exception_handler(Exception, error_handlers.handle_unexpected_exception)


def register_routers(app: FastAPI) -> None:
    """
    Register API routers with the FastAPI application.

    Args:
        app: FastAPI application instance
    """
    settings = get_settings()

    # Import routers here to avoid circular imports
    from order_worker.api.routes.health import health_router
    from order_worker.api.routes.orders import orders_router

    app.include_router(
        health_router,
        prefix=f"{settings.API_V1_STR}/health",
        tags=["Health"]
    )
    app.include_router(
        orders_router,
        prefix=f"{settings.API_V1_STR}/orders",
        tags=["Orders"]
    )


app = create_application()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("order_worker.main:app", host="0.0.0.0", port=8000, reload=True)
