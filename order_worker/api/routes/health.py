from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel

from order_worker import __version__
from order_worker.api.dependencies import get_container
from order_worker.container import Container
from order_worker.core.logging import get_logger

health_router = APIRouter()
logger = get_logger(__name__)


class HealthStatus(BaseModel):
    """Basic health status response model."""
    status: str
    version: str = __version__
    service: str = "Order Enrichment Worker"


class DependencyStatus(BaseModel):
    """Status of a single dependency."""
    name: str
    status: str
    details: Optional[Dict[str, Any]] = None


class DetailedHealthStatus(HealthStatus):
    """Detailed health status with dependency information."""
    dependencies: List[DependencyStatus]


@health_router.get(
    "",
    response_model=HealthStatus,
    status_code=status.HTTP_200_OK,
    summary="Basic health check",
)
async def get_health() -> HealthStatus:
    logger.debug("Health check requested")
    return HealthStatus(status="ok")


@health_router.get(
    "/detailed",
    response_model=DetailedHealthStatus,
    status_code=status.HTTP_200_OK,
    summary="Detailed health check",
    description="Reports MongoDB connectivity and the state of each circuit breaker."
)
async def get_detailed_health(container: Container = Depends(get_container)) -> DetailedHealthStatus:
    """
    Detailed health check endpoint with dependency status.

    The service is reported as degraded when MongoDB is unreachable or any
    circuit breaker is not closed.
    """
    dependencies = []

    mongo_health = await container.mongo_client.health_check()
    dependencies.append(DependencyStatus(
        name="mongodb",
        status=mongo_health["status"],
        details=mongo_health,
    ))

    for name, executor in container.executors.items():
        metrics = executor.get_metrics()
        dependencies.append(DependencyStatus(
            name=name,
            status="healthy" if metrics["state"] == "CLOSED" else "degraded",
            details=metrics,
        ))

    overall = "ok" if all(d.status == "healthy" for d in dependencies) else "degraded"
    return DetailedHealthStatus(status=overall, dependencies=dependencies)
