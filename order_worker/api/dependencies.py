from fastapi import Request

from order_worker.container import Container
from order_worker.infrastructure.repositories.order_repository import OrderRepository
from order_worker.services.order_consumer import OrderConsumer


def get_container(request: Request) -> Container:
    """
    Dependency for providing the application's component container.

    Returns:
        Container: Components built during application startup
    """
    return request.app.state.container


def get_order_repository(request: Request) -> OrderRepository:
    return get_container(request).order_repository


def get_order_consumer(request: Request) -> OrderConsumer:
    return get_container(request).consumer
