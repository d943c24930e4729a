from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, Query, status

from order_worker.api.dependencies import get_order_consumer, get_order_repository
from order_worker.core.exceptions import NotFoundError, OrderProcessingError
from order_worker.core.logging import get_logger
from order_worker.domain.models.order import Order, OrderStatus, PageResponse
from order_worker.infrastructure.repositories.order_repository import OrderRepository
from order_worker.services.order_consumer import OrderConsumer

orders_router = APIRouter()
logger = get_logger(__name__)

MAX_PAGE_SIZE = 100


@orders_router.get(
    "/{order_id}",
    response_model=Order,
    response_model_by_alias=True,
    summary="Get order by business order ID",
)
async def get_order(
    order_id: str,
    repository: OrderRepository = Depends(get_order_repository),
) -> Order:
    logger.info(f"Fetching order: {order_id}")
    return await repository.get_by_order_id(order_id)


@orders_router.get(
    "",
    response_model=PageResponse[Order],
    response_model_by_alias=True,
    summary="List orders",
    description="Paginated list of orders, optionally filtered by status and customer."
)
async def list_orders(
    page: int = Query(0, ge=0),
    size: int = Query(20, ge=1),
    sort_by: str = Query("processed_at"),
    sort_dir: str = Query("desc", pattern="^(asc|desc)$"),
    order_status: Optional[OrderStatus] = Query(None, alias="status"),
    customer_id: Optional[str] = Query(None, alias="customerId"),
    repository: OrderRepository = Depends(get_order_repository),
) -> PageResponse[Order]:
    size = min(size, MAX_PAGE_SIZE)
    logger.info(
        f"Listing orders: page={page}, size={size}, status={order_status}, customer={customer_id}"
    )
    return await repository.list_orders(
        status=order_status,
        customer_id=customer_id,
        page=page,
        size=size,
        sort_by=sort_by,
        descending=sort_dir == "desc",
    )


@orders_router.get(
    "/customer/{customer_id}",
    response_model=List[Order],
    response_model_by_alias=True,
    summary="Get all orders for a customer",
)
async def get_orders_by_customer(
    customer_id: str,
    repository: OrderRepository = Depends(get_order_repository),
) -> List[Order]:
    orders = await repository.find_by_customer_id(customer_id)
    if not orders:
        raise NotFoundError("Orders", customer_id, detail=f"No orders found for customer: {customer_id}")
    return orders


@orders_router.post(
    "",
    response_model=Order,
    response_model_by_alias=True,
    status_code=status.HTTP_201_CREATED,
    summary="Submit an order message for enrichment",
)
async def submit_order(
    payload: Dict[str, Any] = Body(...),
    consumer: OrderConsumer = Depends(get_order_consumer),
) -> Order:
    """
    Enrich and store an order message.

    A message that fails processing is queued for retry and reported as an
    order processing error.
    """
    order = await consumer.consume(payload)
    if order is None:
        raise OrderProcessingError(
            "Order could not be processed and was queued for retry",
            context={"order_id": payload.get("orderId")}
        )
    return order
