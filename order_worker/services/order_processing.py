import asyncio
from datetime import datetime, timezone
from typing import List, Tuple

from order_worker.core.exceptions import OrderProcessingError
from order_worker.core.logging import get_logger
from order_worker.domain.models.customer import CustomerRecord
from order_worker.domain.models.order import Order, OrderMessage, OrderProduct, OrderStatus
from order_worker.domain.models.product import ProductRecord
from order_worker.infrastructure.redis.lock import DistributedLock
from order_worker.infrastructure.repositories.order_repository import OrderRepository
from order_worker.services.customer_service import CustomerService
from order_worker.services.product_service import ProductService

logger = get_logger(__name__)


class OrderProcessingService:
    """Enriches order messages with customer and product data and stores them."""

    def __init__(
        self,
        order_repository: OrderRepository,
        customer_service: CustomerService,
        product_service: ProductService,
        lock: DistributedLock,
    ):
        self.order_repository = order_repository
        self.customer_service = customer_service
        self.product_service = product_service
        self.lock = lock

    async def process_order(self, message: OrderMessage) -> Order:
        """
        Process one order message.

        Processing is idempotent on ``order_id``: an order that is already
        stored is returned unchanged without calling the enricher API.

        Args:
            message: Validated order message

        Returns:
            Order: The stored, enriched order

        Raises:
            LockAcquisitionError: Another worker holds the order lock
            OrderProcessingError: Inactive customer or invalid product
            NotFoundError: Customer or product unknown to the enricher
            ExternalApiError: Enricher API failure
        """
        async with self.lock.hold(message.order_id):
            existing = await self.order_repository.find_by_order_id(message.order_id)
            if existing is not None:
                logger.info(f"Order already processed: {message.order_id}")
                return existing

            logger.info(f"Processing order: {message.order_id}")

            customer, products = await self._fetch_enrichment(message)

            order = self._build_order(message, customer, products)
            saved = await self.order_repository.save(order)
            logger.info(f"Order processed successfully: {saved.order_id}, total {saved.total_amount}")
            return saved

    async def _fetch_enrichment(
        self,
        message: OrderMessage,
    ) -> Tuple[CustomerRecord, List[ProductRecord]]:
        """
        Fetch the customer and the products concurrently.

        When one fetch fails the other is cancelled and awaited, so nothing is
        left running once the order lock is released.
        """
        customer_task = asyncio.ensure_future(
            self.customer_service.get_customer(message.customer_id)
        )
        products_task = asyncio.ensure_future(
            self.product_service.get_products_or_raise(message.product_ids)
        )
        tasks = (customer_task, products_task)
        try:
            customer, products = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        return customer, products

    def _build_order(
        self,
        message: OrderMessage,
        customer: CustomerRecord,
        products: List[ProductRecord],
    ) -> Order:
        if not customer.is_active():
            raise OrderProcessingError(
                f"Customer is not active: {message.customer_id}",
                context={"order_id": message.order_id, "customer_id": message.customer_id}
            )

        invalid = [
            info.product_id
            for info, product in zip(message.products, products)
            if not product.is_valid()
        ]
        if invalid:
            raise OrderProcessingError(
                f"One or more products are invalid for order: {message.order_id}",
                context={"order_id": message.order_id, "invalid_products": invalid}
            )

        order_products = [
            OrderProduct(
                product_id=product.product_id,
                name=product.name,
                description=product.description,
                price=product.price,
                quantity=info.quantity,
            )
            for info, product in zip(message.products, products)
        ]

        return Order(
            order_id=message.order_id,
            customer_id=message.customer_id,
            customer_name=customer.name,
            customer_status=customer.status,
            products=order_products,
            total_amount=Order.calculate_total(order_products),
            processed_at=datetime.now(timezone.utc),
            status=OrderStatus.PROCESSED,
        )
