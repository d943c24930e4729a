"""
Wiring of the worker's long-lived components.
"""
import asyncio
from dataclasses import dataclass, field
from typing import Dict, Optional

from redis.asyncio import Redis

from order_worker.adapters.enricher_client import EnricherApiClient
from order_worker.core.config import Settings
from order_worker.core.logging import get_logger
from order_worker.infrastructure.database.mongodb import MongoDBClient
from order_worker.infrastructure.error.fallback import FallbackHandler, service_unavailable
from order_worker.infrastructure.redis.failed_orders import (
    FailedOrderStore,
    NullFailedOrderStore,
    RedisFailedOrderStore,
)
from order_worker.infrastructure.redis.lock import DistributedLock, LocalLock, RedisDistributedLock
from order_worker.infrastructure.repositories.order_repository import OrderRepository
from order_worker.infrastructure.resilience.executor import ResilientExecutor
from order_worker.services.batch import BatchFetcher
from order_worker.services.customer_service import CUSTOMER_SERVICE, CustomerService
from order_worker.services.failed_order_retrier import FailedOrderRetrier
from order_worker.services.order_consumer import OrderConsumer
from order_worker.services.order_processing import OrderProcessingService
from order_worker.services.product_service import PRODUCT_SERVICE, ProductService

logger = get_logger(__name__)


@dataclass
class Container:
    """Holds every component built for one application lifetime."""

    settings: Settings
    enricher_client: EnricherApiClient
    mongo_client: MongoDBClient
    order_repository: OrderRepository
    product_service: ProductService
    customer_service: CustomerService
    processing_service: OrderProcessingService
    consumer: OrderConsumer
    retrier: FailedOrderRetrier
    executors: Dict[str, ResilientExecutor]
    redis_client: Optional[Redis] = None
    _retry_task: Optional[asyncio.Task] = field(default=None, repr=False)

    @classmethod
    def build(cls, settings: Settings) -> "Container":
        """
        Build all components from settings without performing any I/O.

        Args:
            settings: Application settings

        Returns:
            Container: Wired components
        """
        enricher_client = EnricherApiClient.from_settings(settings)
        mongo_client = MongoDBClient.from_settings(settings)
        order_repository = OrderRepository(mongo_client)

        fallback_handler = FallbackHandler(logger)
        fallback_handler.register_fallback(
            PRODUCT_SERVICE, service_unavailable("Product service temporarily unavailable")
        )
        fallback_handler.register_fallback(
            CUSTOMER_SERVICE, service_unavailable("Customer service temporarily unavailable")
        )
        executors = {
            name: ResilientExecutor(settings.resilience_policy(name), fallback_handler=fallback_handler)
            for name in (PRODUCT_SERVICE, CUSTOMER_SERVICE)
        }

        batch_fetcher = BatchFetcher(max_concurrency=settings.BATCH_MAX_CONCURRENCY)
        product_service = ProductService(enricher_client, executors[PRODUCT_SERVICE], batch_fetcher)
        customer_service = CustomerService(enricher_client, executors[CUSTOMER_SERVICE])

        redis_client: Optional[Redis] = None
        lock: DistributedLock
        failed_order_store: FailedOrderStore
        if settings.REDIS_ENABLED:
            redis_client = Redis.from_url(settings.REDIS_URL, decode_responses=True)
            lock = RedisDistributedLock(
                redis_client,
                wait_seconds=settings.LOCK_WAIT_SECONDS,
                lease_seconds=settings.LOCK_LEASE_SECONDS,
            )
            failed_order_store = RedisFailedOrderStore(redis_client)
        else:
            logger.info("Redis disabled, using in-process locks and no failed order store")
            lock = LocalLock(wait_seconds=settings.LOCK_WAIT_SECONDS)
            failed_order_store = NullFailedOrderStore()

        processing_service = OrderProcessingService(
            order_repository, customer_service, product_service, lock
        )

        return cls(
            settings=settings,
            enricher_client=enricher_client,
            mongo_client=mongo_client,
            order_repository=order_repository,
            product_service=product_service,
            customer_service=customer_service,
            processing_service=processing_service,
            consumer=OrderConsumer(processing_service, failed_order_store),
            retrier=FailedOrderRetrier(
                processing_service,
                failed_order_store,
                interval=settings.FAILED_ORDER_RETRY_INTERVAL,
            ),
            executors=executors,
            redis_client=redis_client,
        )

    async def start(self) -> None:
        await self.enricher_client.initialize()
        await self.order_repository.ensure_indexes()
        if self.settings.FAILED_ORDER_RETRY_ENABLED and self.settings.REDIS_ENABLED:
            self._retry_task = asyncio.create_task(self.retrier.run_forever())

    async def shutdown(self) -> None:
        if self._retry_task is not None:
            self._retry_task.cancel()
            try:
                await self._retry_task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.error(f"Failed order retrier stopped with an error: {str(e)}", exc_info=True)
            self._retry_task = None
        await self.enricher_client.close()
        await self.mongo_client.close()
        if self.redis_client is not None:
            await self.redis_client.aclose()
