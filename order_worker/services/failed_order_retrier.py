import asyncio

from order_worker.core.exceptions import APIException
from order_worker.core.logging import get_logger, set_order_id
from order_worker.infrastructure.redis.failed_orders import FailedOrderStore
from order_worker.services.order_processing import OrderProcessingService

logger = get_logger(__name__)


class FailedOrderRetrier:
    """Periodically reprocesses failed orders whose backoff has elapsed."""

    def __init__(
        self,
        processing_service: OrderProcessingService,
        failed_order_store: FailedOrderStore,
        interval: float = 30.0,
    ):
        self.processing_service = processing_service
        self.failed_order_store = failed_order_store
        self.interval = interval

    async def run_once(self) -> int:
        """
        Retry every failed order that is due.

        Returns:
            int: Number of orders processed successfully
        """
        ready = await self.failed_order_store.get_ready_for_retry()
        succeeded = 0

        for failed in ready:
            message = failed.message
            set_order_id(message.order_id)
            logger.info(f"Retrying order {message.order_id}, attempt {failed.attempt_count + 1}")
            try:
                await self.processing_service.process_order(message)
            except APIException as e:
                logger.warning(f"Retry failed for order {message.order_id}: {e.detail}")
                await self.failed_order_store.store_failed(message, e)
                continue
            except Exception as e:
                logger.error(f"Unexpected error retrying order {message.order_id}: {str(e)}", exc_info=True)
                await self.failed_order_store.store_failed(message, e)
                continue

            await self.failed_order_store.remove(message.order_id)
            succeeded += 1

        return succeeded

    async def run_forever(self) -> None:
        """Run the retry sweep every ``interval`` seconds until cancelled."""
        logger.info(f"Failed order retrier started, interval {self.interval}s")
        while True:
            try:
                await self.run_once()
            except APIException as e:
                logger.error(f"Failed order retry sweep failed: {e.detail}")
            except Exception:
                logger.exception("Unexpected error in failed order retry sweep")
            await asyncio.sleep(self.interval)
