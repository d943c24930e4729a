from typing import Any, Dict, Optional, Union

from pydantic import ValidationError

from order_worker.core.exceptions import APIException, ValidationException
from order_worker.core.logging import get_logger, set_order_id
from order_worker.domain.models.order import Order, OrderMessage
from order_worker.infrastructure.redis.failed_orders import FailedOrderStore
from order_worker.services.order_processing import OrderProcessingService

logger = get_logger(__name__)


class OrderConsumer:
    """
    Entry point for inbound order messages.

    A message that fails processing is handed to the failed order store for a
    later retry instead of being raised to the transport.
    """

    def __init__(
        self,
        processing_service: OrderProcessingService,
        failed_order_store: FailedOrderStore,
    ):
        self.processing_service = processing_service
        self.failed_order_store = failed_order_store

    @staticmethod
    def parse(payload: Union[str, bytes, Dict[str, Any]]) -> OrderMessage:
        """
        Validate a raw payload into an OrderMessage.

        Raises:
            ValidationException: If the payload is malformed
        """
        try:
            if isinstance(payload, (str, bytes)):
                return OrderMessage.model_validate_json(payload)
            return OrderMessage.model_validate(payload)
        except ValidationError as e:
            raise ValidationException(
                "Invalid order message",
                context={"errors": e.errors(include_url=False, include_context=False)}
            ) from e

    async def consume(self, payload: Union[str, bytes, Dict[str, Any]]) -> Optional[Order]:
        """
        Process one inbound message.

        Args:
            payload: JSON text or decoded JSON object

        Returns:
            The stored order, or None when processing failed and the message
            was handed to the failed order store

        Raises:
            ValidationException: If the payload is malformed
        """
        message = self.parse(payload)
        set_order_id(message.order_id)
        logger.info(f"Received order message: {message.order_id}")

        try:
            return await self.processing_service.process_order(message)
        except APIException as e:
            logger.error(f"Error processing order {message.order_id}: {e.detail}")
            await self.failed_order_store.store_failed(message, e)
            return None
        except Exception as e:
            logger.error(f"Unexpected error processing order {message.order_id}: {str(e)}", exc_info=True)
            await self.failed_order_store.store_failed(message, e)
            return None
