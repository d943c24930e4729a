from order_worker.adapters.enricher_client import EnricherApiClient
from order_worker.core.exceptions import APIException
from order_worker.core.logging import get_logger
from order_worker.domain.models.customer import CustomerRecord
from order_worker.infrastructure.resilience.executor import ResilientExecutor

logger = get_logger(__name__)

CUSTOMER_SERVICE = "customerService"


class CustomerService:
    """Fetches and validates customers from the enricher API."""

    def __init__(self, client: EnricherApiClient, executor: ResilientExecutor):
        self.client = client
        self.executor = executor

    async def get_customer(self, customer_id: str) -> CustomerRecord:
        """
        Gets a single customer by ID.

        Raises:
            CustomerNotFoundError: The enricher has no such customer
            ServiceUnavailableError: The customer circuit is open
            ExternalApiError: Any other upstream failure
        """
        logger.debug(f"Fetching customer: {customer_id}")
        return await self.executor.execute(
            lambda: self.client.fetch_customer(customer_id),
            entity_type="Customer",
            entity_id=customer_id,
        )

    async def is_customer_valid(self, customer_id: str) -> bool:
        """True if the customer is fetchable and active; failures count as invalid."""
        try:
            customer = await self.get_customer(customer_id)
        except APIException as e:
            logger.info(f"Customer {customer_id} could not be validated: {e.detail}")
            return False
        return customer.is_active()
