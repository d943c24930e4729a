from typing import List, Sequence

from order_worker.adapters.enricher_client import EnricherApiClient
from order_worker.core.logging import get_logger
from order_worker.domain.models.product import ProductRecord
from order_worker.infrastructure.resilience.executor import ResilientExecutor
from order_worker.services.batch import BatchFetcher, FetchResult

logger = get_logger(__name__)

PRODUCT_SERVICE = "productService"


class ProductService:
    """Fetches and validates products from the enricher API."""

    def __init__(
        self,
        client: EnricherApiClient,
        executor: ResilientExecutor,
        batch_fetcher: BatchFetcher,
    ):
        """Initialize with the enricher client and its resilience wrapper."""
        self.client = client
        self.executor = executor
        self.batch_fetcher = batch_fetcher

    async def get_product(self, product_id: str) -> ProductRecord:
        """
        Gets a single product by ID.

        Raises:
            ProductNotFoundError: The enricher has no such product
            ServiceUnavailableError: The product circuit is open
            ExternalApiError: Any other upstream failure
        """
        logger.debug(f"Fetching product: {product_id}")
        return await self.executor.execute(
            lambda: self.client.fetch_product(product_id),
            entity_type="Product",
            entity_id=product_id,
        )

    async def get_products(self, product_ids: Sequence[str]) -> List[FetchResult[ProductRecord]]:
        """Gets several products concurrently, one result per ID in input order."""
        logger.debug(f"Fetching {len(product_ids)} products")
        return await self.batch_fetcher.fetch_many(product_ids, self.get_product)

    async def get_products_or_raise(self, product_ids: Sequence[str]) -> List[ProductRecord]:
        """Gets several products, raising the first failure in input order."""
        results = await self.get_products(product_ids)
        return [result.unwrap() for result in results]

    async def are_products_valid(self, product_ids: Sequence[str]) -> bool:
        """True only if every product is fetchable and valid."""
        return await self.batch_fetcher.all_valid(
            product_ids,
            self.get_product,
            lambda product: product.is_valid(),
        )
