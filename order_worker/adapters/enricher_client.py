"""
HTTP client for the enricher API.

The client performs exactly one HTTP exchange per call and reports every
failure as an UpstreamError. Retries and circuit breaking are layered on top
by the resilience executor.
"""
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx

from order_worker.core.exceptions import UpstreamError
from order_worker.core.logging import get_logger
from order_worker.domain.models.customer import CustomerRecord
from order_worker.domain.models.product import ProductRecord

logger = get_logger(__name__)

# Upstream error bodies are truncated to this many characters
MAX_ERROR_BODY_LENGTH = 200


class EnricherApiClient:
    """
    Async client bound to one enricher API base URL.

    The underlying httpx.AsyncClient is created lazily and reused for every
    request. An externally built client can be injected, which is how tests
    plug in an httpx.MockTransport.
    """

    def __init__(
        self,
        base_url: str,
        connect_timeout: float = 5.0,
        read_timeout: float = 10.0,
        response_timeout: float = 30.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize the client.

        Args:
            base_url: Root URL of the enricher API, without the /v1 suffix
            connect_timeout: Seconds allowed to establish a connection
            read_timeout: Seconds allowed between received bytes
            response_timeout: Overall ceiling for write and pool waits
            http_client: Optional preconfigured AsyncClient
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = httpx.Timeout(
            response_timeout,
            connect=connect_timeout,
            read=read_timeout,
        )
        self._client = http_client
        self._owns_client = http_client is None

    @classmethod
    def from_settings(cls, settings) -> "EnricherApiClient":
        return cls(
            base_url=settings.ENRICHER_API_BASE_URL,
            connect_timeout=settings.ENRICHER_CONNECT_TIMEOUT,
            read_timeout=settings.ENRICHER_READ_TIMEOUT,
            response_timeout=settings.ENRICHER_RESPONSE_TIMEOUT,
        )

    async def initialize(self) -> None:
        """Create the underlying HTTP client if none was injected."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers={"Accept": "application/json"},
            )
            self._owns_client = True
            logger.info(f"Enricher API client initialized for {self.base_url}")

    async def close(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
            logger.info("Enricher API client closed")

    async def __aenter__(self) -> "EnricherApiClient":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def fetch_product(self, product_id: str) -> ProductRecord:
        """
        Fetch one product.

        Args:
            product_id: Product identifier, escaped into the path

        Returns:
            ProductRecord: The decoded product

        Raises:
            UpstreamError: On non-2xx responses, transport failures or bad JSON
        """
        payload = await self._get_json(f"/v1/products/{quote(product_id, safe='')}")
        return ProductRecord.from_payload(payload)

    async def fetch_customer(self, customer_id: str) -> CustomerRecord:
        """
        Fetch one customer.

        Args:
            customer_id: Customer identifier, escaped into the path

        Returns:
            CustomerRecord: The decoded customer

        Raises:
            UpstreamError: On non-2xx responses, transport failures or bad JSON
        """
        payload = await self._get_json(f"/v1/customers/{quote(customer_id, safe='')}")
        return CustomerRecord.from_payload(payload)

    async def _get_json(self, path: str) -> Dict[str, Any]:
        if self._client is None:
            await self.initialize()

        url = f"{self.base_url}{path}"
        logger.debug(f"GET {url}")

        try:
            response = await self._client.get(url)
        except httpx.TransportError as e:
            logger.warning(f"Transport error calling {url}: {type(e).__name__}: {e}")
            raise UpstreamError(None, f"{type(e).__name__}: {e}") from e

        if not response.is_success:
            body = response.text[:MAX_ERROR_BODY_LENGTH]
            logger.debug(f"Enricher API returned {response.status_code} for {url}")
            raise UpstreamError(response.status_code, body or response.reason_phrase)

        try:
            payload = response.json()
        except ValueError as e:
            raise UpstreamError(response.status_code, "Invalid JSON payload") from e

        if not isinstance(payload, dict):
            raise UpstreamError(response.status_code, "Invalid JSON payload")

        return payload
