"""
Tests for the enricher API client using httpx.MockTransport.
"""
from decimal import Decimal

import httpx
import pytest

from order_worker.adapters.enricher_client import EnricherApiClient
from order_worker.core.exceptions import UpstreamError

BASE_URL = "http://enricher.test"


def make_client(handler) -> EnricherApiClient:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return EnricherApiClient(BASE_URL, http_client=http_client)


class TestFetchProduct:
    """Tests for fetch_product."""

    @pytest.mark.asyncio
    async def test_decodes_product(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={
                "productId": "P-1",
                "name": "Keyboard",
                "description": "Tenkeyless",
                "price": 89.9,
            })

        client = make_client(handler)
        product = await client.fetch_product("P-1")

        assert str(requests[0].url) == f"{BASE_URL}/v1/products/P-1"
        assert requests[0].method == "GET"
        assert product.name == "Keyboard"
        assert product.price == Decimal("89.9")

    @pytest.mark.asyncio
    async def test_escapes_identifier_in_path(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.url.raw_path)
            return httpx.Response(200, json={"productId": "a/b c"})

        client = make_client(handler)
        await client.fetch_product("a/b c")

        assert seen[0] == b"/v1/products/a%2Fb%20c"

    @pytest.mark.asyncio
    async def test_non_2xx_raises_upstream_error_with_truncated_body(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, text="x" * 500)

        client = make_client(handler)
        with pytest.raises(UpstreamError) as exc_info:
            await client.fetch_product("P-1")

        assert exc_info.value.status_code == 500
        assert len(exc_info.value.message) == 200

    @pytest.mark.asyncio
    async def test_404_raises_upstream_error(self):
        client = make_client(lambda request: httpx.Response(404, text="not found"))

        with pytest.raises(UpstreamError) as exc_info:
            await client.fetch_product("missing")

        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_transport_failure_has_no_status(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = make_client(handler)
        with pytest.raises(UpstreamError) as exc_info:
            await client.fetch_product("P-1")

        assert exc_info.value.status_code is None
        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)

    @pytest.mark.asyncio
    async def test_timeout_has_no_status(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("read timed out", request=request)

        client = make_client(handler)
        with pytest.raises(UpstreamError) as exc_info:
            await client.fetch_product("P-1")

        assert exc_info.value.status_code is None

    @pytest.mark.asyncio
    async def test_invalid_json_raises_upstream_error(self):
        client = make_client(lambda request: httpx.Response(200, text="<html>"))

        with pytest.raises(UpstreamError) as exc_info:
            await client.fetch_product("P-1")

        assert exc_info.value.status_code == 200
        assert exc_info.value.message == "Invalid JSON payload"

    @pytest.mark.asyncio
    async def test_json_array_is_rejected(self):
        client = make_client(lambda request: httpx.Response(200, json=[1, 2]))

        with pytest.raises(UpstreamError):
            await client.fetch_product("P-1")


class TestFetchCustomer:
    """Tests for fetch_customer."""

    @pytest.mark.asyncio
    async def test_decodes_customer(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/v1/customers/C-1"
            return httpx.Response(200, json={"customerId": "C-1", "name": "Ada", "status": "ACTIVE"})

        client = make_client(handler)
        customer = await client.fetch_customer("C-1")

        assert customer.customer_id == "C-1"
        assert customer.is_active() is True

    @pytest.mark.asyncio
    async def test_base_url_trailing_slash_is_ignored(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"customerId": "C-1"})

        http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        client = EnricherApiClient(f"{BASE_URL}/", http_client=http_client)

        customer = await client.fetch_customer("C-1")
        assert customer.customer_id == "C-1"


class TestLifecycle:
    """Tests for client creation and shutdown."""

    @pytest.mark.asyncio
    async def test_injected_client_is_not_closed(self):
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200, json={})))
        client = EnricherApiClient(BASE_URL, http_client=http_client)

        async with client:
            pass

        assert http_client.is_closed is False
        await http_client.aclose()

    @pytest.mark.asyncio
    async def test_owned_client_is_created_and_closed(self):
        client = EnricherApiClient(BASE_URL)
        await client.initialize()
        assert client._client is not None

        await client.close()
        assert client._client is None
