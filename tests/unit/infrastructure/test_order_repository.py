"""
Tests for OrderRepository against a mocked MongoDB collection.
"""
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
from bson import Decimal128, ObjectId
from pymongo.errors import DuplicateKeyError, ServerSelectionTimeoutError

from order_worker.core.exceptions import OrderNotFoundError, RepositoryError
from order_worker.domain.models.order import Order, OrderProduct, OrderStatus
from order_worker.infrastructure.repositories.order_repository import OrderRepository

OBJECT_ID = ObjectId("65f0c0ffee65f0c0ffee65f0")


def stored_document(**overrides):
    document = {
        "_id": OBJECT_ID,
        "order_id": "ORD-1",
        "customer_id": "C-1",
        "customer_name": "Ada Lovelace",
        "customer_status": "ACTIVE",
        "products": [
            {
                "product_id": "P-1",
                "name": "Keyboard",
                "description": None,
                "price": Decimal128("89.90"),
                "quantity": 2,
                "subtotal": Decimal128("179.80"),
            }
        ],
        "total_amount": Decimal128("179.80"),
        "processed_at": datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc),
        "status": "PROCESSED",
    }
    document.update(overrides)
    return document


@pytest.fixture
def collection():
    collection = MagicMock()
    collection.find_one = AsyncMock(return_value=None)
    collection.count_documents = AsyncMock(return_value=0)
    collection.insert_one = AsyncMock(return_value=MagicMock(inserted_id=OBJECT_ID))
    cursor = MagicMock()
    cursor.to_list = AsyncMock(return_value=[])
    collection.find = MagicMock(return_value=cursor)
    collection.cursor = cursor
    return collection


@pytest.fixture
def db_client(collection):
    client = MagicMock()
    client.get_collection = MagicMock(return_value=collection)
    client.create_indexes = AsyncMock(return_value=[])
    return client


@pytest.fixture
def repository(db_client):
    return OrderRepository(db_client)


class TestLookups:
    """Tests for lookups keyed by business order id."""

    @pytest.mark.asyncio
    async def test_find_by_order_id_maps_document(self, repository, collection):
        collection.find_one.return_value = stored_document()

        order = await repository.find_by_order_id("ORD-1")

        collection.find_one.assert_awaited_once_with({"order_id": "ORD-1"})
        assert order.id == str(OBJECT_ID)
        assert order.total_amount == Decimal("179.80")
        assert order.products[0].price == Decimal("89.90")
        assert order.status == OrderStatus.PROCESSED

    @pytest.mark.asyncio
    async def test_find_by_order_id_absent(self, repository):
        assert await repository.find_by_order_id("missing") is None

    @pytest.mark.asyncio
    async def test_get_by_order_id_raises_when_absent(self, repository):
        with pytest.raises(OrderNotFoundError) as exc_info:
            await repository.get_by_order_id("missing")

        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_exists_by_order_id(self, repository, collection):
        collection.count_documents.return_value = 1

        assert await repository.exists_by_order_id("ORD-1") is True
        collection.count_documents.assert_awaited_once_with({"order_id": "ORD-1"}, limit=1)

    @pytest.mark.asyncio
    async def test_driver_errors_are_wrapped(self, repository, collection):
        collection.find_one.side_effect = ServerSelectionTimeoutError("no servers")

        with pytest.raises(RepositoryError):
            await repository.find_by_order_id("ORD-1")


class TestSave:
    """Tests for inserting orders."""

    def make_order(self):
        products = [OrderProduct(product_id="P-1", name="Keyboard", price=Decimal("89.90"), quantity=2)]
        return Order(
            order_id="ORD-1",
            customer_id="C-1",
            products=products,
            total_amount=Order.calculate_total(products),
        )

    @pytest.mark.asyncio
    async def test_save_stores_decimals_and_assigns_id(self, repository, collection):
        saved = await repository.save(self.make_order())

        document = collection.insert_one.await_args.args[0]
        assert "_id" not in document
        assert "id" not in document
        assert document["total_amount"] == Decimal128("179.80")
        assert document["products"][0]["subtotal"] == Decimal128("179.80")
        assert document["status"] == "PROCESSED"
        assert saved.id == str(OBJECT_ID)

    @pytest.mark.asyncio
    async def test_duplicate_order_id(self, repository, collection):
        collection.insert_one.side_effect = DuplicateKeyError("E11000 duplicate key")

        with pytest.raises(RepositoryError) as exc_info:
            await repository.save(self.make_order())

        assert exc_info.value.context["order_id"] == "ORD-1"


class TestQueries:
    """Tests for filtered queries and paging."""

    @pytest.mark.asyncio
    async def test_find_by_customer_id(self, repository, collection):
        collection.cursor.to_list.return_value = [stored_document()]

        orders = await repository.find_by_customer_id("C-1")

        assert len(orders) == 1
        assert collection.find.call_args.args[0] == {"customer_id": "C-1"}

    @pytest.mark.asyncio
    async def test_list_orders_with_filters(self, repository, collection):
        collection.cursor.to_list.return_value = [stored_document()]
        collection.count_documents.return_value = 21

        page = await repository.list_orders(
            status=OrderStatus.PROCESSED, customer_id="C-1", page=1, size=10
        )

        query = collection.find.call_args.args[0]
        assert query == {"status": "PROCESSED", "customer_id": "C-1"}
        assert collection.find.call_args.kwargs["skip"] == 10
        assert collection.find.call_args.kwargs["limit"] == 10
        assert page.total_elements == 21
        assert page.total_pages == 3
        assert page.last is False

    @pytest.mark.asyncio
    async def test_list_orders_ignores_unknown_sort_field(self, repository, collection):
        await repository.list_orders(sort_by="$where")

        assert collection.find.call_args.kwargs["sort"] == [("processed_at", -1)]

    @pytest.mark.asyncio
    async def test_ensure_indexes(self, repository, db_client):
        await repository.ensure_indexes()

        name, indexes = db_client.create_indexes.await_args.args
        assert name == "orders"
        assert indexes[0].document["unique"] is True
        assert indexes[0].document["key"] == {"order_id": 1}
