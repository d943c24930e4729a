from typing import Any, Dict, List, Optional

from bson import Decimal128
from pymongo import ASCENDING, DESCENDING, IndexModel
from pymongo.errors import DuplicateKeyError, PyMongoError

from order_worker.core.exceptions import OrderNotFoundError, RepositoryError
from order_worker.core.logging import get_logger
from order_worker.domain.models.order import Order, OrderStatus, PageResponse
from order_worker.infrastructure.database.mongodb import MongoDBClient

logger = get_logger(__name__)

SORTABLE_FIELDS = {"processed_at", "order_id", "customer_id", "total_amount", "status"}


class OrderRepository:
    """
    Repository for enriched orders.

    Orders are looked up by their business ``order_id``. The storage ``_id``
    is only surfaced as ``Order.id`` and is never used as a lookup key.
    """

    def __init__(self, db_client: MongoDBClient, collection_name: str = "orders"):
        """
        Initialize the order repository.

        Args:
            db_client: MongoDB client instance
            collection_name: Name of the orders collection
        """
        self.db_client = db_client
        self.collection_name = collection_name

    @property
    def collection(self):
        return self.db_client.get_collection(self.collection_name)

    async def ensure_indexes(self) -> None:
        """
        Ensure required indexes exist on the orders collection.
        """
        indexes = [
            IndexModel([("order_id", ASCENDING)], name="order_id_unique", unique=True),
            IndexModel([("customer_id", ASCENDING)], name="customer_id_index"),
            IndexModel([("status", ASCENDING)], name="status_index"),
            IndexModel([("processed_at", DESCENDING)], name="processed_at_index"),
            IndexModel(
                [("customer_id", ASCENDING), ("processed_at", DESCENDING)],
                name="customer_orders"
            ),
            IndexModel(
                [("status", ASCENDING), ("processed_at", DESCENDING)],
                name="status_orders"
            ),
        ]
        try:
            await self.db_client.create_indexes(self.collection_name, indexes)
        except RepositoryError as e:
            logger.warning(f"Failed to create indexes for orders: {e.detail}")

    def _map_to_model(self, data: Dict[str, Any]) -> Order:
        """
        Map database document to Order model.

        Args:
            data: Database document

        Returns:
            Order model
        """
        data = dict(data)
        if "_id" in data:
            data["id"] = str(data.pop("_id"))

        data["total_amount"] = _from_decimal128(data.get("total_amount"))
        products = []
        for product in data.get("products", []):
            product = dict(product)
            product["price"] = _from_decimal128(product.get("price"))
            product.pop("subtotal", None)
            products.append(product)
        data["products"] = products

        return Order.model_validate(data)

    def _map_to_document(self, order: Order) -> Dict[str, Any]:
        """
        Map Order model to database document.

        Args:
            order: Order model

        Returns:
            Database document
        """
        document = order.model_dump(exclude={"id", "products"})
        document["status"] = order.status.value
        document["total_amount"] = Decimal128(order.total_amount)
        document["products"] = [
            {
                **product.model_dump(exclude={"price"}),
                "price": Decimal128(product.price),
                "subtotal": Decimal128(product.subtotal),
            }
            for product in order.products
        ]
        return document

    async def find_by_order_id(self, order_id: str) -> Optional[Order]:
        """
        Find an order by its business identifier.

        Args:
            order_id: Business order identifier

        Returns:
            The order, or None when absent

        Raises:
            RepositoryError: If the query fails
        """
        try:
            document = await self.collection.find_one({"order_id": order_id})
        except PyMongoError as e:
            logger.error(f"Error finding order {order_id}: {str(e)}")
            raise RepositoryError(f"Failed to find order: {str(e)}", original_exception=e)

        return self._map_to_model(document) if document else None

    async def get_by_order_id(self, order_id: str) -> Order:
        """
        Get an order by its business identifier.

        Raises:
            OrderNotFoundError: If no order has this identifier
        """
        order = await self.find_by_order_id(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    async def exists_by_order_id(self, order_id: str) -> bool:
        try:
            count = await self.collection.count_documents({"order_id": order_id}, limit=1)
        except PyMongoError as e:
            logger.error(f"Error checking order {order_id}: {str(e)}")
            raise RepositoryError(f"Failed to check order: {str(e)}", original_exception=e)
        return count > 0

    async def save(self, order: Order) -> Order:
        """
        Insert a new order.

        Args:
            order: Order to persist, without a storage id

        Returns:
            The order with its storage id assigned

        Raises:
            RepositoryError: If the order id already exists or the insert fails
        """
        document = self._map_to_document(order)
        try:
            result = await self.collection.insert_one(document)
        except DuplicateKeyError as e:
            logger.warning(f"Order {order.order_id} already exists")
            raise RepositoryError(
                f"Order with ID {order.order_id} already exists",
                original_exception=e,
                context={"order_id": order.order_id}
            )
        except PyMongoError as e:
            logger.error(f"Error saving order {order.order_id}: {str(e)}")
            raise RepositoryError(f"Failed to save order: {str(e)}", original_exception=e)

        logger.info(f"Saved order {order.order_id}")
        return order.model_copy(update={"id": str(result.inserted_id)})

    async def find_by_customer_id(self, customer_id: str) -> List[Order]:
        return await self._find({"customer_id": customer_id})

    async def find_by_status(self, status: OrderStatus) -> List[Order]:
        return await self._find({"status": status.value})

    async def count(
        self,
        status: Optional[OrderStatus] = None,
        customer_id: Optional[str] = None
    ) -> int:
        try:
            return await self.collection.count_documents(_build_filter(status, customer_id))
        except PyMongoError as e:
            raise RepositoryError(f"Failed to count orders: {str(e)}", original_exception=e)

    async def list_orders(
        self,
        status: Optional[OrderStatus] = None,
        customer_id: Optional[str] = None,
        page: int = 0,
        size: int = 20,
        sort_by: str = "processed_at",
        descending: bool = True
    ) -> PageResponse[Order]:
        """
        List orders with optional filters and pagination.

        Args:
            status: Only orders with this status
            customer_id: Only orders for this customer
            page: Zero-based page number
            size: Page size
            sort_by: Field to sort on
            descending: Sort direction

        Returns:
            PageResponse[Order]: The requested page
        """
        if sort_by not in SORTABLE_FIELDS:
            sort_by = "processed_at"

        query = _build_filter(status, customer_id)
        orders = await self._find(
            query,
            sort=[(sort_by, DESCENDING if descending else ASCENDING)],
            skip=page * size,
            limit=size
        )
        total = await self.count(status, customer_id)
        return PageResponse[Order].of(orders, page=page, size=size, total=total)

    async def _find(
        self,
        query: Dict[str, Any],
        sort: Optional[List] = None,
        skip: int = 0,
        limit: int = 0
    ) -> List[Order]:
        try:
            cursor = self.collection.find(
                query,
                sort=sort or [("processed_at", DESCENDING)],
                skip=skip,
                limit=limit
            )
            documents = await cursor.to_list(length=None)
        except PyMongoError as e:
            logger.error(f"Error querying orders: {str(e)}")
            raise RepositoryError(f"Failed to query orders: {str(e)}", original_exception=e)

        return [self._map_to_model(document) for document in documents]


def _build_filter(status: Optional[OrderStatus], customer_id: Optional[str]) -> Dict[str, Any]:
    query: Dict[str, Any] = {}
    if status is not None:
        query["status"] = status.value
    if customer_id:
        query["customer_id"] = customer_id
    return query


def _from_decimal128(value: Any) -> Any:
    if isinstance(value, Decimal128):
        return value.to_decimal()
    return value
