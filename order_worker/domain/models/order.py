from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class OrderStatus(str, Enum):
    """Lifecycle status of a persisted order."""
    PROCESSED = "PROCESSED"
    FAILED = "FAILED"
    RETRY = "RETRY"


class CamelModel(BaseModel):
    """Base model accepting both camelCase aliases and field names."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


class ProductInfo(CamelModel):
    """A product line on an inbound order message."""

    product_id: str
    quantity: int = Field(ge=1)

    @field_validator("product_id")
    @classmethod
    def product_id_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Product ID is required")
        return v


class OrderMessage(CamelModel):
    """
    Inbound order to enrich.

    Arrives from the ingest endpoint or from the failed-order store, always
    in camelCase JSON.
    """

    order_id: str
    customer_id: str
    products: List[ProductInfo] = Field(min_length=1)

    @field_validator("order_id", "customer_id")
    @classmethod
    def identifier_not_blank(cls, v: str, info) -> str:
        if not v.strip():
            raise ValueError(f"{info.field_name} is required")
        return v

    @property
    def product_ids(self) -> List[str]:
        return [product.product_id for product in self.products]


class OrderProduct(CamelModel):
    """An enriched product line on a persisted order."""

    product_id: str
    name: str
    description: Optional[str] = None
    price: Decimal
    quantity: int

    @computed_field
    @property
    def subtotal(self) -> Decimal:
        return self.price * self.quantity


class Order(CamelModel):
    """An enriched order as stored in the orders collection."""

    id: Optional[str] = None
    order_id: str
    customer_id: str
    customer_name: Optional[str] = None
    customer_status: Optional[str] = None
    products: List[OrderProduct] = Field(default_factory=list)
    total_amount: Decimal = Decimal("0")
    processed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    status: OrderStatus = OrderStatus.PROCESSED

    @staticmethod
    def calculate_total(products: List[OrderProduct]) -> Decimal:
        """Sum of price times quantity across all product lines."""
        return sum((product.subtotal for product in products), Decimal("0"))


class PageResponse(CamelModel, Generic[T]):
    """A page of results with the paging metadata."""

    content: List[T]
    page: int
    size: int
    total_elements: int
    total_pages: int
    first: bool
    last: bool

    @classmethod
    def of(cls, content: List[T], page: int, size: int, total: int) -> "PageResponse[T]":
        total_pages = (total + size - 1) // size if size > 0 else 0
        return cls(
            content=content,
            page=page,
            size=size,
            total_elements=total,
            total_pages=total_pages,
            first=page == 0,
            last=page >= total_pages - 1,
        )
