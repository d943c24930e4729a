from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class ProductRecord:
    """Product data as returned by the enricher API."""

    product_id: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    price: Optional[Decimal] = None

    def is_valid(self) -> bool:
        """
        Checks whether the product can be placed on an order.

        A product is valid when it has a non-blank id, a non-blank name and a
        strictly positive price. Description is never checked.
        """
        return (
            _is_non_blank(self.product_id)
            and _is_non_blank(self.name)
            and self.price is not None
            and self.price > 0
        )

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "ProductRecord":
        """
        Build a record from the upstream JSON body.

        Args:
            payload: Decoded JSON object with camelCase keys

        Returns:
            ProductRecord: Immutable product record
        """
        return cls(
            product_id=_to_str(payload.get("productId")),
            name=_to_str(payload.get("name")),
            description=_to_str(payload.get("description")),
            price=_to_decimal(payload.get("price")),
        )


def _is_non_blank(value: Optional[str]) -> bool:
    return isinstance(value, str) and value.strip() != ""


def _to_str(value: Any) -> Optional[str]:
    # Non-string JSON values are dropped rather than coerced
    return value if isinstance(value, str) else None


def _to_decimal(value: Any) -> Optional[Decimal]:
    if value is None or isinstance(value, bool):
        return None
    try:
        # str() keeps the JSON literal instead of the binary float
        number = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    return number if number.is_finite() else None
