from dataclasses import dataclass
from typing import Any, Dict, Optional

ACTIVE_STATUS = "active"


@dataclass(frozen=True)
class CustomerRecord:
    """Customer data as returned by the enricher API."""

    customer_id: Optional[str] = None
    name: Optional[str] = None
    status: Optional[str] = None

    def is_active(self) -> bool:
        """Checks if the customer status is ACTIVE, ignoring case."""
        return isinstance(self.status, str) and self.status.lower() == ACTIVE_STATUS

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "CustomerRecord":
        """Build a record from the upstream JSON body."""
        return cls(
            customer_id=_to_str(payload.get("customerId")),
            name=_to_str(payload.get("name")),
            status=_to_str(payload.get("status")),
        )


def _to_str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None
