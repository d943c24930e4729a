"""
Shared fixtures for the order enrichment worker tests.
"""
import fnmatch
from decimal import Decimal
from typing import Any, Dict, List, Optional

import pytest

from order_worker.domain.models.customer import CustomerRecord
from order_worker.domain.models.order import OrderMessage
from order_worker.domain.models.product import ProductRecord
from order_worker.infrastructure.resilience.policy import ResiliencePolicy


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakePipeline:
    """Buffers commands and applies them on execute."""

    def __init__(self, redis: "FakeRedis"):
        self._redis = redis
        self._commands: List = []

    async def __aenter__(self) -> "FakePipeline":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self._commands = []

    def __getattr__(self, name: str):
        def buffer(*args: Any, **kwargs: Any) -> "FakePipeline":
            self._commands.append((name, args, kwargs))
            return self
        return buffer

    async def execute(self) -> List[Any]:
        results = []
        for name, args, kwargs in self._commands:
            results.append(await getattr(self._redis, name)(*args, **kwargs))
        self._commands = []
        return results


class FakeRedis:
    """In-memory stand-in for the subset of redis.asyncio used by the worker."""

    def __init__(self):
        self.values: Dict[str, str] = {}
        self.sets: Dict[str, set] = {}

    async def get(self, key: str) -> Optional[str]:
        return self.values.get(key)

    async def set(self, key: str, value: Any, nx: bool = False, px: Optional[int] = None) -> Optional[bool]:
        if nx and key in self.values:
            return None
        self.values[key] = str(value)
        return True

    async def incr(self, key: str) -> int:
        value = int(self.values.get(key, "0")) + 1
        self.values[key] = str(value)
        return value

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self.values.pop(key, None) is not None:
                removed += 1
            if self.sets.pop(key, None) is not None:
                removed += 1
        return removed

    async def exists(self, *keys: str) -> int:
        return sum(1 for key in keys if key in self.values or key in self.sets)

    async def sadd(self, key: str, *members: str) -> int:
        members_set = self.sets.setdefault(key, set())
        before = len(members_set)
        members_set.update(members)
        return len(members_set) - before

    async def srem(self, key: str, *members: str) -> int:
        members_set = self.sets.get(key, set())
        removed = len(members_set & set(members))
        members_set.difference_update(members)
        return removed

    async def smembers(self, key: str) -> set:
        return set(self.sets.get(key, set()))

    async def scard(self, key: str) -> int:
        return len(self.sets.get(key, set()))

    async def eval(self, script: str, numkeys: int, *args: str) -> int:
        # Only the compare-and-delete release script is supported
        key, token = args[0], args[1]
        if self.values.get(key) == token:
            del self.values[key]
            return 1
        return 0

    def pipeline(self, transaction: bool = True) -> FakePipeline:
        return FakePipeline(self)

    def keys_matching(self, pattern: str) -> List[str]:
        return [key for key in self.values if fnmatch.fnmatch(key, pattern)]


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def policy() -> ResiliencePolicy:
    """Policy with no backoff so retries run instantly."""
    return ResiliencePolicy(
        name="productService",
        max_attempts=3,
        initial_backoff=0,
        failure_rate_threshold=50.0,
        sliding_window_size=4,
        minimum_number_of_calls=4,
        wait_duration_in_open_state=30.0,
        permitted_calls_in_half_open_state=2,
    )


@pytest.fixture
def valid_product() -> ProductRecord:
    return ProductRecord(
        product_id="P-1",
        name="Mechanical Keyboard",
        description="Tenkeyless",
        price=Decimal("89.90"),
    )


@pytest.fixture
def active_customer() -> CustomerRecord:
    return CustomerRecord(customer_id="C-1", name="Ada Lovelace", status="ACTIVE")


@pytest.fixture
def order_message() -> OrderMessage:
    return OrderMessage.model_validate({
        "orderId": "ORD-1",
        "customerId": "C-1",
        "products": [
            {"productId": "P-1", "quantity": 2},
            {"productId": "P-2", "quantity": 1},
        ],
    })
