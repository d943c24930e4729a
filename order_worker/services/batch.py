"""
Concurrent fan-out fetching with order-preserving results.
"""
import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, List, Optional, Sequence, TypeVar

from order_worker.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class FetchResult(Generic[T]):
    """Outcome of fetching one identifier."""

    key: str
    value: Optional[T] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        """Return the value, or raise the captured error."""
        if self.error is not None:
            raise self.error
        return self.value


class BatchFetcher:
    """
    Fans out one fetch per identifier and gathers the outcomes.

    All fetches are in flight at once unless ``max_concurrency`` caps them.
    A failure for one identifier is captured in its FetchResult and never
    cancels its siblings. Cancelling the caller cancels every fetch still in
    flight.
    """

    def __init__(self, max_concurrency: Optional[int] = None):
        if max_concurrency is not None and max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.max_concurrency = max_concurrency

    async def fetch_many(
        self,
        ids: Sequence[str],
        fetch_one: Callable[[str], Awaitable[T]],
    ) -> List[FetchResult[T]]:
        """
        Fetch every identifier concurrently.

        Args:
            ids: Identifiers to fetch, duplicates allowed
            fetch_one: Coroutine function fetching a single identifier

        Returns:
            List[FetchResult[T]]: One result per input, in input order
        """
        if not ids:
            return []

        semaphore = asyncio.Semaphore(self.max_concurrency) if self.max_concurrency else None

        async def run(key: str) -> FetchResult[T]:
            try:
                if semaphore is None:
                    value = await fetch_one(key)
                else:
                    async with semaphore:
                        value = await fetch_one(key)
            except Exception as e:
                return FetchResult(key=key, error=e)
            return FetchResult(key=key, value=value)

        # gather keeps positional order regardless of completion order
        results = await asyncio.gather(*(run(key) for key in ids))

        failures = sum(1 for result in results if not result.ok)
        if failures:
            logger.debug(f"Batch fetch completed with {failures}/{len(results)} failures")
        return list(results)

    async def all_valid(
        self,
        ids: Sequence[str],
        fetch_one: Callable[[str], Awaitable[T]],
        predicate: Callable[[T], bool],
    ) -> bool:
        """
        Check that every identifier fetches successfully and passes the predicate.

        Any fetch failure makes the answer False; this method never raises for
        a fetch failure. An empty input is vacuously valid.

        Args:
            ids: Identifiers to fetch
            fetch_one: Coroutine function fetching a single identifier
            predicate: Validity check applied to each fetched value

        Returns:
            bool: True only if every fetch succeeded and every value is valid
        """
        results = await self.fetch_many(ids, fetch_one)
        for result in results:
            if not result.ok:
                logger.info(f"Validation failed for {result.key}: {result.error}")
                return False
            if not predicate(result.value):
                return False
        return True
