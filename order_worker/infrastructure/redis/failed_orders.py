"""
Storage for order messages whose processing failed.

Each failure increments the attempt counter and schedules the next retry with
exponential backoff. Once the attempts exceed the maximum the message is
moved to the dead letter queue and no longer retried.
"""
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Callable, List

from pydantic import BaseModel, Field, ValidationError
from redis.asyncio import Redis
from redis.exceptions import RedisError

from order_worker.core.exceptions import RepositoryError
from order_worker.core.logging import get_logger
from order_worker.domain.models.order import OrderMessage

logger = get_logger(__name__)

FAILED_MESSAGE_PREFIX = "failed_messages:"
FAILED_ATTEMPTS_PREFIX = "failed_attempts:"
FAILED_NEXT_RETRY_PREFIX = "failed_next_retry:"
FAILED_MESSAGES_SET = "failed_messages_set"
DEAD_LETTER_PREFIX = "dead_letter:"
DEAD_LETTER_QUEUE = "dead_letter_queue"

MAX_RETRY_ATTEMPTS = 5
INITIAL_RETRY_DELAY = 1.0  # seconds
RETRY_MULTIPLIER = 2.0
MAX_RETRY_DELAY = 300.0  # seconds


class FailedOrder(BaseModel):
    """A failed order message with its retry bookkeeping."""

    message: OrderMessage
    error_message: str
    attempt_count: int
    failed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    next_retry_at: int = 0  # epoch milliseconds


def calculate_retry_delay(attempt: int) -> float:
    """
    Backoff before the next retry, in seconds.

    Args:
        attempt: Number of failures so far, starting at 1

    Returns:
        float: 1, 2, 4, 8, ... seconds capped at MAX_RETRY_DELAY
    """
    return min(INITIAL_RETRY_DELAY * RETRY_MULTIPLIER ** (attempt - 1), MAX_RETRY_DELAY)


class FailedOrderStore(ABC):
    """Interface for failed order storage."""

    @abstractmethod
    async def store_failed(self, message: OrderMessage, error: BaseException) -> None:
        pass

    @abstractmethod
    async def get_ready_for_retry(self) -> List[FailedOrder]:
        pass

    @abstractmethod
    async def remove(self, order_id: str) -> None:
        pass

    @abstractmethod
    async def get_attempt_count(self, order_id: str) -> int:
        pass


class RedisFailedOrderStore(FailedOrderStore):
    """Failed order store backed by Redis keys and sets."""

    def __init__(self, redis_client: Redis, clock: Callable[[], float] = time.time):
        """
        Initialize the store.

        Args:
            redis_client: Redis client created with decode_responses=True
            clock: Wall clock in seconds, injectable for tests
        """
        self.redis = redis_client
        self._clock = clock

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    async def store_failed(self, message: OrderMessage, error: BaseException) -> None:
        """
        Record a processing failure for an order message.

        Raises:
            RepositoryError: If Redis fails
        """
        order_id = message.order_id
        try:
            attempts = await self.redis.incr(f"{FAILED_ATTEMPTS_PREFIX}{order_id}")

            failed = FailedOrder(
                message=message,
                error_message=str(error),
                attempt_count=attempts,
            )

            if attempts > MAX_RETRY_ATTEMPTS:
                await self._move_to_dead_letter(failed)
                return

            delay = calculate_retry_delay(attempts)
            failed.next_retry_at = self._now_ms() + int(delay * 1000)

            async with self.redis.pipeline(transaction=True) as pipe:
                pipe.set(f"{FAILED_MESSAGE_PREFIX}{order_id}", failed.model_dump_json(by_alias=True))
                pipe.set(f"{FAILED_NEXT_RETRY_PREFIX}{order_id}", failed.next_retry_at)
                pipe.sadd(FAILED_MESSAGES_SET, order_id)
                await pipe.execute()
        except RedisError as e:
            logger.error(f"Failed to store failed order {order_id}: {str(e)}")
            raise RepositoryError(f"Failed to store failed order: {str(e)}", original_exception=e)

        logger.info(
            f"Stored failed order {order_id}, attempt {attempts}, next retry in {delay:.0f}s"
        )

    async def get_ready_for_retry(self) -> List[FailedOrder]:
        """
        Failed orders whose next retry time has passed.

        Raises:
            RepositoryError: If Redis fails
        """
        now = self._now_ms()
        ready: List[FailedOrder] = []
        try:
            order_ids = await self.redis.smembers(FAILED_MESSAGES_SET)
            for order_id in sorted(order_ids):
                next_retry = await self.redis.get(f"{FAILED_NEXT_RETRY_PREFIX}{order_id}")
                data = await self.redis.get(f"{FAILED_MESSAGE_PREFIX}{order_id}")
                if next_retry is None or data is None:
                    continue
                try:
                    if int(next_retry) > now:
                        continue
                    ready.append(FailedOrder.model_validate_json(data))
                except (ValidationError, ValueError) as e:
                    logger.error(f"Unreadable failed order {order_id}, moving to dead letter: {str(e)}")
                    await self._dead_letter(order_id, data)
        except RedisError as e:
            logger.error(f"Failed to read failed orders: {str(e)}")
            raise RepositoryError(f"Failed to read failed orders: {str(e)}", original_exception=e)

        if ready:
            logger.info(f"Found {len(ready)} failed orders ready for retry")
        return ready

    async def remove(self, order_id: str) -> None:
        try:
            async with self.redis.pipeline(transaction=True) as pipe:
                pipe.delete(
                    f"{FAILED_MESSAGE_PREFIX}{order_id}",
                    f"{FAILED_ATTEMPTS_PREFIX}{order_id}",
                    f"{FAILED_NEXT_RETRY_PREFIX}{order_id}",
                )
                pipe.srem(FAILED_MESSAGES_SET, order_id)
                await pipe.execute()
        except RedisError as e:
            logger.error(f"Failed to remove failed order {order_id}: {str(e)}")
            raise RepositoryError(f"Failed to remove failed order: {str(e)}", original_exception=e)

        logger.debug(f"Removed failed order {order_id}")

    async def get_attempt_count(self, order_id: str) -> int:
        try:
            value = await self.redis.get(f"{FAILED_ATTEMPTS_PREFIX}{order_id}")
        except RedisError as e:
            raise RepositoryError(f"Failed to read attempt count: {str(e)}", original_exception=e)
        return int(value) if value is not None else 0

    async def get_dead_letter_count(self) -> int:
        try:
            return await self.redis.scard(DEAD_LETTER_QUEUE)
        except RedisError as e:
            raise RepositoryError(f"Failed to read dead letter queue: {str(e)}", original_exception=e)

    async def _move_to_dead_letter(self, failed: FailedOrder) -> None:
        order_id = failed.message.order_id
        await self._dead_letter(order_id, failed.model_dump_json(by_alias=True))
        logger.error(
            f"Order {order_id} moved to dead letter queue after {failed.attempt_count - 1} retries"
        )

    async def _dead_letter(self, order_id: str, data: str) -> None:
        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.set(f"{DEAD_LETTER_PREFIX}{order_id}", data)
            pipe.sadd(DEAD_LETTER_QUEUE, order_id)
            await pipe.execute()
        await self.remove(order_id)


class NullFailedOrderStore(FailedOrderStore):
    """Store used when Redis is disabled; failures are only logged."""

    async def store_failed(self, message: OrderMessage, error: BaseException) -> None:
        logger.warning(f"Redis disabled, dropping failed order {message.order_id}: {str(error)}")

    async def get_ready_for_retry(self) -> List[FailedOrder]:
        return []

    async def remove(self, order_id: str) -> None:
        return None

    async def get_attempt_count(self, order_id: str) -> int:
        return 0
