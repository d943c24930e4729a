"""
Per-order locks so that one order is never enriched twice concurrently.
"""
import asyncio
import time
import uuid
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict

from redis.asyncio import Redis
from redis.exceptions import RedisError

from order_worker.core.exceptions import LockAcquisitionError
from order_worker.core.logging import get_logger

logger = get_logger(__name__)

LOCK_PREFIX = "order-lock:"

# Deletes the key only if it still holds our token
RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


class DistributedLock(ABC):
    """Interface for keyed mutual exclusion."""

    @abstractmethod
    def hold(self, key: str) -> "AsyncIterator[None]":
        """
        Async context manager holding the lock for ``key``.

        Raises:
            LockAcquisitionError: If the lock cannot be acquired in time
        """

    @abstractmethod
    async def is_locked(self, key: str) -> bool:
        pass


class RedisDistributedLock(DistributedLock):
    """
    Redis lock using SET NX PX with a random token.

    The lease bounds how long a crashed holder can block others. Release only
    deletes the key when it still carries the holder's token.
    """

    def __init__(
        self,
        redis_client: Redis,
        wait_seconds: float = 10.0,
        lease_seconds: float = 30.0,
        poll_interval: float = 0.1,
    ):
        self.redis = redis_client
        self.wait_seconds = wait_seconds
        self.lease_seconds = lease_seconds
        self.poll_interval = poll_interval

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock_key = f"{LOCK_PREFIX}{key}"
        token = await self._acquire(lock_key)
        try:
            yield
        finally:
            await self._release(lock_key, token)

    async def _acquire(self, lock_key: str) -> str:
        token = uuid.uuid4().hex
        deadline = time.monotonic() + self.wait_seconds
        lease_ms = int(self.lease_seconds * 1000)

        while True:
            acquired = await self.redis.set(lock_key, token, nx=True, px=lease_ms)
            if acquired:
                logger.debug(f"Acquired lock: {lock_key}")
                return token
            if time.monotonic() >= deadline:
                logger.warning(f"Could not acquire lock {lock_key} within {self.wait_seconds}s")
                raise LockAcquisitionError(lock_key, self.wait_seconds)
            await asyncio.sleep(self.poll_interval)

    async def _release(self, lock_key: str, token: str) -> None:
        try:
            released = await self.redis.eval(RELEASE_SCRIPT, 1, lock_key, token)
        except RedisError as e:
            logger.error(f"Failed to release lock {lock_key}: {str(e)}")
            return
        if released:
            logger.debug(f"Released lock: {lock_key}")
        else:
            logger.warning(f"Lock {lock_key} expired before release")

    async def is_locked(self, key: str) -> bool:
        return bool(await self.redis.exists(f"{LOCK_PREFIX}{key}"))


class LocalLock(DistributedLock):
    """In-process lock used when Redis is disabled."""

    def __init__(self, wait_seconds: float = 10.0):
        self.wait_seconds = wait_seconds
        self._locks: Dict[str, asyncio.Lock] = {}
        # Holders plus waiters per key, so idle locks can be dropped
        self._users: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            try:
                await asyncio.wait_for(lock.acquire(), timeout=self.wait_seconds)
            except asyncio.TimeoutError:
                raise LockAcquisitionError(f"{LOCK_PREFIX}{key}", self.wait_seconds)
            try:
                yield
            finally:
                lock.release()
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    async def is_locked(self, key: str) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()
