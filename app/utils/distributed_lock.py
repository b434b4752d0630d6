"""
Distributed lock.

Per-entity single-writer locks for settlement generation and confirmation.
Uses Redis when a client is available (multi-instance deployments) and a
process-local asyncio lock registry otherwise.
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from loguru import logger
from redis.asyncio import Redis
from redis.exceptions import LockError

from app.config.operational_constants import (
    BLOCKING_TIMEOUT_DEFAULT,
    LOCK_TIMEOUT_MEDIUM,
)
from app.config.settings import settings
from app.utils.redis_utils import get_redis_client


class _LocalLockRegistry:
    """
    asyncio locks keyed by name.

    Entries are dropped when nobody holds or waits for them, so the
    registry does not grow with the number of tranches ever settled.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    def checkout(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
            self._users[key] = 0
        self._users[key] += 1
        return lock

    def checkin(self, key: str) -> None:
        self._users[key] -= 1
        if self._users[key] == 0:
            del self._users[key]
            del self._locks[key]


_local_registry = _LocalLockRegistry()


class DistributedLock:
    """Named lock backed by Redis or by the local registry."""

    def __init__(self, redis_client: Redis | None = None) -> None:
        """
        Initialize lock.

        Args:
            redis_client: Redis client; None for process-local locks
        """
        self.redis_client = redis_client

    @asynccontextmanager
    async def lock(
        self,
        key: str,
        timeout: int = LOCK_TIMEOUT_MEDIUM,
        blocking: bool = True,
        blocking_timeout: float = BLOCKING_TIMEOUT_DEFAULT,
    ) -> AsyncIterator[bool]:
        """
        Acquire lock for the duration of the block.

        Args:
            key: Lock name
            timeout: Lock expiry in seconds (Redis only)
            blocking: Wait for the lock if it is held
            blocking_timeout: Max seconds to wait when blocking

        Yields:
            True if the lock was acquired, False otherwise
        """
        if self.redis_client is not None:
            async with self._redis_lock(
                key, timeout, blocking, blocking_timeout
            ) as acquired:
                yield acquired
        else:
            async with self._local_lock(
                key, blocking, blocking_timeout
            ) as acquired:
                yield acquired

    @asynccontextmanager
    async def _redis_lock(
        self,
        key: str,
        timeout: int,
        blocking: bool,
        blocking_timeout: float,
    ) -> AsyncIterator[bool]:
        redis_lock = self.redis_client.lock(
            f"lock:{key}",
            timeout=timeout,
            blocking=blocking,
            blocking_timeout=blocking_timeout,
        )
        acquired = await redis_lock.acquire()
        try:
            yield bool(acquired)
        finally:
            if acquired:
                try:
                    await redis_lock.release()
                except LockError:
                    # Expired while held: the protected work ran past timeout
                    logger.warning(
                        "Redis lock expired before release",
                        extra={"key": key, "timeout": timeout},
                    )

    @asynccontextmanager
    async def _local_lock(
        self,
        key: str,
        blocking: bool,
        blocking_timeout: float,
    ) -> AsyncIterator[bool]:
        lock = _local_registry.checkout(key)
        acquired = False
        try:
            if not blocking:
                if not lock.locked():
                    await lock.acquire()
                    acquired = True
            else:
                try:
                    await asyncio.wait_for(lock.acquire(), timeout=blocking_timeout)
                    acquired = True
                except TimeoutError:
                    acquired = False
            yield acquired
        finally:
            if acquired:
                lock.release()
            _local_registry.checkin(key)


def get_distributed_lock(redis_client: Redis | None = None) -> DistributedLock:
    """
    Build a lock for the configured backend.

    Args:
        redis_client: Explicit Redis client; when omitted a client is
            created if USE_REDIS_LOCKS is enabled

    Returns:
        DistributedLock instance
    """
    if redis_client is None and settings.use_redis_locks:
        redis_client = get_redis_client()
    return DistributedLock(redis_client=redis_client)
