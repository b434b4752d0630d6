"""Unit tests for the distributed lock (process-local backend and Redis path)."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import LockError

from app.utils import distributed_lock as lock_module
from app.utils.distributed_lock import DistributedLock


@pytest.fixture
def local_lock():
    """Lock without Redis."""
    return DistributedLock(redis_client=None)


class TestLocalLock:
    """asyncio-backed named locks."""

    @pytest.mark.asyncio
    async def test_acquire_and_release(self, local_lock):
        async with local_lock.lock("settlement:tranche:1") as acquired:
            assert acquired is True

        assert "settlement:tranche:1" not in lock_module._local_registry._locks

    @pytest.mark.asyncio
    async def test_non_blocking_when_held(self, local_lock):
        async with local_lock.lock("settlement:sweep"):
            async with local_lock.lock(
                "settlement:sweep", blocking=False
            ) as acquired:
                assert acquired is False

    @pytest.mark.asyncio
    async def test_blocking_timeout(self, local_lock):
        async with local_lock.lock("settlement:seller:1"):
            async with local_lock.lock(
                "settlement:seller:1", blocking_timeout=0.05
            ) as acquired:
                assert acquired is False

    @pytest.mark.asyncio
    async def test_different_keys_do_not_block(self, local_lock):
        async with local_lock.lock("settlement:tranche:1"):
            async with local_lock.lock(
                "settlement:tranche:2", blocking=False
            ) as acquired:
                assert acquired is True

    @pytest.mark.asyncio
    async def test_serializes_holders(self, local_lock):
        order = []

        async def worker(name: str) -> None:
            async with local_lock.lock("settlement:tranche:9") as acquired:
                assert acquired
                order.append(f"{name}-in")
                await asyncio.sleep(0.01)
                order.append(f"{name}-out")

        await asyncio.gather(worker("a"), worker("b"))

        assert order in (
            ["a-in", "a-out", "b-in", "b-out"],
            ["b-in", "b-out", "a-in", "a-out"],
        )


class TestRedisLock:
    """Redis path delegates to redis.asyncio locks."""

    @pytest.mark.asyncio
    async def test_uses_prefixed_key(self):
        redis_lock = MagicMock()
        redis_lock.acquire = AsyncMock(return_value=True)
        redis_lock.release = AsyncMock()
        client = MagicMock()
        client.lock = MagicMock(return_value=redis_lock)

        async with DistributedLock(client).lock(
            "settlement:tranche:4", timeout=60
        ) as acquired:
            assert acquired is True

        assert client.lock.call_args.args == ("lock:settlement:tranche:4",)
        assert client.lock.call_args.kwargs["timeout"] == 60
        redis_lock.release.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_not_acquired_is_not_released(self):
        redis_lock = MagicMock()
        redis_lock.acquire = AsyncMock(return_value=False)
        redis_lock.release = AsyncMock()
        client = MagicMock()
        client.lock = MagicMock(return_value=redis_lock)

        async with DistributedLock(client).lock(
            "settlement:sweep", blocking=False
        ) as acquired:
            assert acquired is False

        redis_lock.release.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_expired_lock_release_is_tolerated(self):
        redis_lock = MagicMock()
        redis_lock.acquire = AsyncMock(return_value=True)
        redis_lock.release = AsyncMock(side_effect=LockError("expired"))
        client = MagicMock()
        client.lock = MagicMock(return_value=redis_lock)

        async with DistributedLock(client).lock("settlement:seller:2") as acquired:
            assert acquired is True
