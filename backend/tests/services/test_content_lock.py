"""
Tests for per-content processing leases.
"""

from unittest.mock import AsyncMock, Mock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError, LockError

from app.core.exceptions import ContentBusy, TransientProcessingError
from app.services.content_lock import ContentLock, InProcessContentLock, lock_key


@pytest.fixture
def redis_lock():
    lock = Mock()
    lock.acquire = AsyncMock(return_value=True)
    lock.release = AsyncMock()
    return lock


@pytest.fixture
def redis_client(redis_lock):
    client = Mock()
    client.lock.return_value = redis_lock
    return client


class TestContentLock:

    async def test_acquires_and_releases(self, redis_client, redis_lock):
        lock = ContentLock(redis=redis_client, ttl_seconds=30)

        async with lock.hold("c-1"):
            redis_lock.release.assert_not_called()

        redis_client.lock.assert_called_once_with(lock_key("c-1"), timeout=30, blocking=False)
        redis_lock.release.assert_awaited_once()

    async def test_released_when_block_raises(self, redis_client, redis_lock):
        lock = ContentLock(redis=redis_client)

        with pytest.raises(ValueError):
            async with lock.hold("c-1"):
                raise ValueError("boom")

        redis_lock.release.assert_awaited_once()

    async def test_busy(self, redis_client, redis_lock):
        redis_lock.acquire.return_value = False
        lock = ContentLock(redis=redis_client)

        with pytest.raises(ContentBusy):
            async with lock.hold("c-1"):
                pass
        redis_lock.release.assert_not_called()

    async def test_backend_unavailable(self, redis_client, redis_lock):
        redis_lock.acquire.side_effect = RedisConnectionError("refused")
        lock = ContentLock(redis=redis_client)

        with pytest.raises(TransientProcessingError):
            async with lock.hold("c-1"):
                pass

    async def test_expired_lease_is_not_an_error(self, redis_client, redis_lock):
        redis_lock.release.side_effect = LockError("not owned")
        lock = ContentLock(redis=redis_client)

        async with lock.hold("c-1"):
            pass

    def test_default_ttl(self):
        assert ContentLock(redis=Mock()).ttl_seconds == 15 * 60


class TestInProcessContentLock:

    async def test_same_id_is_exclusive(self):
        lock = InProcessContentLock()

        async with lock.hold("c-1"):
            assert lock.is_held("c-1")
            with pytest.raises(ContentBusy):
                async with lock.hold("c-1"):
                    pass

        assert not lock.is_held("c-1")

    async def test_different_ids_do_not_contend(self):
        lock = InProcessContentLock()

        async with lock.hold("c-1"):
            async with lock.hold("c-2"):
                assert lock.is_held("c-1") and lock.is_held("c-2")
