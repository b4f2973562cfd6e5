"""
Per-content mutual exclusion for background processing.

Only one processing run may touch a given content id at a time. Runs for
different ids never contend. The production lock is a Redis lease with a TTL,
so a worker that dies mid-run frees the id once the lease expires.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from redis.asyncio import Redis
from redis.exceptions import LockError, RedisError

from app.core.config import settings
from app.core.exceptions import ContentBusy, TransientProcessingError
from app.db.redis import get_redis

logger = logging.getLogger(__name__)


def lock_key(content_id: str) -> str:
    return f"content-lock:{content_id}"


class ContentLock:
    """
    Redis lease keyed by content id.

    Usage:
    ------
    lock = ContentLock()
    async with lock.hold(content_id):
        ...   # raises ContentBusy if another run holds the lease
    """

    def __init__(self, redis: Optional[Redis] = None, ttl_seconds: Optional[int] = None):
        self._redis = redis
        self.ttl_seconds = ttl_seconds or settings.CONTENT_LOCK_TTL_SECONDS

    async def _client(self) -> Redis:
        if self._redis is None:
            self._redis = await get_redis()
        return self._redis

    @asynccontextmanager
    async def hold(self, content_id: str) -> AsyncIterator[None]:
        """
        Hold the lease for the duration of the block.

        Raises:
            ContentBusy: If another run holds the lease
            TransientProcessingError: If Redis is unreachable
        """
        try:
            client = await self._client()
            lock = client.lock(lock_key(content_id), timeout=self.ttl_seconds, blocking=False)
            acquired = await lock.acquire()
        except RedisError as e:
            raise TransientProcessingError(f"Lock backend unavailable: {e}") from e

        if not acquired:
            raise ContentBusy(f"Content {content_id} is already being processed")

        try:
            yield
        finally:
            try:
                await lock.release()
            except LockError:
                # Lease expired before the run finished
                logger.warning(f"Processing lease for {content_id} expired before release")


class InProcessContentLock:
    """
    Lock with the same interface, scoped to one process.

    Used by tests and by single-process deployments without Redis.
    """

    def __init__(self):
        self._held: set[str] = set()
        self._guard = asyncio.Lock()

    @asynccontextmanager
    async def hold(self, content_id: str) -> AsyncIterator[None]:
        async with self._guard:
            if content_id in self._held:
                raise ContentBusy(f"Content {content_id} is already being processed")
            self._held.add(content_id)
        try:
            yield
        finally:
            self._held.discard(content_id)

    def is_held(self, content_id: str) -> bool:
        return content_id in self._held
