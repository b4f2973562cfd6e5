"""
Redis connection management.

Provides the async Redis client used for:
- Per-content processing leases (app.services.content_lock)

Celery talks to Redis through its own broker connection.
"""

import logging
from typing import Optional

from redis.asyncio import ConnectionPool, Redis

from app.core.config import settings

logger = logging.getLogger(__name__)

# Global connection pool
_redis_pool: Optional[ConnectionPool] = None
_redis_client: Optional[Redis] = None


async def init_redis() -> Redis:
    """
    Initialize Redis connection pool.

    Format: redis://localhost:6379/0
    """
    global _redis_pool, _redis_client

    if _redis_pool is None:
        logger.info("Initializing Redis connection pool")

        _redis_pool = ConnectionPool.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            max_connections=20,
            socket_connect_timeout=5,
            socket_keepalive=True
        )
        _redis_client = Redis(connection_pool=_redis_pool)

        try:
            await _redis_client.ping()
            logger.info("Redis connection successful")
        except Exception as e:
            logger.error(f"Redis connection failed: {e}")
            raise

    return _redis_client


async def get_redis() -> Redis:
    """Get Redis client instance, connecting on first use."""
    if _redis_client is None:
        return await init_redis()
    return _redis_client


async def close_redis() -> None:
    """
    Close Redis connection pool.

    Workers call this at the end of every task because each task runs its
    own event loop and pooled connections cannot cross loops.
    """
    global _redis_pool, _redis_client

    if _redis_client is not None:
        logger.info("Closing Redis connection")
        await _redis_client.aclose()
        _redis_client = None

    if _redis_pool is not None:
        await _redis_pool.disconnect()
        _redis_pool = None
