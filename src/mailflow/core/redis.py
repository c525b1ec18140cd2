"""Redis client with connection pooling.

The job queues live in Redis, so unlike an optional cache the client here is
required: a failed connection is raised to the caller.
"""

from redis.asyncio import ConnectionPool, Redis

from src.mailflow.core.config import get_settings
from src.mailflow.core.logging import get_logger

logger = get_logger(__name__)

_pool: ConnectionPool | None = None
_redis: Redis | None = None


async def get_redis() -> Redis:
    """Get the shared Redis client, connecting lazily on first use."""
    global _pool, _redis

    if _redis is not None:
        return _redis

    settings = get_settings()
    pool = ConnectionPool.from_url(
        settings.redis_url,
        max_connections=settings.redis_pool_size,
        decode_responses=True,  # Return strings instead of bytes
    )
    client = Redis(connection_pool=pool)
    try:
        await client.ping()  # type: ignore[misc]
    except Exception:
        await client.aclose()
        await pool.disconnect()
        raise

    _pool, _redis = pool, client
    logger.info("Redis connected successfully")
    return _redis


async def close_redis() -> None:
    """Close Redis connection pool. Call during shutdown."""
    global _pool, _redis

    if _redis:
        await _redis.aclose()
        logger.info("Redis connection closed")
    if _pool:
        await _pool.disconnect()

    _redis = None
    _pool = None


def reset_redis_state() -> None:
    """Reset Redis state for testing purposes."""
    global _pool, _redis
    _redis = None
    _pool = None
