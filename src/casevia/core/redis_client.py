"""Redis client and connection management for casevia."""
from __future__ import annotations

import logging
from typing import Any

import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool

from casevia.core.settings import get_settings

logger = logging.getLogger(__name__)

# Global Redis connection pool
_redis_pool: ConnectionPool | None = None


async def get_redis_client() -> redis.Redis:
    """Get a Redis client instance with connection pooling."""
    global _redis_pool

    settings = get_settings()

    if _redis_pool is None:
        _redis_pool = ConnectionPool.from_url(
            settings.redis_url,
            db=settings.redis_db,
            decode_responses=True,
            max_connections=20,
            socket_connect_timeout=2,
        )
        logger.info(f"Created Redis connection pool: {settings.redis_url}")

    return redis.Redis(connection_pool=_redis_pool)


async def ping_redis() -> bool:
    """Return True when Redis answers PING."""
    try:
        client = await get_redis_client()
        return bool(await client.ping())
    except Exception as e:
        logger.error(f"Redis ping failed: {e}")
        return False


async def close_redis_connection() -> None:
    """Close Redis connection pool."""
    global _redis_pool

    if _redis_pool is not None:
        await _redis_pool.disconnect()
        _redis_pool = None
        logger.info("Redis connection pool closed")


async def redis_get(key: str) -> str | None:
    client = await get_redis_client()
    return await client.get(key)


async def redis_set(key: str, value: Any, ttl: int | None = None) -> bool:
    client = await get_redis_client()
    return bool(await client.set(key, value, ex=ttl))


async def redis_delete(key: str) -> int:
    client = await get_redis_client()
    return int(await client.delete(key))
