"""
Redis client for the distributed cache backend (CACHE_BACKEND=redis).

The client is created lazily by redis-py: nothing connects until the first
command, so importing this module is safe with the memory backend.
"""

import logging

import redis.asyncio as redis
from backend.app.core.config import settings

logger = logging.getLogger(__name__)

redis_client = redis.from_url(
    settings.redis_url,
    decode_responses=settings.redis_decode_responses,
)


async def ping_redis() -> bool:
    """
    Test Redis connection.

    Returns:
        True if connection successful, False otherwise
    """
    try:
        return await redis_client.ping()
    except redis.RedisError:
        logger.warning("Redis ping failed", exc_info=True)
        return False


async def close_redis() -> None:
    """Release pooled connections on shutdown."""
    await redis_client.aclose()
