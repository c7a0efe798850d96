"""
Redis connection for the identity assertion blacklist.

The client is built on first use, so importing the app (tests, the seed
script) never needs a reachable Redis.
"""

import logging
from typing import Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from delivery_backend.app.core.config import settings

logger = logging.getLogger("delivery.redis")

_client: Optional[redis.Redis] = None


def get_redis_client() -> redis.Redis:
    global _client
    if _client is None:
        _client = redis.from_url(
            settings.redis_url,
            decode_responses=settings.redis_decode_responses,
            socket_connect_timeout=settings.redis_connect_timeout_seconds,
        )
    return _client


async def get_redis():
    """FastAPI dependency; tests override it with an in-memory double."""
    return get_redis_client()


async def ping_redis(client=None) -> bool:
    """
    Test Redis connection (the shared client unless one is passed).

    Returns:
        True if connection successful, False otherwise
    """
    try:
        return await (client or get_redis_client()).ping()
    except RedisError as exc:
        logger.warning("Redis unreachable: %s", exc)
        return False


async def close_redis() -> None:
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None
