"""
Identity assertion revocation using Redis.

Logout blacklists the presented assertion until it would have expired on
its own. Redis outages fail open: the request is allowed and a warning is
logged.
"""

import hashlib
import logging
import time
from typing import Optional

from redis.exceptions import RedisError

from delivery_backend.app.core.config import settings

logger = logging.getLogger("delivery.identity")

TOKEN_BLACKLIST_PREFIX = "blacklist:token:"


def _key(token: str) -> str:
    # Assertions can be long; store a digest instead of the raw token
    return f"{TOKEN_BLACKLIST_PREFIX}{hashlib.sha256(token.encode()).hexdigest()}"


def _ttl_seconds(expires_at: Optional[int]) -> int:
    if expires_at:
        remaining = int(expires_at - time.time())
        if remaining > 0:
            return remaining
    return settings.identity_token_expire_minutes * 60


async def revoke_token(redis_client, token: str, subject: str, expires_at: Optional[int] = None) -> bool:
    """
    Revoke an identity assertion by adding it to the blacklist.

    Args:
        redis_client: Redis client (from ``get_redis``)
        token: The assertion to revoke
        subject: Identity subject owning the assertion (stored for audit)
        expires_at: ``exp`` claim of the assertion, bounds the blacklist TTL

    Returns:
        True if successfully revoked, False otherwise
    """
    try:
        await redis_client.set(_key(token), subject, ex=_ttl_seconds(expires_at))
        return True
    except RedisError as exc:
        logger.warning("Could not revoke assertion for %s: %s", subject, exc)
        return False


async def is_token_revoked(redis_client, token: str) -> bool:
    """
    Check if an assertion has been revoked.

    Returns:
        True if revoked, False otherwise (including when Redis is unavailable)
    """
    try:
        exists = await redis_client.exists(_key(token))
        return exists > 0
    except RedisError as exc:
        logger.warning("Revocation check unavailable, allowing request: %s", exc)
        return False
