"""
Redis Cache

Invalidation side of the read-through cache used by the API.

Business Rules:
    - Handlers invalidate only after their database write committed
    - Invalidation is best-effort: a Redis fault is logged and swallowed,
      stale entries expire on their own TTL

Examples:
    >>> cache = RedisCache(client)
    >>> await cache.invalidate("user:42:skills", "user:42:matches")
"""

import logging

from redis.asyncio import Redis
from redis.exceptions import RedisError

# Configure logger for this module
logger = logging.getLogger(__name__)


class RedisCache:
    """CacheProtocol implementation on redis.asyncio."""

    def __init__(self, client: Redis) -> None:
        self._client = client

    async def invalidate(self, *keys: str) -> None:
        if not keys:
            return
        try:
            removed = await self._client.delete(*keys)
            logger.debug(f"Cache invalidated {removed}/{len(keys)} key(s): {', '.join(keys)}")
        except RedisError as e:
            logger.warning(f"Cache invalidation failed for {', '.join(keys)}: {e}")


class NullCache:
    """Cache used with the in-memory broker: nothing is cached, nothing to invalidate."""

    async def invalidate(self, *keys: str) -> None:
        logger.debug(f"Cache disabled, skipping invalidation of {len(keys)} key(s)")
