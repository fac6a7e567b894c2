"""
Redis Infrastructure Module

Redis-based implementations of the job broker and the cache.

Exports:
    - RedisJobBroker: Shared job broker (Lua-scripted state transitions)
    - RedisCache: Cache invalidation
    - get_redis_client: Get asyncio Redis client with connection pooling
    - health_check: Check Redis health with PING test
    - close_connections: Close all Redis connections
"""

from .cache import NullCache, RedisCache
from .connection import close_connections, get_redis_client, health_check
from .job_broker import RedisJobBroker

__all__ = [
    "RedisJobBroker",
    "RedisCache",
    "NullCache",
    "get_redis_client",
    "health_check",
    "close_connections",
]
