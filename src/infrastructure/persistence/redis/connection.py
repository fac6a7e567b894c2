"""
Redis Connection Pool Management.

Provides a shared asyncio connection pool for Redis with health checks and
retry logic. Used by RedisJobBroker and RedisCache.

Responsibility:
    - Manage the redis.asyncio connection pool (max 10 connections)
    - Health check with PING
    - Retry logic with exponential backoff
    - Singleton pool per process, guarded by an asyncio.Lock

Architecture Notes:
    - Infrastructure Layer (external dependency on Redis)
    - Singleton pattern for connection pool reuse
    - Environment-based configuration, URL takes precedence over host/port

Business Rules:
    - Max connections: 10 (configurable via REDIS_MAX_CONNECTIONS)
    - Connection timeout: 5s (configurable via REDIS_TIMEOUT)
    - Retry attempts: 3 (configurable via REDIS_RETRY_ATTEMPTS)
    - Exponential backoff: 1s, 2s, 4s (base=1s, multiplier=2)
    - Decode responses: True (return strings not bytes)

Error Handling:
    - ConnectionError / TimeoutError: Log and retry with exponential backoff
    - RedisError: Raised after all retries exhausted
    - Health check failure: Return False (don't raise exception)

Examples:
    >>> client = await get_redis_client("redis://localhost:6379/0")
    >>> await client.set("key", "value")
    >>>
    >>> if await health_check():
    ...     print("Redis is healthy")
    >>>
    >>> await close_connections()
"""

import asyncio
import logging
import os
from typing import Optional

from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import ConnectionError, RedisError, TimeoutError

# Configure logger for this module
logger = logging.getLogger(__name__)

# Singleton connection pool
_redis_pool: Optional[ConnectionPool] = None
_pool_lock = asyncio.Lock()


async def _get_pool(url: Optional[str], max_connections: int, timeout: int) -> ConnectionPool:
    global _redis_pool

    async with _pool_lock:
        if _redis_pool is None:
            if url:
                logger.info(
                    f"Creating Redis connection pool: url={url}, "
                    f"max_connections={max_connections}, timeout={timeout}s"
                )
                _redis_pool = ConnectionPool.from_url(
                    url,
                    max_connections=max_connections,
                    socket_timeout=timeout,
                    socket_connect_timeout=timeout,
                    decode_responses=True,
                )
            else:
                host = os.getenv("REDIS_HOST", "localhost")
                port = int(os.getenv("REDIS_PORT", "6379"))
                logger.info(
                    f"Creating Redis connection pool: host={host}, port={port}, "
                    f"max_connections={max_connections}, timeout={timeout}s"
                )
                _redis_pool = ConnectionPool(
                    host=host,
                    port=port,
                    db=0,
                    max_connections=max_connections,
                    socket_timeout=timeout,
                    socket_connect_timeout=timeout,
                    socket_keepalive=True,
                    decode_responses=True,
                )
        return _redis_pool


async def get_redis_client(
    url: Optional[str] = None,
    max_connections: Optional[int] = None,
    timeout: Optional[int] = None,
) -> Redis:
    """
    Get an asyncio Redis client backed by the shared connection pool.

    Args:
        url: Redis URL (redis://, rediss://, unix://). Falls back to
            REDIS_HOST / REDIS_PORT when omitted
        max_connections: Max pool size (default from env: REDIS_MAX_CONNECTIONS or 10)
        timeout: Socket timeout in seconds (default from env: REDIS_TIMEOUT or 5)

    Returns:
        Redis client instance with connection pool

    Raises:
        RedisError: If PING fails after all retry attempts
    """
    max_conn = max_connections or int(os.getenv("REDIS_MAX_CONNECTIONS", "10"))
    conn_timeout = timeout or int(os.getenv("REDIS_TIMEOUT", "5"))

    pool = await _get_pool(url, max_conn, conn_timeout)
    client = Redis(connection_pool=pool)

    retry_attempts = int(os.getenv("REDIS_RETRY_ATTEMPTS", "3"))
    backoff_base = 1
    last_error: Optional[Exception] = None

    for attempt in range(retry_attempts):
        try:
            await client.ping()
            logger.debug(f"Redis connection established (attempt {attempt + 1})")
            return client

        except (ConnectionError, TimeoutError) as e:
            last_error = e
            if attempt < retry_attempts - 1:
                delay = backoff_base * (2**attempt)
                logger.warning(
                    f"Redis connection failed (attempt {attempt + 1}/{retry_attempts}): {e}. "
                    f"Retrying in {delay}s..."
                )
                await asyncio.sleep(delay)
            else:
                logger.error(f"Redis connection failed after {retry_attempts} attempts: {e}")

    raise RedisError(
        f"Failed to connect to Redis after {retry_attempts} attempts. "
        f"Last error: {last_error}"
    )


async def health_check() -> bool:
    """
    Check Redis health with PING.

    Returns:
        True if the pool exists and Redis answers PING, False otherwise
    """
    if _redis_pool is None:
        logger.debug("Redis health check skipped: pool not initialized")
        return False

    try:
        response = await Redis(connection_pool=_redis_pool).ping()
        if response:
            logger.debug("Redis health check: OK")
            return True
        logger.warning("Redis health check: PING returned False")
        return False

    except RedisError as e:
        logger.warning(f"Redis health check failed: {e}")
        return False


async def close_connections() -> None:
    """Close the connection pool and reset the singleton (idempotent)."""
    global _redis_pool

    async with _pool_lock:
        if _redis_pool is None:
            logger.debug("Redis connection pool already closed or not initialized")
            return

        logger.info("Closing Redis connection pool")
        try:
            await _redis_pool.disconnect()
        except RedisError as e:
            logger.error(f"Error closing Redis connection pool: {e}")
        finally:
            _redis_pool = None
            logger.info("Redis connection pool closed")
