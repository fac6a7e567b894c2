"""
Pytest Configuration and Shared Fixtures

Shared configuration for all test suites (unit, integration).

Fixtures:
    - redis_broker: RedisJobBroker on a live Redis under a throwaway key
      prefix (skipped unless TEST_REDIS_URL points at a reachable server)

Architecture Notes:
    - Unit tests never need external services; collaborators are mocked
    - Redis-backed tests clean up every key under their prefix

Usage:
    TEST_REDIS_URL=redis://localhost:6379/15 pytest tests/integration
"""

import logging
import os
import uuid

import pytest
import pytest_asyncio
from redis.asyncio import Redis
from redis.exceptions import RedisError

from src.infrastructure.persistence.redis import RedisJobBroker

# Configure logger for tests
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# ============================================================================
# REDIS FIXTURES
# ============================================================================


@pytest_asyncio.fixture
async def redis_broker():
    """
    RedisJobBroker bound to a unique key prefix.

    Cleanup:
        Deletes every key under the prefix and closes the client
    """
    url = os.getenv("TEST_REDIS_URL")
    if not url:
        pytest.skip("TEST_REDIS_URL not set")

    client = Redis.from_url(url, decode_responses=True)
    try:
        await client.ping()
    except RedisError as e:
        await client.aclose()
        pytest.skip(f"Redis not reachable at {url}: {e}")

    prefix = f"test:{uuid.uuid4().hex[:8]}"
    logger.info(f"Using Redis key prefix {prefix}")
    broker = RedisJobBroker(client, prefix=prefix, crash_allowance=1)

    yield broker

    keys = [key async for key in client.scan_iter(match=f"{prefix}:*")]
    if keys:
        await client.delete(*keys)
    await client.aclose()
