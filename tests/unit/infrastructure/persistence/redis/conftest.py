"""
Pytest Configuration for Redis Tests.

Redis is never contacted: clients and pools are patched or mocked.
"""

import pytest

import src.infrastructure.persistence.redis.connection as conn_module


@pytest.fixture(autouse=True)
def reset_singleton():
    """Reset the singleton pool before and after each test."""
    conn_module._redis_pool = None
    yield
    conn_module._redis_pool = None
