"""
Persistence Infrastructure Module

Job brokers and data stores.

Subpackages:
    - memory: InMemoryJobBroker (single-process deployments and tests)
    - redis: RedisJobBroker, RedisCache, connection pool management
    - sql: async SQLAlchemy engine and PostgreSQL repositories
"""
