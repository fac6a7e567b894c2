"""
SQL Infrastructure Module

PostgreSQL access through SQLAlchemy asyncio (asyncpg driver).

Exports:
    - get_engine / get_session_factory / dispose_engine
    - SqlResumeRepository, SqlMatchingRepository, SqlNotificationRepository,
      SqlJobListingRepository, SqlAnalyticsRepository
"""

from .database import dispose_engine, get_engine, get_session_factory, to_database_error
from .repositories import (
    SqlAnalyticsRepository,
    SqlJobListingRepository,
    SqlMatchingRepository,
    SqlNotificationRepository,
    SqlResumeRepository,
)

__all__ = [
    "get_engine",
    "get_session_factory",
    "dispose_engine",
    "to_database_error",
    "SqlResumeRepository",
    "SqlMatchingRepository",
    "SqlNotificationRepository",
    "SqlJobListingRepository",
    "SqlAnalyticsRepository",
]
