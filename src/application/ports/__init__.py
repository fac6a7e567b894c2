"""
Application Layer Ports (Interfaces)

Contains Protocol definitions for dependency inversion.
Infrastructure Layer implements these protocols.
"""

from src.application.ports.external_services import (
    CacheProtocol,
    EmailSenderProtocol,
    JobFeedProtocol,
    LLMClientProtocol,
    ObjectStoreProtocol,
    StoredObject,
)
from src.application.ports.job_broker import JobBrokerProtocol
from src.application.ports.repositories import (
    AnalyticsRepositoryProtocol,
    JobListingRecord,
    JobListingRepositoryProtocol,
    JobMatch,
    MatchingRepositoryProtocol,
    NotificationRecord,
    NotificationRepositoryProtocol,
    ResumeRecord,
    ResumeRepositoryProtocol,
)

__all__ = [
    "AnalyticsRepositoryProtocol",
    "CacheProtocol",
    "EmailSenderProtocol",
    "JobBrokerProtocol",
    "JobFeedProtocol",
    "JobListingRecord",
    "JobListingRepositoryProtocol",
    "JobMatch",
    "LLMClientProtocol",
    "MatchingRepositoryProtocol",
    "NotificationRecord",
    "NotificationRepositoryProtocol",
    "ObjectStoreProtocol",
    "ResumeRecord",
    "ResumeRepositoryProtocol",
    "StoredObject",
]
