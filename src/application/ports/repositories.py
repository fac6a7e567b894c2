"""
Repository Ports

Data access contracts the handler catalogue needs from the relational store.

Architecture Notes:
    - Repository Pattern, Protocol-based interfaces
    - Implemented by the SQL repositories in Infrastructure
      (PostgreSQL via SQLAlchemy asyncio)
    - Multi-row writes that must stay consistent (resume status and skill
      links) are single methods so the implementation can run them in one
      transaction
    - Implementations raise DatabaseError; deadlock and serialization
      failures carry retryable=True
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional, Protocol


# ============================================================================
# RECORDS
# ============================================================================


@dataclass(frozen=True)
class ResumeRecord:
    """Row of `resumes` needed for extraction."""

    id: str
    user_id: str
    file_path: str
    processing_status: str


@dataclass(frozen=True)
class JobListingRecord:
    """Candidate job listing for matching (row of `jobs`)."""

    id: str
    title: str
    skills: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class JobMatch:
    """Scored user/job pair persisted to `user_job_matches`."""

    job_id: str
    match_score: float
    matched_skills: list[str] = field(default_factory=list)
    missing_skills: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class NotificationRecord:
    """Row of `notifications`."""

    id: str
    title: str
    content: str


# ============================================================================
# PROTOCOLS
# ============================================================================


class ResumeRepositoryProtocol(Protocol):
    """Resume rows and the skills extracted from them."""

    async def get_resume(self, resume_id: str) -> Optional[ResumeRecord]:
        ...

    async def mark_processing(self, resume_id: str) -> None:
        ...

    async def complete_extraction(
        self,
        resume_id: str,
        user_id: str,
        extracted_text: str,
        structured_data: dict[str, Any],
        skills: list[str],
    ) -> None:
        """
        In one transaction: persist text and structured data, set status
        COMPLETED, get-or-create every skill and link it to the user.
        """
        ...

    async def mark_failed(
        self, resume_id: str, user_id: Optional[str], error_message: str, error_type: str
    ) -> None:
        """In one transaction: set status FAILED and insert the processing error row."""
        ...


class MatchingRepositoryProtocol(Protocol):
    """User skills, recent job listings and user/job matches."""

    async def get_user_skill_names(self, user_id: str) -> list[str]:
        ...

    async def get_recent_job_listings(self, days: int = 30) -> list[JobListingRecord]:
        ...

    async def upsert_matches(self, user_id: str, matches: list[JobMatch]) -> int:
        """Upsert keyed on (user_id, job_id); returns rows written."""
        ...


class NotificationRepositoryProtocol(Protocol):
    """Notifications and per-recipient delivery records."""

    async def get_notification(self, notification_id: str) -> Optional[NotificationRecord]:
        ...

    async def get_sent_emails(self, notification_id: str) -> set[str]:
        """Emails already recorded as sent for this notification."""
        ...

    async def record_recipient(
        self,
        notification_id: str,
        user_id: Optional[str],
        email: str,
        status: str,
        error_message: Optional[str] = None,
    ) -> None:
        ...

    async def mark_sent(self, notification_id: str, recipients_count: int) -> None:
        ...


class JobListingRepositoryProtocol(Protocol):
    """Job listings synced from external feeds."""

    async def upsert_listings(self, listings: list[dict[str, Any]]) -> int:
        """Upsert keyed on external_id; returns rows written."""
        ...


class AnalyticsRepositoryProtocol(Protocol):
    """Aggregations for analytics reports and report persistence."""

    async def user_growth(self, start: datetime, end: datetime) -> list[dict[str, Any]]:
        ...

    async def skill_trends(
        self, start: datetime, end: datetime, limit: int = 20
    ) -> list[dict[str, Any]]:
        ...

    async def job_performance(self, start: datetime, end: datetime) -> dict[str, Any]:
        ...

    async def save_report(
        self, report_type: str, date_range: dict[str, Any], data: dict[str, Any]
    ) -> None:
        ...
