"""
PostgreSQL Repositories

SQL implementations of the repository ports used by the handler catalogue.

Responsibility:
    - Plain SQL through SQLAlchemy text() on the asyncpg driver
    - One transaction per repository method, so multi-row writes
      (resume status + skill links, status + error row) are atomic
    - Idempotent writes: upserts keyed on natural keys

Architecture Notes:
    - Infrastructure Layer (implements Application Layer ports)
    - No ORM models: the schema is owned by the admin backend migrations
    - JSONB parameters are passed as JSON text and CAST in SQL

Error Handling:
    - Driver / SQLAlchemy errors -> DatabaseError (see database.transaction)
"""

import json
import logging
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.application.ports.repositories import (
    JobListingRecord,
    JobMatch,
    NotificationRecord,
    ResumeRecord,
)
from src.domain.resumes import ResumeProcessingStatus
from src.infrastructure.persistence.sql.database import transaction

# Configure logger for this module
logger = logging.getLogger(__name__)


class _SqlRepository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    def _transaction(self, operation: str):
        return transaction(self._session_factory, operation)


# ============================================================================
# RESUMES
# ============================================================================


class SqlResumeRepository(_SqlRepository):
    """Resume rows, extraction results, skills and processing errors."""

    async def get_resume(self, resume_id: str) -> Optional[ResumeRecord]:
        async with self._transaction("get_resume") as session:
            row = (
                await session.execute(
                    text(
                        "SELECT id, user_id, file_path, processing_status "
                        "FROM resumes WHERE id = :id"
                    ),
                    {"id": resume_id},
                )
            ).mappings().first()

        if row is None:
            return None
        return ResumeRecord(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            file_path=row["file_path"] or "",
            processing_status=row["processing_status"] or ResumeProcessingStatus.PENDING.value,
        )

    async def mark_processing(self, resume_id: str) -> None:
        async with self._transaction("mark_processing") as session:
            await session.execute(
                text(
                    "UPDATE resumes SET processing_status = :status, error_message = NULL, "
                    "updated_at = NOW() WHERE id = :id"
                ),
                {"status": ResumeProcessingStatus.PROCESSING.value, "id": resume_id},
            )

    async def complete_extraction(
        self,
        resume_id: str,
        user_id: str,
        extracted_text: str,
        structured_data: dict[str, Any],
        skills: list[str],
    ) -> None:
        async with self._transaction("complete_extraction") as session:
            await session.execute(
                text(
                    "UPDATE resumes SET processing_status = :status, "
                    "extracted_text = :extracted_text, "
                    "structured_data = CAST(:structured_data AS JSONB), "
                    "processed_at = NOW(), updated_at = NOW() "
                    "WHERE id = :id"
                ),
                {
                    "status": ResumeProcessingStatus.COMPLETED.value,
                    "extracted_text": extracted_text,
                    "structured_data": json.dumps(structured_data),
                    "id": resume_id,
                },
            )

            for skill in skills:
                skill_id = (
                    await session.execute(
                        text(
                            "INSERT INTO skills (name, created_at, updated_at) "
                            "VALUES (:name, NOW(), NOW()) "
                            "ON CONFLICT (name) DO UPDATE SET name = EXCLUDED.name "
                            "RETURNING id"
                        ),
                        {"name": skill},
                    )
                ).scalar_one()
                await session.execute(
                    text(
                        "INSERT INTO user_skills (user_id, skill_id, created_at, updated_at) "
                        "VALUES (:user_id, :skill_id, NOW(), NOW()) "
                        "ON CONFLICT (user_id, skill_id) DO NOTHING"
                    ),
                    {"user_id": user_id, "skill_id": skill_id},
                )

        logger.info(f"Resume {resume_id}: extraction stored with {len(skills)} skill(s)")

    async def mark_failed(
        self, resume_id: str, user_id: Optional[str], error_message: str, error_type: str
    ) -> None:
        async with self._transaction("mark_failed") as session:
            await session.execute(
                text(
                    "UPDATE resumes SET processing_status = :status, error_message = :message, "
                    "updated_at = NOW() WHERE id = :id"
                ),
                {
                    "status": ResumeProcessingStatus.FAILED.value,
                    "message": error_message,
                    "id": resume_id,
                },
            )
            await session.execute(
                text(
                    "INSERT INTO resume_processing_errors "
                    "(resume_id, user_id, error_message, error_type, created_at) "
                    "VALUES (:resume_id, :user_id, :message, :error_type, NOW())"
                ),
                {
                    "resume_id": resume_id,
                    "user_id": user_id,
                    "message": error_message,
                    "error_type": error_type,
                },
            )


# ============================================================================
# MATCHING
# ============================================================================


class SqlMatchingRepository(_SqlRepository):
    """User skills, recent job listings and user/job matches."""

    async def get_user_skill_names(self, user_id: str) -> list[str]:
        async with self._transaction("get_user_skill_names") as session:
            result = await session.execute(
                text(
                    "SELECT s.name FROM user_skills us "
                    "JOIN skills s ON us.skill_id = s.id "
                    "WHERE us.user_id = :user_id"
                ),
                {"user_id": user_id},
            )
            return [name for name in result.scalars().all()]

    async def get_recent_job_listings(self, days: int = 30) -> list[JobListingRecord]:
        async with self._transaction("get_recent_job_listings") as session:
            rows = (
                await session.execute(
                    text(
                        "SELECT id, title, skills FROM jobs "
                        "WHERE date_posted > NOW() - make_interval(days => :days)"
                    ),
                    {"days": days},
                )
            ).mappings().all()

        return [
            JobListingRecord(id=str(row["id"]), title=row["title"], skills=list(row["skills"] or []))
            for row in rows
        ]

    async def upsert_matches(self, user_id: str, matches: list[JobMatch]) -> int:
        if not matches:
            return 0
        async with self._transaction("upsert_matches") as session:
            for match in matches:
                await session.execute(
                    text(
                        "INSERT INTO user_job_matches (user_id, job_id, match_score, created_at) "
                        "VALUES (:user_id, :job_id, :score, NOW()) "
                        "ON CONFLICT (user_id, job_id) DO UPDATE SET "
                        "match_score = EXCLUDED.match_score, updated_at = NOW()"
                    ),
                    {"user_id": user_id, "job_id": match.job_id, "score": match.match_score},
                )
        return len(matches)


# ============================================================================
# NOTIFICATIONS
# ============================================================================


class SqlNotificationRepository(_SqlRepository):
    """Notifications and per-recipient delivery records."""

    async def get_notification(self, notification_id: str) -> Optional[NotificationRecord]:
        async with self._transaction("get_notification") as session:
            row = (
                await session.execute(
                    text("SELECT id, title, content FROM notifications WHERE id = :id"),
                    {"id": notification_id},
                )
            ).mappings().first()

        if row is None:
            return None
        return NotificationRecord(id=str(row["id"]), title=row["title"], content=row["content"] or "")

    async def get_sent_emails(self, notification_id: str) -> set[str]:
        async with self._transaction("get_sent_emails") as session:
            result = await session.execute(
                text(
                    "SELECT email FROM notification_recipients "
                    "WHERE notification_id = :id AND status = 'sent'"
                ),
                {"id": notification_id},
            )
            return set(result.scalars().all())

    async def record_recipient(
        self,
        notification_id: str,
        user_id: Optional[str],
        email: str,
        status: str,
        error_message: Optional[str] = None,
    ) -> None:
        async with self._transaction("record_recipient") as session:
            await session.execute(
                text(
                    "INSERT INTO notification_recipients "
                    "(notification_id, user_id, email, status, error_message, sent_at, created_at) "
                    "VALUES (:notification_id, :user_id, :email, :status, :error_message, "
                    "CASE WHEN :status = 'sent' THEN NOW() END, NOW())"
                ),
                {
                    "notification_id": notification_id,
                    "user_id": user_id,
                    "email": email,
                    "status": status,
                    "error_message": error_message,
                },
            )

    async def mark_sent(self, notification_id: str, recipients_count: int) -> None:
        async with self._transaction("mark_sent") as session:
            await session.execute(
                text(
                    "UPDATE notifications SET status = 'sent', sent_at = NOW(), "
                    "recipients_count = :count WHERE id = :id"
                ),
                {"count": recipients_count, "id": notification_id},
            )


# ============================================================================
# JOB LISTINGS
# ============================================================================


class SqlJobListingRepository(_SqlRepository):
    """Job listings upserted from external feeds."""

    async def upsert_listings(self, listings: list[dict[str, Any]]) -> int:
        if not listings:
            return 0
        async with self._transaction("upsert_listings") as session:
            for listing in listings:
                await session.execute(
                    text(
                        "INSERT INTO jobs (external_id, title, organization, location, skills, "
                        "description, date_posted, created_at, updated_at) "
                        "VALUES (:external_id, :title, :organization, :location, :skills, "
                        ":description, NOW(), NOW(), NOW()) "
                        "ON CONFLICT (external_id) DO UPDATE SET "
                        "title = EXCLUDED.title, organization = EXCLUDED.organization, "
                        "location = EXCLUDED.location, skills = EXCLUDED.skills, "
                        "description = EXCLUDED.description, updated_at = NOW()"
                    ),
                    {
                        "external_id": listing["external_id"],
                        "title": listing["title"],
                        "organization": listing.get("organization"),
                        "location": listing.get("location"),
                        "skills": list(listing.get("skills") or []),
                        "description": listing.get("description"),
                    },
                )
        return len(listings)


# ============================================================================
# ANALYTICS
# ============================================================================


class SqlAnalyticsRepository(_SqlRepository):
    """Report aggregations and report persistence."""

    async def user_growth(self, start: datetime, end: datetime) -> list[dict[str, Any]]:
        async with self._transaction("user_growth") as session:
            rows = (
                await session.execute(
                    text(
                        "SELECT DATE(created_at) AS date, COUNT(*) AS new_users "
                        "FROM users WHERE created_at BETWEEN :start AND :end "
                        "GROUP BY DATE(created_at) ORDER BY date"
                    ),
                    {"start": start, "end": end},
                )
            ).mappings().all()
        return [{"date": row["date"].isoformat(), "new_users": int(row["new_users"])} for row in rows]

    async def skill_trends(
        self, start: datetime, end: datetime, limit: int = 20
    ) -> list[dict[str, Any]]:
        async with self._transaction("skill_trends") as session:
            rows = (
                await session.execute(
                    text(
                        "SELECT s.name, COUNT(us.user_id) AS user_count, "
                        "AVG(us.experience_years) AS avg_experience "
                        "FROM skills s LEFT JOIN user_skills us ON s.id = us.skill_id "
                        "WHERE us.created_at BETWEEN :start AND :end "
                        "GROUP BY s.id, s.name ORDER BY user_count DESC LIMIT :limit"
                    ),
                    {"start": start, "end": end, "limit": limit},
                )
            ).mappings().all()
        return [
            {
                "name": row["name"],
                "user_count": int(row["user_count"]),
                "avg_experience": float(row["avg_experience"]) if row["avg_experience"] is not None else None,
            }
            for row in rows
        ]

    async def job_performance(self, start: datetime, end: datetime) -> dict[str, Any]:
        async with self._transaction("job_performance") as session:
            row = (
                await session.execute(
                    text(
                        "SELECT COUNT(*) AS total_matches, AVG(match_score) AS avg_match_score, "
                        "COUNT(CASE WHEN applied = true THEN 1 END) AS applications, "
                        "COUNT(CASE WHEN viewed = true THEN 1 END) AS views "
                        "FROM user_job_matches WHERE created_at BETWEEN :start AND :end"
                    ),
                    {"start": start, "end": end},
                )
            ).mappings().one()
        return {
            "total_matches": int(row["total_matches"]),
            "avg_match_score": float(row["avg_match_score"]) if row["avg_match_score"] is not None else 0.0,
            "applications": int(row["applications"]),
            "views": int(row["views"]),
        }

    async def save_report(
        self, report_type: str, date_range: dict[str, Any], data: dict[str, Any]
    ) -> None:
        async with self._transaction("save_report") as session:
            await session.execute(
                text(
                    "INSERT INTO analytics_reports (report_type, date_range, data, created_at) "
                    "VALUES (:report_type, CAST(:date_range AS JSONB), CAST(:data AS JSONB), NOW())"
                ),
                {
                    "report_type": report_type,
                    "date_range": json.dumps(date_range),
                    "data": json.dumps(data),
                },
            )
