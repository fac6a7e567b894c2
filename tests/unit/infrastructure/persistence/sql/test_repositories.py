"""
Tests for the SQL repositories.

A MagicMock session factory stands in for async_sessionmaker; statements are
inspected as text, no database is involved.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from src.application.ports.repositories import JobMatch
from src.domain.shared.exceptions import DatabaseError
from src.infrastructure.persistence.sql import (
    SqlMatchingRepository,
    SqlNotificationRepository,
    SqlResumeRepository,
)


# ============================================================================
# FIXTURES
# ============================================================================


@pytest.fixture
def session():
    mock = MagicMock()
    mock.execute = AsyncMock()
    return mock


@pytest.fixture
def session_factory(session):
    factory = MagicMock()
    factory.return_value.__aenter__.return_value = session
    return factory


def executed_sql(session) -> list[str]:
    return [str(call.args[0]) for call in session.execute.await_args_list]


def result_with_row(row):
    result = MagicMock()
    result.mappings.return_value.first.return_value = row
    return result


# ============================================================================
# RESUMES
# ============================================================================


@pytest.mark.asyncio
async def test_get_resume_maps_row(session_factory, session):
    session.execute.return_value = result_with_row(
        {"id": 7, "user_id": 3, "file_path": None, "processing_status": None}
    )

    record = await SqlResumeRepository(session_factory).get_resume("7")

    assert record.id == "7"
    assert record.user_id == "3"
    assert record.file_path == ""
    assert record.processing_status == "PENDING"


@pytest.mark.asyncio
async def test_get_resume_missing(session_factory, session):
    session.execute.return_value = result_with_row(None)

    assert await SqlResumeRepository(session_factory).get_resume("404") is None


@pytest.mark.asyncio
async def test_mark_failed_updates_status_and_inserts_error_row(session_factory, session):
    await SqlResumeRepository(session_factory).mark_failed("R1", "U1", "quota", "AI_PROCESSING_ERROR")

    update, insert = executed_sql(session)
    assert update.startswith("UPDATE resumes")
    assert "resume_processing_errors" in insert
    params = session.execute.await_args_list[1].args[1]
    assert params == {
        "resume_id": "R1",
        "user_id": "U1",
        "message": "quota",
        "error_type": "AI_PROCESSING_ERROR",
    }


@pytest.mark.asyncio
async def test_complete_extraction_links_each_skill(session_factory, session):
    skill_result = MagicMock()
    skill_result.scalar_one.side_effect = [11, 12]
    session.execute.side_effect = [MagicMock(), skill_result, MagicMock(), skill_result, MagicMock()]

    await SqlResumeRepository(session_factory).complete_extraction(
        "R1", "U1", "text", {"skills": ["Python", "SQL"]}, ["Python", "SQL"]
    )

    statements = executed_sql(session)
    assert len(statements) == 5
    assert sum("INSERT INTO user_skills" in s for s in statements) == 2
    assert session.execute.await_args_list[4].args[1] == {"user_id": "U1", "skill_id": 12}


@pytest.mark.asyncio
async def test_driver_error_becomes_database_error(session_factory, session):
    session.execute.side_effect = OperationalError("UPDATE resumes", {}, Exception("connection lost"))

    with pytest.raises(DatabaseError) as exc_info:
        await SqlResumeRepository(session_factory).mark_processing("R1")

    assert exc_info.value.retryable


# ============================================================================
# MATCHING / NOTIFICATIONS
# ============================================================================


@pytest.mark.asyncio
async def test_upsert_matches_without_matches_skips_database(session_factory, session):
    assert await SqlMatchingRepository(session_factory).upsert_matches("U1", []) == 0

    session_factory.assert_not_called()


@pytest.mark.asyncio
async def test_upsert_matches_one_statement_per_match(session_factory, session):
    matches = [JobMatch(job_id="J1", match_score=80.0), JobMatch(job_id="J2", match_score=55.0)]

    written = await SqlMatchingRepository(session_factory).upsert_matches("U1", matches)

    assert written == 2
    assert all("ON CONFLICT (user_id, job_id)" in s for s in executed_sql(session))


@pytest.mark.asyncio
async def test_get_sent_emails_returns_set(session_factory, session):
    result = MagicMock()
    result.scalars.return_value.all.return_value = ["a@example.com", "a@example.com"]
    session.execute.return_value = result

    sent = await SqlNotificationRepository(session_factory).get_sent_emails("N1")

    assert sent == {"a@example.com"}
