"""
Tests for JobContext.

Covers:
- Attempt numbering and final-attempt flag
- Progress validation, monotonicity and best-effort broker writes
- Cancellation signal, raise_if_cancelled and cancellation-aware sleep
- Structured log records
"""

import asyncio
import logging
from unittest.mock import AsyncMock

import pytest

from src.application.tasks import CancelReason, JobContext
from src.domain.jobs import BackoffPolicy, Job, JobState
from src.domain.shared.exceptions import JobCancelledError


@pytest.fixture
def job():
    return Job(
        id="job-1",
        queue="job-matching",
        name="match-user-jobs",
        payload={},
        attempts_max=3,
        backoff=BackoffPolicy.fixed(10),
        reservations_max=6,
        state=JobState.ACTIVE,
        lease_token="lease-1",
        attempts_made=1,
    )


@pytest.fixture
def broker():
    return AsyncMock()


def test_attempt_numbering(job, broker):
    ctx = JobContext(job, broker)

    assert ctx.attempt == 2
    assert not ctx.is_final_attempt

    job.attempts_made = 2
    assert JobContext(job, broker).is_final_attempt


@pytest.mark.asyncio
async def test_progress_writes_only_increases(job, broker):
    ctx = JobContext(job, broker)

    ctx.progress(30)
    ctx.progress(10)
    ctx.progress(30)
    ctx.progress(55)
    await ctx.flush_progress()

    assert ctx.current_progress == 55
    written = [call.args for call in broker.report_progress.await_args_list]
    assert written == [("job-1", "lease-1", 30), ("job-1", "lease-1", 55)]


@pytest.mark.asyncio
@pytest.mark.parametrize("value", [-1, 101, "50", True])
async def test_progress_rejects_invalid_values(job, broker, value):
    ctx = JobContext(job, broker)

    with pytest.raises(ValueError):
        ctx.progress(value)


@pytest.mark.asyncio
async def test_progress_write_failure_is_swallowed(job, broker, caplog):
    broker.report_progress.side_effect = RuntimeError("redis down")
    ctx = JobContext(job, broker)

    with caplog.at_level(logging.WARNING):
        ctx.progress(20)
        await ctx.flush_progress()

    assert ctx.current_progress == 20
    assert "failed to write progress" in caplog.text


@pytest.mark.asyncio
async def test_first_cancel_reason_wins(job, broker):
    ctx = JobContext(job, broker)

    ctx.cancel(CancelReason.OPERATOR)
    ctx.cancel(CancelReason.SHUTDOWN)

    assert ctx.cancelled()
    assert ctx.cancel_event.is_set()
    assert ctx.cancel_reason == CancelReason.OPERATOR
    with pytest.raises(JobCancelledError):
        ctx.raise_if_cancelled()


@pytest.mark.asyncio
async def test_sleep_returns_after_timeout(job, broker):
    ctx = JobContext(job, broker)

    await ctx.sleep(0.01)

    assert not ctx.cancelled()


@pytest.mark.asyncio
async def test_sleep_interrupted_by_cancel(job, broker):
    ctx = JobContext(job, broker)
    loop = asyncio.get_running_loop()
    loop.call_later(0.01, ctx.cancel, CancelReason.OPERATOR)

    with pytest.raises(JobCancelledError):
        await ctx.sleep(5)


def test_log_attaches_job_fields(job, broker, caplog):
    ctx = JobContext(job, broker)

    with caplog.at_level(logging.INFO, logger="src.application.tasks.context"):
        ctx.log("scored job", job_listing="J1", score=80)

    record = caplog.records[-1]
    assert record.job_id == "job-1"
    assert record.queue == "job-matching"
    assert record.attempt == 2
    assert record.job_fields == {"job_listing": "J1", "score": 80}
    assert "score=80" in record.getMessage()
