"""
Shared fixtures for handler tests.

Handlers receive a real JobContext whose broker is an AsyncMock, so progress
writes and cancellation behave as they do inside the worker.
"""

from unittest.mock import AsyncMock

import pytest

from src.application.tasks import JobContext
from src.domain.jobs import BackoffPolicy, Job, JobState


def make_job(queue: str, name: str, payload=None, attempts_made: int = 0, attempts_max: int = 3) -> Job:
    return Job(
        id=f"{name}-job",
        queue=queue,
        name=name,
        payload=payload or {},
        attempts_max=attempts_max,
        backoff=BackoffPolicy.fixed(10),
        reservations_max=attempts_max + 3,
        state=JobState.ACTIVE,
        lease_token="lease-1",
        attempts_made=attempts_made,
    )


@pytest.fixture
def make_ctx():
    """Factory: make_ctx(queue, name, attempts_made=0) -> JobContext."""

    def _make(queue: str, name: str, attempts_made: int = 0, attempts_max: int = 3) -> JobContext:
        job = make_job(queue, name, attempts_made=attempts_made, attempts_max=attempts_max)
        return JobContext(job, AsyncMock())

    return _make


@pytest.fixture
def cache():
    return AsyncMock()
