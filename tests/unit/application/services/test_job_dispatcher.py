"""
Tests for JobDispatcher.

Covers:
- enqueue: queue lookup, payload validation, option defaults, job name
- status / retry / cancel / stats delegation
- Error propagation (unknown queue, invalid payload, not found, broker down)
"""

from unittest.mock import AsyncMock

import pytest
from pydantic import BaseModel

from src.application.services import JobDispatcher, JobStatusView
from src.application.tasks import QueueDefinition, QueueRegistry
from src.domain.jobs import (
    BackoffPolicy,
    EnqueueOptions,
    ErrorCause,
    Job,
    JobError,
    JobState,
    QueueStats,
)
from src.domain.shared.exceptions import (
    BrokerUnavailableError,
    InvalidJobPayloadError,
    JobNotFoundException,
    UnknownQueueError,
)


class SyncPayload(BaseModel):
    source: str


@pytest.fixture
def registry():
    registry = QueueRegistry()
    registry.register(
        QueueDefinition(
            name="data-sync",
            job_name="sync-jobs",
            handler=AsyncMock(),
            attempts_max=4,
            backoff=BackoffPolicy.exponential(50),
            payload_model=SyncPayload,
        )
    )
    registry.register(
        QueueDefinition(
            name="analytics",
            job_name="generate-report",
            handler=AsyncMock(),
            attempts_max=3,
            backoff=BackoffPolicy.fixed(10),
        )
    )
    return registry.freeze()


@pytest.fixture
def broker():
    mock = AsyncMock()
    mock.enqueue.return_value = "job-1"
    return mock


@pytest.fixture
def dispatcher(registry, broker):
    return JobDispatcher(registry, broker)


@pytest.mark.asyncio
async def test_enqueue_fills_defaults_and_uses_job_name(dispatcher, broker):
    job_id = await dispatcher.enqueue("data-sync", {"source": "feed", "noise": 1})

    assert job_id == "job-1"
    queue, name, payload, options = broker.enqueue.await_args.args
    assert (queue, name, payload) == ("data-sync", "sync-jobs", {"source": "feed"})
    assert options.attempts_max == 4
    assert options.backoff == BackoffPolicy.exponential(50)


@pytest.mark.asyncio
async def test_enqueue_keeps_caller_options(dispatcher, broker):
    await dispatcher.enqueue(
        "analytics", {"any": "payload"}, EnqueueOptions(attempts_max=1, delay_ms=500, priority=2)
    )

    options = broker.enqueue.await_args.args[3]
    assert options.attempts_max == 1
    assert options.delay_ms == 500
    assert options.priority == 2


@pytest.mark.asyncio
async def test_enqueue_unknown_queue_writes_nothing(dispatcher, broker):
    with pytest.raises(UnknownQueueError):
        await dispatcher.enqueue("video-encoding", {})

    broker.enqueue.assert_not_awaited()


@pytest.mark.asyncio
async def test_enqueue_invalid_payload_writes_nothing(dispatcher, broker):
    with pytest.raises(InvalidJobPayloadError):
        await dispatcher.enqueue("data-sync", {"src": "typo"})

    broker.enqueue.assert_not_awaited()


@pytest.mark.asyncio
async def test_enqueue_propagates_broker_unavailable(dispatcher, broker):
    broker.enqueue.side_effect = BrokerUnavailableError("connection refused")

    with pytest.raises(BrokerUnavailableError):
        await dispatcher.enqueue("data-sync", {"source": "feed"})


@pytest.mark.asyncio
async def test_status_maps_job_to_view(dispatcher, broker):
    broker.get.return_value = Job(
        id="job-9",
        queue="data-sync",
        name="sync-jobs",
        payload={},
        attempts_max=3,
        backoff=BackoffPolicy.fixed(10),
        reservations_max=6,
        state=JobState.FAILED,
        attempts_made=1,
        error=JobError("bad source", ErrorCause.HANDLER_PERMANENT),
        enqueued_at=0,
        finished_at=1_000,
    )

    view = await dispatcher.status("job-9")

    assert isinstance(view, JobStatusView)
    assert view.state == JobState.FAILED
    assert view.error == "bad source"
    assert view.error_cause == "handler_permanent"
    assert view.enqueued_at == "1970-01-01T00:00:00+00:00"
    assert view.finished_at == "1970-01-01T00:00:01+00:00"
    assert view.started_at is None


@pytest.mark.asyncio
async def test_status_unknown_job_raises(dispatcher, broker):
    broker.get.return_value = None

    with pytest.raises(JobNotFoundException):
        await dispatcher.status("missing")


@pytest.mark.asyncio
async def test_retry_returns_same_id(dispatcher, broker):
    assert await dispatcher.retry("job-3") == "job-3"
    broker.retry.assert_awaited_once_with("job-3")


@pytest.mark.asyncio
async def test_cancel_returns_broker_state(dispatcher, broker):
    broker.cancel.return_value = JobState.ACTIVE

    assert await dispatcher.cancel("job-3") == JobState.ACTIVE


@pytest.mark.asyncio
async def test_stats_covers_every_registered_queue(dispatcher, broker):
    broker.stats.side_effect = lambda queue: QueueStats(queue=queue, waiting=1)

    stats = await dispatcher.stats()

    assert [s.queue for s in stats] == ["data-sync", "analytics"]
    assert all(s.waiting == 1 for s in stats)
