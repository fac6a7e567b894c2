"""
End-to-end dispatch scenarios.

The real WorkerPool runs against the in-memory broker with short timings
(visibility 50 ms, poll 10 ms, backoff base 10 ms). Handlers are stubs.

Covers:
- Happy path with progress
- Retryable failures then success
- Permanent failure
- Visibility recovery and late finalize rejection
- Redelivery of an idempotent handler after a lapsed lease
- Operator cancel of an active job
- Queue stats while jobs run and after they finish
- Graceful shutdown past the drain deadline
- Unknown queue at enqueue
"""

import asyncio
from typing import Callable

import pytest
import pytest_asyncio

from src.application.services import JobDispatcher
from src.application.tasks import DispatchSettings, JobContext, WorkerPool
from src.application.tasks.bootstrap import build_registry
from src.domain.jobs import ErrorCause, JobState, constants
from src.domain.shared.exceptions import (
    LeaseLostError,
    PermanentJobError,
    RetryableJobError,
    UnknownQueueError,
)
from src.infrastructure.persistence.memory import InMemoryJobBroker

RESUME = constants.QUEUE_RESUME_PROCESSING
EMAIL = constants.QUEUE_EMAIL_NOTIFICATIONS


# ============================================================================
# HARNESS
# ============================================================================


def fast_settings(**overrides) -> DispatchSettings:
    values = dict(
        broker_url="memory://",
        default_attempts_max=3,
        default_visibility_ms=50,
        default_backoff_base_ms=10,
        poll_interval_seconds=0.01,
        cancel_poll_interval_seconds=0.01,
        cancel_grace_seconds=0.05,
        drain_timeout_seconds=1.0,
        shutdown_grace_seconds=0.1,
        retention_completed_seconds=0,
        retention_failed_seconds=0,
    )
    values.update(overrides)
    return DispatchSettings(**values)


class Harness:
    """Broker + dispatcher + pool for one scenario."""

    def __init__(self, handlers: dict, settings: DispatchSettings) -> None:
        self.settings = settings
        self.broker = InMemoryJobBroker(crash_allowance=settings.crash_allowance)
        self.registry = build_registry(settings, handlers)
        self.dispatcher = JobDispatcher(self.registry, self.broker)
        self.pool = WorkerPool(self.registry, self.broker, settings)

    async def wait_for(self, job_id: str, predicate: Callable, timeout: float = 2.0):
        deadline = asyncio.get_running_loop().time() + timeout
        while True:
            view = await self.dispatcher.status(job_id)
            if predicate(view):
                return view
            if asyncio.get_running_loop().time() > deadline:
                raise AssertionError(f"Job {job_id} stuck in {view.state.value}")
            await asyncio.sleep(0.005)

    async def wait_terminal(self, job_id: str, timeout: float = 2.0):
        return await self.wait_for(job_id, lambda v: v.state.is_terminal, timeout)

    async def queue_stats(self, queue: str):
        return next(s for s in await self.dispatcher.stats() if s.queue == queue)


@pytest_asyncio.fixture
async def run():
    """
    Factory: await run(handlers, **settings) -> started Harness.

    Pools are shut down after the test.
    """
    harnesses = []

    async def _start(handlers: dict, **overrides) -> Harness:
        harness = Harness(handlers, fast_settings(**overrides))
        await harness.pool.start()
        harnesses.append(harness)
        return harness

    yield _start

    for harness in harnesses:
        await harness.pool.shutdown(drain_timeout=0.5)


# ============================================================================
# SCENARIOS
# ============================================================================


@pytest.mark.asyncio
async def test_happy_resume_extract(run):
    seen_progress = []

    async def handler(payload, ctx):
        for pct in (10, 40, 70, 100):
            ctx.progress(pct)
            seen_progress.append(ctx.current_progress)
            await asyncio.sleep(0)
        return {"skills": ["a", "b"]}

    harness = await run({RESUME: handler})

    job_id = await harness.dispatcher.enqueue(RESUME, {"resume_id": "R1"})
    view = await harness.wait_terminal(job_id)

    assert view.state == JobState.COMPLETED
    assert view.progress == 100
    assert view.result == {"skills": ["a", "b"]}
    assert view.error is None
    assert view.attempts_made == 1
    assert seen_progress == [10, 40, 70, 100]


@pytest.mark.asyncio
async def test_retryable_twice_then_success(run):
    calls = []

    async def handler(payload, ctx):
        calls.append(ctx.attempt)
        if len(calls) < 3:
            raise RetryableJobError(f"upstream 503 on attempt {ctx.attempt}")
        return {"ok": True}

    harness = await run({RESUME: handler})

    job_id = await harness.dispatcher.enqueue(RESUME, {"resume_id": "R1"})
    view = await harness.wait_terminal(job_id)

    assert view.state == JobState.COMPLETED
    assert view.attempts_made == 3
    assert calls == [1, 2, 3]


@pytest.mark.asyncio
async def test_retryable_exhausts_attempts(run):
    async def handler(payload, ctx):
        raise RetryableJobError("still down")

    harness = await run({RESUME: handler})

    job_id = await harness.dispatcher.enqueue(RESUME, {"resume_id": "R1"})
    view = await harness.wait_terminal(job_id)

    assert view.state == JobState.FAILED
    assert view.attempts_made == 3
    assert view.error_cause == ErrorCause.EXHAUSTED_ATTEMPTS.value
    assert "still down" in view.error


@pytest.mark.asyncio
async def test_permanent_failure(run):
    async def handler(payload, ctx):
        raise PermanentJobError("resume R1 not found")

    harness = await run({RESUME: handler})

    job_id = await harness.dispatcher.enqueue(RESUME, {"resume_id": "R1"})
    view = await harness.wait_terminal(job_id)

    assert view.state == JobState.FAILED
    assert view.attempts_made == 1
    assert view.error_cause == ErrorCause.HANDLER_PERMANENT.value
    assert "resume R1 not found" in view.error
    assert view.result is None


@pytest.mark.asyncio
async def test_visibility_recovery_rejects_late_finalize():
    """
    Verifies:
    - A lease that is not renewed lapses after visibility_ms
    - Another worker re-reserves the same job id and completes it
    - The first holder's late complete is rejected
    - The lapsed attempt does not consume retry budget
    """
    handled = []

    async def handler(payload, ctx):
        handled.append(ctx.lease_token)
        return {"by": "worker-b"}

    harness = Harness({RESUME: handler}, fast_settings())
    job_id = await harness.dispatcher.enqueue(RESUME, {"resume_id": "R1"})

    # Worker A: reserves and then stalls without heartbeats
    stalled = await harness.broker.reserve(RESUME, 50)
    assert stalled.id == job_id
    await asyncio.sleep(0.08)

    await harness.pool.start()
    try:
        view = await harness.wait_terminal(job_id)
        with pytest.raises(LeaseLostError):
            await harness.broker.complete(job_id, stalled.lease_token, {"by": "worker-a"})
    finally:
        await harness.pool.shutdown(drain_timeout=0.5)

    final = await harness.dispatcher.status(job_id)
    assert view.state == JobState.COMPLETED
    assert final.result == {"by": "worker-b"}
    assert final.attempts_made == 1
    assert len(handled) == 1
    assert handled[0] != stalled.lease_token


@pytest.mark.asyncio
async def test_redelivery_after_lapsed_lease_reaches_same_state():
    """
    Verifies:
    - A worker that wrote its side effect but died before complete leaves
      the job to be delivered again once the lease lapses
    - The second run of an idempotent handler completes the job with the
      same result and leaves a single side-effect entry
    """
    matches = {}
    runs = []

    async def handler(payload, ctx):
        runs.append(ctx.job_id)
        # Upsert keyed on the resume, like the real handlers
        matches[payload["resume_id"]] = {"skills": ["python", "sql"]}
        return {"resume_id": payload["resume_id"], "matches": len(matches)}

    harness = Harness({RESUME: handler}, fast_settings())
    job_id = await harness.dispatcher.enqueue(RESUME, {"resume_id": "R1"})

    # First delivery: side effect written, worker gone before complete
    crashed = await harness.broker.reserve(RESUME, 50)
    first_result = await handler(crashed.payload, JobContext(crashed, harness.broker))
    await asyncio.sleep(0.08)

    await harness.pool.start()
    try:
        view = await harness.wait_terminal(job_id)
    finally:
        await harness.pool.shutdown(drain_timeout=0.5)

    assert runs == [job_id, job_id]
    assert view.state == JobState.COMPLETED
    assert view.result == first_result
    assert view.attempts_made == 1
    assert matches == {"R1": {"skills": ["python", "sql"]}}


@pytest.mark.asyncio
async def test_cancel_active_job(run):
    started = asyncio.Event()

    async def handler(payload, ctx):
        started.set()
        await ctx.sleep(10)
        return {"unreachable": True}

    harness = await run({RESUME: handler})

    job_id = await harness.dispatcher.enqueue(RESUME, {"resume_id": "R1"})
    await asyncio.wait_for(started.wait(), timeout=1.0)

    state = await harness.dispatcher.cancel(job_id)
    view = await harness.wait_terminal(job_id, timeout=1.0)

    assert state == JobState.ACTIVE
    assert view.state == JobState.FAILED
    assert view.error_cause == ErrorCause.CANCELLED.value
    assert view.result is None


@pytest.mark.asyncio
async def test_stats_while_running_and_after(run):
    release = asyncio.Event()

    async def handler(payload, ctx):
        await release.wait()
        return {"sent": 1}

    harness = await run(
        {EMAIL: handler}, worker_concurrency_per_queue={EMAIL: 2}
    )
    payload = {"notification_id": "N1", "recipients": [{"email": "ada@example.com"}]}
    job_ids = [await harness.dispatcher.enqueue(EMAIL, payload) for _ in range(5)]

    for _ in range(200):
        stats = await harness.queue_stats(EMAIL)
        if stats.active == 2:
            break
        await asyncio.sleep(0.005)

    assert (stats.waiting, stats.active) == (3, 2)

    release.set()
    for job_id in job_ids:
        await harness.wait_terminal(job_id)

    stats = await harness.queue_stats(EMAIL)
    assert (stats.completed, stats.waiting, stats.active) == (5, 0, 0)


@pytest.mark.asyncio
async def test_shutdown_past_drain_deadline_releases_job():
    started = asyncio.Event()

    async def handler(payload, ctx):
        started.set()
        await asyncio.sleep(10)

    harness = Harness({RESUME: handler}, fast_settings(default_visibility_ms=5_000))
    await harness.pool.start()

    job_id = await harness.dispatcher.enqueue(RESUME, {"resume_id": "R1"})
    await asyncio.wait_for(started.wait(), timeout=1.0)
    await harness.pool.shutdown(drain_timeout=0.05)

    view = await harness.dispatcher.status(job_id)
    assert view.state == JobState.WAITING
    assert view.attempts_made == 0
    assert view.error is None


@pytest.mark.asyncio
async def test_shutdown_waits_for_job_finishing_within_deadline():
    async def handler(payload, ctx):
        await asyncio.sleep(0.05)
        return {"done": True}

    harness = Harness({RESUME: handler}, fast_settings())
    await harness.pool.start()

    job_id = await harness.dispatcher.enqueue(RESUME, {"resume_id": "R1"})
    await harness.wait_for(job_id, lambda v: v.state == JobState.ACTIVE)
    await harness.pool.shutdown(drain_timeout=1.0)

    view = await harness.dispatcher.status(job_id)
    assert view.state == JobState.COMPLETED


@pytest.mark.asyncio
async def test_unknown_queue_writes_nothing(run):
    async def handler(payload, ctx):
        return None

    harness = await run({RESUME: handler})

    with pytest.raises(UnknownQueueError):
        await harness.dispatcher.enqueue("video-transcoding", {"id": 1})

    stats = await harness.queue_stats(RESUME)
    assert (stats.waiting, stats.active, stats.completed, stats.failed, stats.delayed) == (0, 0, 0, 0, 0)
