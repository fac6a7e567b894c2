"""
In-Memory Job Broker

Single-process implementation of JobBrokerProtocol.

Responsibility:
    - Keep all job records in a dict guarded by an asyncio.Lock
    - Honour the full broker contract, including visibility-timeout
      recovery, reservation caps, cancellation and retention purge
    - Hand out deep-copied snapshots so callers never mutate broker state

Architecture Notes:
    - Infrastructure Layer (no external dependencies)
    - Used when BROKER_URL=memory:// (API and workers in one process)
      and by the integration tests
    - Time-based transitions (lease expiry, due delayed jobs) are applied
      lazily whenever a job is read or reserved
"""

import asyncio
import copy
import itertools
import logging
import uuid
from typing import Any, Callable, Optional

from src.domain.jobs import (
    EnqueueOptions,
    ErrorCause,
    Job,
    JobError,
    JobState,
    QueueStats,
    now_ms,
)
from src.domain.jobs.constants import DEFAULT_CRASH_ALLOWANCE, PROGRESS_MAX
from src.domain.shared.exceptions import (
    IllegalJobStateError,
    JobNotFoundException,
    LeaseLostError,
)

logger = logging.getLogger(__name__)


class InMemoryJobBroker:
    """
    Job broker backed by process memory.

    Examples:
        >>> broker = InMemoryJobBroker()
        >>> job_id = await broker.enqueue("analytics", "generate-report", {...}, options)
        >>> job = await broker.reserve("analytics", visibility_ms=30000)
        >>> await broker.complete(job.id, job.lease_token, {"ok": True})
    """

    kind = "memory"

    def __init__(
        self,
        crash_allowance: int = DEFAULT_CRASH_ALLOWANCE,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._jobs: dict[str, Job] = {}
        self._lock = asyncio.Lock()
        self._seq = itertools.count(1)
        self._crash_allowance = crash_allowance
        self._clock = clock

    # ------------------------------------------------------------------
    # Internal helpers (call with the lock held)
    # ------------------------------------------------------------------

    def _refresh(self, job: Job, now: int) -> None:
        """Apply time-based transitions: lease expiry and due delayed jobs."""
        if job.lease_expired(now):
            if job.cancel_requested:
                self._finalize_failed(
                    job,
                    JobError("Job cancelled by operator", ErrorCause.CANCELLED),
                    now,
                )
                return
            logger.info(
                f"Job {job.id}: lease expired, back to waiting "
                f"(attempts_made={job.attempts_made}, reservations={job.reservations})"
            )
            job.state = JobState.WAITING
            job.lease_token = None
            job.progress = 0
        elif job.is_due(now):
            job.state = JobState.WAITING

    def _finalize_failed(self, job: Job, error: JobError, now: int) -> None:
        job.state = JobState.FAILED
        job.error = error
        job.result = None
        job.lease_token = None
        job.cancel_requested = False
        job.finished_at = now

    def _leased(self, job_id: str, lease_token: str, now: int) -> Job:
        job = self._jobs.get(job_id)
        if job is None:
            raise LeaseLostError(job_id, "job no longer exists")
        if not job.holds_lease(lease_token, now):
            raise LeaseLostError(job_id)
        return job

    # ------------------------------------------------------------------
    # Producer side
    # ------------------------------------------------------------------

    async def enqueue(
        self, queue: str, name: str, payload: Any, options: EnqueueOptions
    ) -> str:
        async with self._lock:
            now = self._clock()
            job_id = uuid.uuid4().hex
            delayed = options.delay_ms > 0
            job = Job(
                id=job_id,
                queue=queue,
                name=name,
                payload=copy.deepcopy(payload),
                attempts_max=options.attempts_max,
                backoff=options.backoff,
                reservations_max=options.attempts_max + self._crash_allowance,
                state=JobState.DELAYED if delayed else JobState.WAITING,
                priority=options.priority,
                seq=next(self._seq),
                next_visible_at=now + options.delay_ms,
                enqueued_at=now,
            )
            self._jobs[job_id] = job
            return job_id

    # ------------------------------------------------------------------
    # Consumer side
    # ------------------------------------------------------------------

    async def reserve(self, queue: str, visibility_ms: int) -> Optional[Job]:
        async with self._lock:
            now = self._clock()
            candidates = []
            for job in self._jobs.values():
                if job.queue != queue:
                    continue
                self._refresh(job, now)
                if job.state == JobState.WAITING:
                    candidates.append(job)

            candidates.sort(key=lambda j: (j.priority, j.seq))
            for job in candidates:
                if job.reservations >= job.reservations_max:
                    logger.warning(
                        f"Job {job.id}: {job.reservations} reservations without finalizing, giving up"
                    )
                    self._finalize_failed(
                        job,
                        JobError(
                            f"Job exceeded {job.reservations_max} reservations without finalizing",
                            ErrorCause.EXHAUSTED_ATTEMPTS,
                        ),
                        now,
                    )
                    continue

                job.state = JobState.ACTIVE
                job.lease_token = uuid.uuid4().hex
                job.reservations += 1
                job.next_visible_at = now + visibility_ms
                job.progress = 0
                job.started_at = now
                job.cancel_requested = False
                return copy.deepcopy(job)

            return None

    async def heartbeat(self, job_id: str, lease_token: str, visibility_ms: int) -> None:
        async with self._lock:
            now = self._clock()
            job = self._leased(job_id, lease_token, now)
            job.next_visible_at = now + visibility_ms

    async def report_progress(self, job_id: str, lease_token: str, progress: int) -> None:
        async with self._lock:
            job = self._jobs.get(job_id)
            if job is None or not job.holds_lease(lease_token, self._clock()):
                return
            job.progress = max(job.progress, min(int(progress), PROGRESS_MAX))

    async def complete(self, job_id: str, lease_token: str, result: Any) -> None:
        async with self._lock:
            now = self._clock()
            job = self._leased(job_id, lease_token, now)
            job.result = copy.deepcopy(result)
            job.error = None
            job.progress = PROGRESS_MAX
            job.attempts_made += 1
            job.lease_token = None
            job.cancel_requested = False
            job.finished_at = now
            job.state = JobState.COMPLETED

    async def fail(
        self,
        job_id: str,
        lease_token: str,
        error: JobError,
        retry_at: Optional[int] = None,
    ) -> None:
        async with self._lock:
            now = self._clock()
            job = self._leased(job_id, lease_token, now)
            job.attempts_made += 1

            if retry_at is not None and job.attempts_made < job.attempts_max:
                job.state = JobState.DELAYED
                job.next_visible_at = retry_at
                job.progress = 0
                job.lease_token = None
                job.last_error = error
                return

            if retry_at is not None:
                error = JobError(error.message, ErrorCause.EXHAUSTED_ATTEMPTS, error.cause_class)
            self._finalize_failed(job, error, now)

    async def release(self, job_id: str, lease_token: str) -> None:
        async with self._lock:
            now = self._clock()
            job = self._leased(job_id, lease_token, now)
            job.state = JobState.WAITING
            job.lease_token = None
            job.next_visible_at = now
            job.progress = 0
            job.reservations = max(0, job.reservations - 1)

    # ------------------------------------------------------------------
    # Lookup and operator actions
    # ------------------------------------------------------------------

    async def get(self, job_id: str) -> Optional[Job]:
        async with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return None
            self._refresh(job, self._clock())
            return copy.deepcopy(job)

    async def stats(self, queue: str) -> QueueStats:
        async with self._lock:
            now = self._clock()
            counts = {state: 0 for state in JobState}
            for job in self._jobs.values():
                if job.queue != queue:
                    continue
                self._refresh(job, now)
                counts[job.state] += 1

            return QueueStats(
                queue=queue,
                waiting=counts[JobState.WAITING],
                active=counts[JobState.ACTIVE],
                completed=counts[JobState.COMPLETED],
                failed=counts[JobState.FAILED],
                delayed=counts[JobState.DELAYED],
            )

    async def cancel(self, job_id: str) -> JobState:
        async with self._lock:
            now = self._clock()
            job = self._jobs.get(job_id)
            if job is None:
                raise JobNotFoundException(job_id)
            self._refresh(job, now)

            if job.is_terminal:
                raise IllegalJobStateError(job_id, job.state.value, "cancel")

            if job.state == JobState.ACTIVE:
                job.cancel_requested = True
                return JobState.ACTIVE

            self._finalize_failed(
                job, JobError("Job cancelled by operator", ErrorCause.CANCELLED), now
            )
            return JobState.FAILED

    async def is_cancel_requested(self, job_id: str) -> bool:
        async with self._lock:
            job = self._jobs.get(job_id)
            return bool(job and job.state == JobState.ACTIVE and job.cancel_requested)

    async def retry(self, job_id: str) -> None:
        async with self._lock:
            now = self._clock()
            job = self._jobs.get(job_id)
            if job is None:
                raise JobNotFoundException(job_id)
            self._refresh(job, now)

            if job.state != JobState.FAILED:
                raise IllegalJobStateError(job_id, job.state.value, "retry")

            job.state = JobState.WAITING
            job.attempts_made = 0
            job.reservations = 0
            job.progress = 0
            job.next_visible_at = now
            job.seq = next(self._seq)
            job.error = None
            job.last_error = None
            job.result = None
            job.started_at = None
            job.finished_at = None
            job.cancel_requested = False

    async def purge_expired(
        self, completed_before: Optional[int], failed_before: Optional[int]
    ) -> int:
        async with self._lock:
            expired = [
                job.id
                for job in self._jobs.values()
                if job.finished_at is not None
                and (
                    (
                        job.state == JobState.COMPLETED
                        and completed_before is not None
                        and job.finished_at < completed_before
                    )
                    or (
                        job.state == JobState.FAILED
                        and failed_before is not None
                        and job.finished_at < failed_before
                    )
                )
            ]
            for job_id in expired:
                del self._jobs[job_id]
            return len(expired)

    async def close(self) -> None:
        async with self._lock:
            self._jobs.clear()
