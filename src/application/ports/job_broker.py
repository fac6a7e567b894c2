"""
JobBroker Port

Contract between the dispatch core and the store that owns job records.

Responsibility:
    - Durable FIFO-per-(queue, priority) storage of jobs
    - At-least-once delivery with a visibility timeout (lease)
    - Atomic state transitions (reserve, finalize, retry, cancel)
    - Cross-queue lookup by id and per-queue stats

Architecture Notes:
    - Protocol-based interface (structural typing)
    - Implemented by InMemoryJobBroker (single process) and
      RedisJobBroker (shared across processes)
    - Every lease-scoped write carries the lease token handed out by
      reserve(); a stale token raises LeaseLostError
    - All methods raise BrokerUnavailableError when the backing store is
      unreachable
"""

from typing import Any, Optional, Protocol

from src.domain.jobs import EnqueueOptions, Job, JobError, JobState, QueueStats


class JobBrokerProtocol(Protocol):
    """
    Protocol for job brokers.

    Lifecycle owned by the broker:
        enqueue -> waiting | delayed
        reserve -> active (lease token issued, reservations += 1)
        complete -> completed (attempts_made += 1)
        fail(retry_at) -> delayed (attempts_made += 1, progress = 0)
        fail() -> failed (attempts_made += 1)
        release -> waiting (attempts_made unchanged)
        lease expiry -> waiting on next read (attempts_made unchanged)
        reservations >= reservations_max at reserve -> failed/exhausted_attempts
    """

    async def enqueue(
        self, queue: str, name: str, payload: Any, options: EnqueueOptions
    ) -> str:
        """
        Persist a new job and return its id.

        Args:
            queue: Registered queue name
            name: Handler job name
            payload: JSON-serializable payload
            options: Options with attempts_max and backoff already resolved

        Returns:
            Opaque job id
        """
        ...

    async def reserve(self, queue: str, visibility_ms: int) -> Optional[Job]:
        """
        Atomically reserve the most urgent eligible job of a queue.

        Returns:
            Snapshot of the reserved job (state=active, lease_token set),
            or None if nothing is eligible
        """
        ...

    async def heartbeat(self, job_id: str, lease_token: str, visibility_ms: int) -> None:
        """
        Extend the lease to now + visibility_ms.

        Raises:
            LeaseLostError: Lease expired, reassigned, or job finalized
        """
        ...

    async def report_progress(self, job_id: str, lease_token: str, progress: int) -> None:
        """Best-effort progress write; keeps max(current, progress); ignores stale leases."""
        ...

    async def complete(self, job_id: str, lease_token: str, result: Any) -> None:
        """
        Finalize an active job as completed with its result.

        Raises:
            LeaseLostError: Caller no longer holds the lease
        """
        ...

    async def fail(
        self,
        job_id: str,
        lease_token: str,
        error: JobError,
        retry_at: Optional[int] = None,
    ) -> None:
        """
        Finalize an attempt as failed.

        Args:
            retry_at: Epoch ms of the next attempt; None finalizes as failed

        Raises:
            LeaseLostError: Caller no longer holds the lease
        """
        ...

    async def release(self, job_id: str, lease_token: str) -> None:
        """
        Return an active job to waiting without consuming an attempt.

        Raises:
            LeaseLostError: Caller no longer holds the lease
        """
        ...

    async def get(self, job_id: str) -> Optional[Job]:
        """Snapshot of a job by id across all queues, or None."""
        ...

    async def stats(self, queue: str) -> QueueStats:
        """Job counts by state for one queue."""
        ...

    async def cancel(self, job_id: str) -> JobState:
        """
        Cancel a job.

        waiting/delayed jobs are finalized as failed with cause cancelled;
        active jobs get their cancel flag set and keep running until the
        worker observes it.

        Returns:
            The job state after the call (failed or active)

        Raises:
            JobNotFoundException: Unknown id
            IllegalJobStateError: Job already terminal
        """
        ...

    async def is_cancel_requested(self, job_id: str) -> bool:
        """Whether an operator cancel is pending for an active job."""
        ...

    async def retry(self, job_id: str) -> None:
        """
        Move a failed job back to waiting with counters reset.

        Raises:
            JobNotFoundException: Unknown id
            IllegalJobStateError: Job is not failed
        """
        ...

    async def purge_expired(self, completed_before: Optional[int], failed_before: Optional[int]) -> int:
        """
        Delete terminal jobs finished before the given epoch ms cut-offs.

        A None cut-off disables purging for that state.

        Returns:
            Number of purged jobs
        """
        ...

    async def close(self) -> None:
        """Release broker resources."""
        ...
