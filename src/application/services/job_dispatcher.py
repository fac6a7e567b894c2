"""
Job Dispatcher

Producer-side facade over the broker used by the API and other callers.

Responsibility:
    - enqueue: resolve the queue, validate the payload, fill option defaults
    - status: read a job and project it to JobStatusView
    - retry / cancel: operator actions on existing jobs
    - stats: per-queue counters for every registered queue

Architecture Notes:
    - Part of Application Layer (orchestration)
    - Depends on the QueueRegistry and JobBrokerProtocol only
    - Broker faults surface as BrokerUnavailableError; the dispatcher does
      not retry them

Business Rules:
    - Unknown queue or malformed payload -> nothing is written
    - retry is allowed only from terminal failed; the job id is kept
    - cancel of waiting/delayed finalizes immediately; of active sets a flag
"""

import logging
from typing import Any, Optional

from pydantic import BaseModel, Field

from src.application.ports.job_broker import JobBrokerProtocol
from src.application.tasks.registry import QueueRegistry
from src.domain.jobs import EnqueueOptions, Job, JobState, QueueStats, ms_to_iso
from src.domain.shared.exceptions import JobNotFoundException

logger = logging.getLogger(__name__)


class JobStatusView(BaseModel):
    """
    Read model of one job.

    Attributes:
        job_id: Job identifier
        queue / name: Queue and handler job name
        state: waiting | active | completed | failed | delayed
        progress: 0-100
        result: Handler return value (completed only)
        error: Error message (failed only)
        error_cause: handler_retryable | handler_permanent | exhausted_attempts | cancelled
        attempts_made / attempts_max: Retry budget usage
        enqueued_at / started_at / finished_at: ISO 8601 UTC timestamps
    """

    job_id: str
    queue: str
    name: str
    state: JobState
    progress: int = Field(ge=0, le=100)
    result: Any = None
    error: Optional[str] = None
    error_cause: Optional[str] = None
    attempts_made: int = 0
    attempts_max: int = 1
    cancel_requested: bool = False
    enqueued_at: Optional[str] = None
    started_at: Optional[str] = None
    finished_at: Optional[str] = None

    @classmethod
    def from_job(cls, job: Job) -> "JobStatusView":
        return cls(
            job_id=job.id,
            queue=job.queue,
            name=job.name,
            state=job.state,
            progress=job.progress,
            result=job.result,
            error=job.error.message if job.error else None,
            error_cause=job.error.cause.value if job.error else None,
            attempts_made=job.attempts_made,
            attempts_max=job.attempts_max,
            cancel_requested=job.cancel_requested,
            enqueued_at=ms_to_iso(job.enqueued_at),
            started_at=ms_to_iso(job.started_at),
            finished_at=ms_to_iso(job.finished_at),
        )


class JobDispatcher:
    """
    Dispatcher API.

    Examples:
        >>> dispatcher = JobDispatcher(registry, broker)
        >>> job_id = await dispatcher.enqueue("resume-processing", {"resume_id": "R1"})
        >>> (await dispatcher.status(job_id)).state
        <JobState.WAITING: 'waiting'>
    """

    def __init__(self, registry: QueueRegistry, broker: JobBrokerProtocol) -> None:
        self._registry = registry
        self._broker = broker

    @property
    def registry(self) -> QueueRegistry:
        return self._registry

    async def enqueue(
        self, queue: str, payload: Any, options: Optional[EnqueueOptions] = None
    ) -> str:
        """
        Enqueue a job.

        Raises:
            UnknownQueueError: Queue not registered
            InvalidJobPayloadError: Payload rejected by the queue's model
            BrokerUnavailableError: Broker I/O failed
        """
        definition = self._registry.get(queue)
        normalized = definition.validate_payload(payload)
        effective = (options or EnqueueOptions()).with_defaults(
            definition.attempts_max, definition.backoff
        )

        job_id = await self._broker.enqueue(queue, definition.job_name, normalized, effective)
        logger.info(
            f"Enqueued job {job_id} on {queue} ({definition.job_name}, "
            f"attempts_max={effective.attempts_max}, delay_ms={effective.delay_ms}, "
            f"priority={effective.priority})"
        )
        return job_id

    async def status(self, job_id: str) -> JobStatusView:
        """
        Raises:
            JobNotFoundException: Unknown job id (or purged by retention)
        """
        job = await self._broker.get(job_id)
        if job is None:
            raise JobNotFoundException(job_id)
        return JobStatusView.from_job(job)

    async def retry(self, job_id: str) -> str:
        """
        Re-queue a terminal-failed job under the same id.

        Raises:
            JobNotFoundException: Unknown job id
            IllegalJobStateError: Job is not failed
        """
        await self._broker.retry(job_id)
        logger.info(f"Job {job_id} re-queued by operator")
        return job_id

    async def cancel(self, job_id: str) -> JobState:
        """
        Cancel a job.

        Returns:
            FAILED when the job was finalized immediately, ACTIVE when the
            running handler was flagged

        Raises:
            JobNotFoundException: Unknown job id
            IllegalJobStateError: Job already terminal
        """
        state = await self._broker.cancel(job_id)
        logger.info(f"Job {job_id} cancel requested (now {state.value})")
        return state

    async def stats(self) -> list[QueueStats]:
        return [await self._broker.stats(name) for name in self._registry.names()]
