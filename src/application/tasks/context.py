"""
Job Context

Per-attempt context handed to handlers.

Responsibility:
    - Progress reporting (synchronous call, best-effort broker write)
    - Cancellation signal (operator cancel, lease loss, shutdown)
    - Cancellation-aware sleep
    - Structured diagnostic logging tagged with job id, queue and attempt

Architecture Notes:
    - Created by the worker for every reservation, never reused
    - progress() never suspends the handler: the broker write runs as a
      tracked background task that the worker flushes before finalizing
"""

import asyncio
import logging
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional

from src.domain.jobs import Job
from src.domain.jobs.constants import PROGRESS_MAX, PROGRESS_MIN
from src.domain.shared.exceptions import JobCancelledError

if TYPE_CHECKING:
    from src.application.ports.job_broker import JobBrokerProtocol

logger = logging.getLogger(__name__)


class CancelReason(str, Enum):
    """Why a running job was asked to stop."""

    OPERATOR = "operator"
    LEASE_LOST = "lease_lost"
    SHUTDOWN = "shutdown"


class JobContext:
    """
    Context of one job attempt.

    Examples:
        >>> async def handler(payload, ctx):
        ...     ctx.progress(10)
        ...     await ctx.sleep(1.0)  # raises JobCancelledError on cancel
        ...     ctx.raise_if_cancelled()
        ...     ctx.log("step done", rows=12)
        ...     return {"ok": True}
    """

    def __init__(self, job: Job, broker: "JobBrokerProtocol") -> None:
        self._job = job
        self._broker = broker
        self._progress = job.progress
        self._pending: set[asyncio.Task] = set()
        self._cancel_event = asyncio.Event()
        self._cancel_reason: Optional[CancelReason] = None

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    @property
    def job_id(self) -> str:
        return self._job.id

    @property
    def queue(self) -> str:
        return self._job.queue

    @property
    def name(self) -> str:
        return self._job.name

    @property
    def lease_token(self) -> Optional[str]:
        return self._job.lease_token

    @property
    def attempt(self) -> int:
        """1-based attempt number."""
        return self._job.attempts_made + 1

    @property
    def attempts_max(self) -> int:
        return self._job.attempts_max

    @property
    def is_final_attempt(self) -> bool:
        return self.attempt >= self._job.attempts_max

    # ------------------------------------------------------------------
    # Progress
    # ------------------------------------------------------------------

    @property
    def current_progress(self) -> int:
        return self._progress

    def progress(self, pct: int) -> None:
        """
        Report progress for the current attempt.

        Lower values than the last report are ignored so observers never see
        progress go backwards.

        Raises:
            ValueError: pct outside 0..100
        """
        if isinstance(pct, bool) or not isinstance(pct, (int, float)):
            raise ValueError(f"Progress must be a number, got {pct!r}")
        value = int(pct)
        if value < PROGRESS_MIN or value > PROGRESS_MAX:
            raise ValueError(f"Progress must be between 0 and 100, got {pct}")
        if value <= self._progress:
            return

        self._progress = value
        task = asyncio.get_running_loop().create_task(self._write_progress(value))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _write_progress(self, value: int) -> None:
        try:
            await self._broker.report_progress(self._job.id, self._job.lease_token, value)
            logger.debug(f"Job {self._job.id}: progress {value}%")
        except Exception as e:
            logger.warning(f"Job {self._job.id}: failed to write progress {value}%: {e}")

    async def flush_progress(self) -> None:
        """Wait for all outstanding progress writes."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    @property
    def cancel_event(self) -> asyncio.Event:
        return self._cancel_event

    @property
    def cancel_reason(self) -> Optional[CancelReason]:
        return self._cancel_reason

    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def cancel(self, reason: CancelReason) -> None:
        """Signal cancellation; the first reason wins."""
        if self._cancel_reason is None:
            self._cancel_reason = reason
            logger.info(f"Job {self._job.id}: cancellation requested ({reason.value})")
        self._cancel_event.set()

    def raise_if_cancelled(self) -> None:
        if self.cancelled():
            raise JobCancelledError(f"Job {self._job.id} cancelled ({self._cancel_reason.value})")

    async def sleep(self, seconds: float) -> None:
        """
        Sleep unless cancelled first.

        Raises:
            JobCancelledError: Cancellation signalled before or during the sleep
        """
        self.raise_if_cancelled()
        try:
            await asyncio.wait_for(self._cancel_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return
        self.raise_if_cancelled()

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    def log(self, message: str, **fields: Any) -> None:
        """Emit a structured INFO record tagged with job id, queue and attempt."""
        details = " ".join(f"{key}={value}" for key, value in fields.items())
        logger.info(
            f"[{self.queue}:{self.job_id}#{self.attempt}] {message}"
            + (f" | {details}" if details else ""),
            extra={
                "job_id": self.job_id,
                "queue": self.queue,
                "attempt": self.attempt,
                "job_fields": fields,
            },
        )
