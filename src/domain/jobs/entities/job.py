"""
Job Entity

One unit of work with stable identity across retries.

Responsibility:
    - Hold immutable identity (id, queue, name, payload) and the mutable
      lifecycle owned by the broker (state, counters, lease, timestamps)
    - Provide state predicates used by the brokers and the dispatcher
    - Serialize to/from plain dicts for snapshots and persistence

Architecture Notes:
    - Domain entity (dataclass), mutated only by broker implementations
    - Workers receive snapshots; mutating a snapshot has no effect on
      the broker's record
    - Timestamps are epoch milliseconds (int) to match visibility_ms arithmetic
"""

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from src.domain.jobs.value_objects.backoff_policy import BackoffPolicy


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def ms_to_iso(value: Optional[int]) -> Optional[str]:
    """Convert epoch milliseconds to ISO 8601 UTC string (None passes through)."""
    if value is None:
        return None
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc).isoformat()


class JobState(str, Enum):
    """
    Lifecycle state of a job.

    Attributes:
        WAITING: Eligible for reservation
        ACTIVE: Reserved by exactly one worker (lease held)
        COMPLETED: Terminal, result set
        FAILED: Terminal, error set
        DELAYED: Not eligible until next_visible_at (initial delay or retry wait)
    """

    WAITING = "waiting"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"
    DELAYED = "delayed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.COMPLETED, JobState.FAILED)


class ErrorCause(str, Enum):
    """Classification persisted with a failed job."""

    HANDLER_RETRYABLE = "handler_retryable"
    HANDLER_PERMANENT = "handler_permanent"
    EXHAUSTED_ATTEMPTS = "exhausted_attempts"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class JobError:
    """
    Error recorded on a failed job.

    Attributes:
        message: Human-readable message
        cause: Why the job failed
        cause_class: Exception class name that produced the failure, if any
    """

    message: str
    cause: ErrorCause
    cause_class: Optional[str] = None

    @classmethod
    def from_exception(cls, exc: BaseException, cause: ErrorCause) -> "JobError":
        message = getattr(exc, "message", None) or str(exc) or exc.__class__.__name__
        return cls(message=message, cause=cause, cause_class=exc.__class__.__name__)

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "cause": self.cause.value,
            "cause_class": self.cause_class,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "JobError":
        return cls(
            message=data["message"],
            cause=ErrorCause(data["cause"]),
            cause_class=data.get("cause_class"),
        )


@dataclass
class Job:
    """
    Job record owned by the broker.

    Attributes:
        id: Opaque identifier, stable across retries
        queue: Registered queue name
        name: Handler job name (discriminator inside the queue)
        payload: Opaque JSON-serializable value interpreted by the handler
        state: Current lifecycle state
        attempts_max: Total attempts allowed
        backoff: Retry backoff policy
        priority: Lower number = more urgent
        seq: Monotonic enqueue sequence, FIFO tie-breaker within a priority
        progress: 0-100, monotone within one attempt, reset on retry
        attempts_made: Finalized attempts (retry, complete or fail)
        reservations: Reservations handed out (includes crashed attempts)
        reservations_max: Cap on reservations before exhausted_attempts
        next_visible_at: Earliest reservation time (delayed) or lease expiry (active)
        lease_token: Token of the current reservation (active only)
        cancel_requested: Operator cancel flag for an active job
        result: Handler return value, set iff completed
        error: Failure record, set iff failed
        last_error: Cause of the most recent retried attempt (diagnostics only)
        enqueued_at / started_at / finished_at: epoch ms timestamps
    """

    id: str
    queue: str
    name: str
    payload: Any
    attempts_max: int
    backoff: BackoffPolicy
    reservations_max: int
    state: JobState = JobState.WAITING
    priority: int = 0
    seq: int = 0
    progress: int = 0
    attempts_made: int = 0
    reservations: int = 0
    next_visible_at: int = 0
    lease_token: Optional[str] = None
    cancel_requested: bool = False
    result: Any = None
    error: Optional[JobError] = None
    last_error: Optional[JobError] = None
    enqueued_at: int = field(default_factory=now_ms)
    started_at: Optional[int] = None
    finished_at: Optional[int] = None

    # ------------------------------------------------------------------
    # Predicates
    # ------------------------------------------------------------------

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    @property
    def attempt(self) -> int:
        """1-based number of the attempt currently (or next) running."""
        return self.attempts_made + 1

    def lease_expired(self, at_ms: int) -> bool:
        return self.state == JobState.ACTIVE and self.next_visible_at <= at_ms

    def is_due(self, at_ms: int) -> bool:
        return self.state == JobState.DELAYED and self.next_visible_at <= at_ms

    def holds_lease(self, lease_token: str, at_ms: int) -> bool:
        return (
            self.state == JobState.ACTIVE
            and self.lease_token == lease_token
            and self.next_visible_at > at_ms
        )

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "queue": self.queue,
            "name": self.name,
            "payload": self.payload,
            "state": self.state.value,
            "attempts_max": self.attempts_max,
            "backoff": self.backoff.to_dict(),
            "reservations_max": self.reservations_max,
            "priority": self.priority,
            "seq": self.seq,
            "progress": self.progress,
            "attempts_made": self.attempts_made,
            "reservations": self.reservations,
            "next_visible_at": self.next_visible_at,
            "lease_token": self.lease_token,
            "cancel_requested": self.cancel_requested,
            "result": self.result,
            "error": self.error.to_dict() if self.error else None,
            "last_error": self.last_error.to_dict() if self.last_error else None,
            "enqueued_at": self.enqueued_at,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Job":
        return cls(
            id=data["id"],
            queue=data["queue"],
            name=data["name"],
            payload=data.get("payload"),
            state=JobState(data["state"]),
            attempts_max=int(data["attempts_max"]),
            backoff=BackoffPolicy.from_dict(data["backoff"]),
            reservations_max=int(data["reservations_max"]),
            priority=int(data.get("priority", 0)),
            seq=int(data.get("seq", 0)),
            progress=int(data.get("progress", 0)),
            attempts_made=int(data.get("attempts_made", 0)),
            reservations=int(data.get("reservations", 0)),
            next_visible_at=int(data.get("next_visible_at", 0)),
            lease_token=data.get("lease_token"),
            cancel_requested=bool(data.get("cancel_requested", False)),
            result=data.get("result"),
            error=JobError.from_dict(data["error"]) if data.get("error") else None,
            last_error=(
                JobError.from_dict(data["last_error"]) if data.get("last_error") else None
            ),
            enqueued_at=int(data["enqueued_at"]),
            started_at=data.get("started_at"),
            finished_at=data.get("finished_at"),
        )

    def __repr__(self) -> str:
        return (
            f"Job(id={self.id!r}, queue={self.queue!r}, state={self.state.value}, "
            f"attempts={self.attempts_made}/{self.attempts_max}, progress={self.progress})"
        )
