"""
Domain Layer Exceptions

This module defines the exception hierarchy shared by every layer of the
work-dispatch backend. All domain-specific exceptions inherit from
DomainException so the API layer can map them to HTTP responses in one place.

Responsibility:
    - Validation errors raised synchronously by the dispatcher
      (unknown queue, malformed payload, illegal state transition)
    - Lookup errors (unknown job id)
    - Broker errors (broker unreachable, lease lost)
    - Handler classification errors (retryable vs permanent vs cancelled)
    - Dependency errors raised by infrastructure adapters, carrying the
      retryable flag the worker uses to pick a broker transition

Architecture Notes:
    - Part of Shared Domain (used across all layers)
    - Infrastructure adapters raise DependencyError subclasses, never raw
      library exceptions, so handlers do not import redis/httpx/sqlalchemy
"""

from typing import Any, Optional


class DomainException(Exception):
    """
    Base exception for all domain layer errors.

    Usage:
        - Catch this in Application Layer to handle all domain errors
        - API Layer converts to appropriate HTTP status codes

    Examples:
        >>> raise DomainException("Business rule violation")
    """

    def __init__(self, message: str) -> None:
        """
        Initialize domain exception with error message.

        Args:
            message: Human-readable error description
        """
        self.message = message
        super().__init__(message)

    def __str__(self) -> str:
        """String representation of the exception."""
        return f"{self.__class__.__name__}: {self.message}"

    def __repr__(self) -> str:
        """Developer-friendly representation."""
        return f"{self.__class__.__name__}(message={self.message!r})"


# ============================================================================
# VALIDATION ERRORS (surfaced synchronously, never retried)
# ============================================================================


class UnknownQueueError(DomainException):
    """
    Raised when a queue name is not present in the queue registry.

    Examples:
        >>> raise UnknownQueueError("video-encoding")
    """

    def __init__(self, queue: str) -> None:
        self.queue = queue
        super().__init__(f"Queue '{queue}' is not registered")


class InvalidJobPayloadError(DomainException):
    """
    Raised when a payload does not match the payload model of its queue.

    Attributes:
        queue: Target queue name
        errors: Field-level validation errors (pydantic error dicts)
    """

    def __init__(
        self, queue: str, message: str, errors: Optional[list[dict[str, Any]]] = None
    ) -> None:
        self.queue = queue
        self.errors = errors or []
        super().__init__(f"Invalid payload for queue '{queue}': {message}")


class IllegalJobStateError(DomainException):
    """
    Raised when an operation is not permitted from the job's current state.

    Examples:
        >>> raise IllegalJobStateError("job-1", "completed", "retry")
    """

    def __init__(self, job_id: str, state: str, operation: str) -> None:
        self.job_id = job_id
        self.state = state
        self.operation = operation
        super().__init__(f"Cannot {operation} job {job_id} in state '{state}'")


class JobNotFoundException(DomainException):
    """
    Raised when a job id is unknown to the broker.

    Can happen when:
        - Job never existed
        - Job was purged by the retention sweeper
        - In-process broker was restarted
    """

    def __init__(self, job_id: str) -> None:
        self.job_id = job_id
        super().__init__(f"Job {job_id} not found or expired")


# ============================================================================
# BROKER ERRORS
# ============================================================================


class BrokerUnavailableError(DomainException):
    """
    Raised when the broker cannot be reached (connection refused, timeout).

    Enqueue surfaces this to the caller; it is not retried internally.
    """

    def __init__(self, message: str, original_error: Optional[Exception] = None) -> None:
        self.original_error = original_error
        super().__init__(message)


class LeaseLostError(DomainException):
    """
    Raised by lease-scoped broker writes when the caller no longer holds the lease.

    Either the visibility timeout elapsed, another worker reserved the job,
    or the job was finalized by someone else. The worker treats it as
    cancellation and abandons all writes for the attempt.
    """

    def __init__(self, job_id: str, reason: str = "lease expired or taken over") -> None:
        self.job_id = job_id
        self.reason = reason
        super().__init__(f"Lease lost for job {job_id}: {reason}")


# ============================================================================
# HANDLER CLASSIFICATION
# ============================================================================


class JobHandlerError(DomainException):
    """Base class for errors raised by handlers to classify a failed attempt."""

    retryable: bool = False


class RetryableJobError(JobHandlerError):
    """
    Transient fault inside a handler (network, upstream 5xx, DB deadlock).

    Consumes retry budget; the worker schedules the next attempt with backoff.
    """

    retryable = True


class PermanentJobError(JobHandlerError):
    """
    Non-retryable fault or bad payload.

    The worker finalizes the job as failed immediately.
    """

    retryable = False


class JobCancelledError(JobHandlerError):
    """Raised inside a handler when it observes its cancellation signal."""

    retryable = False

    def __init__(self, message: str = "Job cancelled") -> None:
        super().__init__(message)


# ============================================================================
# EXTERNAL DEPENDENCY ERRORS (raised by infrastructure adapters)
# ============================================================================


class DependencyError(DomainException):
    """
    Fault reported by an external collaborator adapter.

    Attributes:
        retryable: Whether a later attempt may succeed
        code: Machine-readable error code (e.g. "rate_limit_exceeded", "not_found")
        status_code: Upstream status code, when there is one
    """

    def __init__(
        self,
        message: str,
        retryable: bool,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        self.retryable = retryable
        self.code = code
        self.status_code = status_code
        super().__init__(message)


class ObjectStoreError(DependencyError):
    """Object store fault: 5xx/timeout retryable, not_found/access_denied permanent."""


class LLMError(DependencyError):
    """LLM fault: rate_limit_exceeded/5xx retryable, insufficient_quota/4xx permanent."""


class EmailDeliveryError(DependencyError):
    """SMTP fault: transient socket errors and 4xx SMTP replies are retryable."""


class DatabaseError(DependencyError):
    """Database fault: deadlock and serialization failures are retryable."""


class JobFeedError(DependencyError):
    """External job-listing feed fault: upstream 5xx and timeouts are retryable."""


class ResumeNotFoundError(PermanentJobError):
    """Raised when the resume row referenced by a payload does not exist."""

    def __init__(self, resume_id: str) -> None:
        self.resume_id = resume_id
        super().__init__(f"Resume not found: {resume_id}")


class UnknownReportTypeError(PermanentJobError):
    """Raised by the analytics handler for a report type it cannot build."""

    def __init__(self, report_type: str) -> None:
        self.report_type = report_type
        super().__init__(f"Unknown report type: {report_type}")
