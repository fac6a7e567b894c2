"""
Resume Processing Status

State machine for the `resumes.processing_status` column, owned by the
resume-extract handler.

Business Rules:
    PENDING -> PROCESSING -> {COMPLETED, FAILED}

    - PROCESSING -> PROCESSING is allowed (redelivered attempt after a crash
      or a retry picks the row up again)
    - FAILED -> PROCESSING is allowed (operator retry of a failed job)
    - COMPLETED is final; a redelivered job short-circuits on it
"""

from enum import Enum

from src.domain.shared.exceptions import IllegalJobStateError


class ResumeProcessingStatus(str, Enum):
    """Processing status of a resume row."""

    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    def can_transition_to(self, target: "ResumeProcessingStatus") -> bool:
        return target in _ALLOWED_TRANSITIONS[self]

    def transition_to(
        self, target: "ResumeProcessingStatus", resume_id: str = "?"
    ) -> "ResumeProcessingStatus":
        """
        Validate a transition and return the target status.

        Raises:
            IllegalJobStateError: If the transition is not allowed
        """
        if not self.can_transition_to(target):
            raise IllegalJobStateError(
                resume_id, self.value, f"move resume to {target.value}"
            )
        return target


_ALLOWED_TRANSITIONS: dict[ResumeProcessingStatus, frozenset[ResumeProcessingStatus]] = {
    ResumeProcessingStatus.PENDING: frozenset({ResumeProcessingStatus.PROCESSING}),
    ResumeProcessingStatus.PROCESSING: frozenset(
        {
            ResumeProcessingStatus.PROCESSING,
            ResumeProcessingStatus.COMPLETED,
            ResumeProcessingStatus.FAILED,
        }
    ),
    ResumeProcessingStatus.FAILED: frozenset({ResumeProcessingStatus.PROCESSING}),
    ResumeProcessingStatus.COMPLETED: frozenset(),
}
