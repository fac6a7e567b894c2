"""
EnqueueOptions Value Object

Per-enqueue overrides of queue defaults.
"""

from typing import Optional

from pydantic import BaseModel, Field

from src.domain.jobs.value_objects.backoff_policy import BackoffPolicy


class EnqueueOptions(BaseModel):
    """
    Options accepted by enqueue.

    Attributes:
        attempts_max: Total attempts allowed (queue default if None)
        backoff: Retry backoff policy (queue default if None)
        delay_ms: Initial delay; > 0 persists the job in `delayed`
        priority: Lower number = more urgent; FIFO within equal priority

    Examples:
        >>> EnqueueOptions(delay_ms=5000)
        >>> EnqueueOptions(attempts_max=5, backoff=BackoffPolicy.fixed(100))
    """

    attempts_max: Optional[int] = Field(default=None, ge=1)
    backoff: Optional[BackoffPolicy] = None
    delay_ms: int = Field(default=0, ge=0)
    priority: int = Field(default=0)

    model_config = {"frozen": True}

    def with_defaults(
        self, attempts_max: int, backoff: BackoffPolicy
    ) -> "EnqueueOptions":
        """Return a copy with unset fields filled from queue defaults."""
        return self.model_copy(
            update={
                "attempts_max": self.attempts_max or attempts_max,
                "backoff": self.backoff or backoff,
            }
        )
