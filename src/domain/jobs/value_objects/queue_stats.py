"""
QueueStats Value Object

Per-queue job counts by state.
"""

from pydantic import BaseModel, Field


class QueueStats(BaseModel):
    """
    Snapshot of job counts for one queue.

    A queue at its concurrency limit shows `active == concurrency` and
    `waiting > 0`; operators throttle upstream based on these numbers.
    """

    queue: str
    waiting: int = Field(default=0, ge=0)
    active: int = Field(default=0, ge=0)
    completed: int = Field(default=0, ge=0)
    failed: int = Field(default=0, ge=0)
    delayed: int = Field(default=0, ge=0)

    model_config = {"frozen": True}

    @property
    def total(self) -> int:
        return self.waiting + self.active + self.completed + self.failed + self.delayed
