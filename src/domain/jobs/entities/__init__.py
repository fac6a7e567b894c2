"""Job entities."""

from src.domain.jobs.entities.job import ErrorCause, Job, JobError, JobState

__all__ = ["ErrorCause", "Job", "JobError", "JobState"]
