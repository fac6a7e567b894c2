"""
Jobs Subdomain Module

Job record, lifecycle states, retry backoff and enqueue options for the
work-dispatch subsystem.

Exports:
    Entities:
        - Job, JobState, JobError, ErrorCause

    Value Objects:
        - BackoffPolicy, BackoffKind
        - EnqueueOptions
        - QueueStats
"""

from src.domain.jobs.entities.job import (
    ErrorCause,
    Job,
    JobError,
    JobState,
    ms_to_iso,
    now_ms,
)
from src.domain.jobs.value_objects.backoff_policy import BackoffKind, BackoffPolicy
from src.domain.jobs.value_objects.enqueue_options import EnqueueOptions
from src.domain.jobs.value_objects.queue_stats import QueueStats

__all__ = [
    "BackoffKind",
    "BackoffPolicy",
    "EnqueueOptions",
    "ErrorCause",
    "Job",
    "JobError",
    "JobState",
    "QueueStats",
    "ms_to_iso",
    "now_ms",
]
