"""
Domain Layer - Core Business Logic

Framework-independent rules of the work-dispatch backend: the job record and
its lifecycle, retry backoff, the resume processing state machine and the
exception hierarchy shared by every layer.

Architecture:
    - Clean Architecture: Domain Layer is the center, no external dependencies
      besides pydantic for value object validation
    - Dependency Inversion: Application defines ports, Infrastructure implements

Subdomains:
    - jobs: Job entity, states, backoff, enqueue options, queue stats
    - resumes: Resume processing status, extracted profile
    - shared: Cross-subdomain exceptions

Usage:
    >>> from src.domain import Job, JobState, DomainException
    >>> from src.domain.jobs import BackoffPolicy
"""

from .jobs import BackoffPolicy, EnqueueOptions, Job, JobError, JobState, QueueStats
from .shared import DomainException

__all__ = [
    "BackoffPolicy",
    "EnqueueOptions",
    "Job",
    "JobError",
    "JobState",
    "QueueStats",
    "DomainException",
]
