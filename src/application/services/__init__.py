"""
Application Services

Responsibility:
    Orchestration services that coordinate the registry and the broker.

Contains:
    - JobDispatcher: enqueue / status / retry / cancel / stats
    - JobStatusView: read model returned by status
"""

from src.application.services.job_dispatcher import JobDispatcher, JobStatusView

__all__ = ["JobDispatcher", "JobStatusView"]
