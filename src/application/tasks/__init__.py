"""
Work-Dispatch Tasks

Responsibility:
    Queue registry, per-job context, worker pool and the handler catalogue
    that executes long-running work outside the request cycle.

Contains:
    - dispatch_config.py - DispatchSettings from environment
    - registry.py - QueueRegistry / QueueDefinition
    - context.py - JobContext handed to handlers
    - worker.py - Worker and WorkerPool
    - handlers/ - one handler per queue
    - bootstrap.py - builds the registry from settings and handlers

Does NOT contain:
    - Broker implementations (Infrastructure Layer)
    - HTTP concerns (API Layer)
"""

from .context import CancelReason, JobContext
from .dispatch_config import DispatchSettings
from .registry import Handler, QueueDefinition, QueueRegistry
from .worker import Worker, WorkerPool, is_retryable

__all__ = [
    "CancelReason",
    "DispatchSettings",
    "Handler",
    "JobContext",
    "QueueDefinition",
    "QueueRegistry",
    "Worker",
    "WorkerPool",
    "is_retryable",
]
