"""Job value objects."""

from src.domain.jobs.value_objects.backoff_policy import BackoffKind, BackoffPolicy
from src.domain.jobs.value_objects.enqueue_options import EnqueueOptions
from src.domain.jobs.value_objects.queue_stats import QueueStats

__all__ = ["BackoffKind", "BackoffPolicy", "EnqueueOptions", "QueueStats"]
