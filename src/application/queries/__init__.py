"""
Application Queries (CQRS read side)
"""

from src.application.queries.get_job_status import GetJobStatusQuery, GetJobStatusQueryHandler
from src.application.queries.get_queue_stats import GetQueueStatsQuery, GetQueueStatsQueryHandler

__all__ = [
    "GetJobStatusQuery",
    "GetJobStatusQueryHandler",
    "GetQueueStatsQuery",
    "GetQueueStatsQueryHandler",
]
