"""
API Schemas Package

Pydantic request/response models of the API Layer.
"""

from src.api.schemas.common import ErrorResponse, HealthCheckResponse
from src.api.schemas.jobs import (
    CancelJobResponse,
    EnqueueJobResponse,
    JobStatusResponse,
    QueueStatsResponse,
)

__all__ = [
    "ErrorResponse",
    "HealthCheckResponse",
    "CancelJobResponse",
    "EnqueueJobResponse",
    "JobStatusResponse",
    "QueueStatsResponse",
]
