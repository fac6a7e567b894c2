"""
Common API Schemas

Shared Pydantic models used across all API routers.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """
    Standard error response model for all API errors.

    Attributes:
        code: Machine-readable error code (e.g., "JOB_NOT_FOUND", "UNKNOWN_QUEUE")
        message: Human-readable error message
        details: Optional additional error details (validation errors, job id)
    """

    code: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error message")
    details: Optional[Dict[str, Any]] = Field(
        default=None, description="Additional error context"
    )

    class Config:
        json_schema_extra = {
            "example": {
                "code": "JOB_NOT_FOUND",
                "message": "Job 5f0c8a52 not found or expired",
                "details": {"job_id": "5f0c8a52"},
            }
        }


class HealthCheckResponse(BaseModel):
    """Response of GET /health."""

    status: str = Field(description="Service health status")
    version: str = Field(description="API version")
    timestamp: str = Field(description="Current server timestamp (ISO 8601)")
    broker: str = Field(description="Broker kind: memory or redis")
