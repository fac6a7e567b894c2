"""
Job API Schemas

Request and response models of the /api/jobs router.

Architecture Notes:
    - API Layer's HTTP representation only
    - Requests are converted to Application Layer enqueue commands
    - Responses are built from JobStatusView / QueueStats
"""

from typing import Any, Optional

from pydantic import BaseModel, Field

from src.application.services.job_dispatcher import JobStatusView
from src.domain.jobs import QueueStats

# ============================================================================
# REQUESTS
# ============================================================================


class ProcessResumeRequest(BaseModel):
    """Body of POST /jobs/process-resume."""

    resume_id: str = Field(min_length=1, description="Resume to extract skills from")
    user_id: Optional[str] = Field(default=None, description="Owner of the resume")
    priority: int = Field(default=0, description="Lower number = more urgent")

    class Config:
        json_schema_extra = {
            "example": {"resume_id": "9b2f6a0e-4c1d-4f7e-b2a5-0e8c3d1f7a21"}
        }


class MatchUsersRequest(BaseModel):
    """Body of POST /jobs/match-users."""

    user_id: str = Field(min_length=1, description="User to match against recent jobs")
    resume_id: Optional[str] = Field(default=None, description="Resume the match is based on")
    priority: int = Field(default=0, description="Lower number = more urgent")


class RecipientRequest(BaseModel):
    id: Optional[str] = None
    email: str = Field(min_length=3)


class SendNotificationRequest(BaseModel):
    """Body of POST /jobs/send-notification."""

    notification_id: str = Field(min_length=1)
    recipients: list[RecipientRequest] = Field(min_length=1)
    priority: int = 0

    class Config:
        json_schema_extra = {
            "example": {
                "notification_id": "n-42",
                "recipients": [{"id": "u-1", "email": "ada@example.com"}],
            }
        }


class SyncJobsRequest(BaseModel):
    """Body of POST /jobs/sync-jobs."""

    source: str = Field(min_length=1, description="External feed source name")
    priority: int = 0


class DateRangeRequest(BaseModel):
    start: str = Field(description="ISO 8601 start of the report window")
    end: str = Field(description="ISO 8601 end of the report window")


class GenerateReportRequest(BaseModel):
    """Body of POST /jobs/generate-report."""

    report_type: str = Field(description="user-growth | skill-trends | job-performance")
    date_range: DateRangeRequest
    priority: int = 0

    class Config:
        json_schema_extra = {
            "example": {
                "report_type": "user-growth",
                "date_range": {
                    "start": "2025-01-01T00:00:00Z",
                    "end": "2025-01-31T23:59:59Z",
                },
            }
        }


# ============================================================================
# RESPONSES
# ============================================================================


class EnqueueJobResponse(BaseModel):
    """Response of every enqueue endpoint and of retry."""

    job_id: str = Field(description="Job identifier, poll /jobs/status/{job_id}")
    message: str

    class Config:
        json_schema_extra = {
            "example": {
                "job_id": "5f0c8a52-1b7e-4c43-9a8e-2d4b7f1e6c90",
                "message": "Resume processing job queued",
            }
        }


class JobStatusResponse(BaseModel):
    """
    Response of GET /jobs/status/{job_id}.

    Attributes:
        job_id: Job identifier
        status: waiting | active | completed | failed | delayed
        progress: 0-100
        result: Handler result (completed only)
        error: Failure message (failed only)
        queue: Queue name
        created_at: ISO timestamp of enqueue
        processed_at: ISO timestamp of the latest reservation
        finished_at: ISO timestamp of the terminal transition
    """

    job_id: str
    status: str
    progress: int = Field(default=0, ge=0, le=100)
    result: Any = None
    error: Optional[str] = None
    queue: str
    created_at: Optional[str] = None
    processed_at: Optional[str] = None
    finished_at: Optional[str] = None

    @classmethod
    def from_view(cls, view: JobStatusView) -> "JobStatusResponse":
        return cls(
            job_id=view.job_id,
            status=view.state.value,
            progress=view.progress,
            result=view.result,
            error=view.error,
            queue=view.queue,
            created_at=view.enqueued_at,
            processed_at=view.started_at,
            finished_at=view.finished_at,
        )

    class Config:
        json_schema_extra = {
            "example": {
                "job_id": "5f0c8a52-1b7e-4c43-9a8e-2d4b7f1e6c90",
                "status": "active",
                "progress": 40,
                "result": None,
                "error": None,
                "queue": "resume-processing",
                "created_at": "2025-10-11T10:30:00+00:00",
                "processed_at": "2025-10-11T10:30:01+00:00",
                "finished_at": None,
            }
        }


class QueueCounts(BaseModel):
    name: str
    waiting: int = 0
    active: int = 0
    completed: int = 0
    failed: int = 0
    delayed: int = 0

    @classmethod
    def from_stats(cls, stats: QueueStats) -> "QueueCounts":
        return cls(
            name=stats.queue,
            waiting=stats.waiting,
            active=stats.active,
            completed=stats.completed,
            failed=stats.failed,
            delayed=stats.delayed,
        )


class QueueStatsResponse(BaseModel):
    """Response of GET /jobs/queue-stats."""

    queues: list[QueueCounts]


class CancelJobResponse(BaseModel):
    """
    Response of POST /jobs/cancel/{job_id}.

    status is "failed" when a waiting or delayed job was cancelled outright,
    "active" when a running job was flagged and will stop at its next
    cancellation check.
    """

    job_id: str
    status: str
    message: str
