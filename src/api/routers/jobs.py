"""
API Router for Background Jobs

Responsibility:
    HTTP interface of the dispatch subsystem: enqueue work on the five
    queues, poll job status, inspect queue counters and perform operator
    actions (retry, cancel).

Architecture Notes:
    - Part of API Layer (Presentation)
    - Depends on Application Layer (EnqueueJobCommandHandler,
      GetJobStatusQueryHandler, GetQueueStatsQueryHandler, JobDispatcher)
    - Dependencies come from the DispatchContainer stored on app.state
    - No business logic; domain exceptions propagate to the handlers
      registered in src.api.main

Contains:
    - POST /jobs/process-resume, /jobs/match-users, /jobs/send-notification,
      /jobs/sync-jobs, /jobs/generate-report - enqueue
    - GET /jobs/status/{job_id} - job status (Cache-Control: no-cache)
    - GET /jobs/queue-stats - per-queue counters
    - POST /jobs/retry/{job_id} - re-queue a failed job
    - POST /jobs/cancel/{job_id} - cancel a job

Does NOT contain:
    - Authentication (out of scope)
    - Job execution (worker pool)
"""

import logging

from fastapi import APIRouter, Depends, Path, Request, Response, status

from src.api.schemas.common import ErrorResponse
from src.api.schemas.jobs import (
    CancelJobResponse,
    EnqueueJobResponse,
    GenerateReportRequest,
    JobStatusResponse,
    MatchUsersRequest,
    ProcessResumeRequest,
    QueueCounts,
    QueueStatsResponse,
    SendNotificationRequest,
    SyncJobsRequest,
)
from src.application.commands import (
    EnqueueJobCommandHandler,
    GenerateReportCommand,
    MatchUserJobsCommand,
    NotificationRecipient,
    ProcessResumeCommand,
    ReportDateRange,
    SendNotificationCommand,
    SyncJobsCommand,
)
from src.application.queries import (
    GetJobStatusQuery,
    GetJobStatusQueryHandler,
    GetQueueStatsQuery,
    GetQueueStatsQueryHandler,
)
from src.application.services import JobDispatcher
from src.domain.jobs import JobState

# Configure logger
logger = logging.getLogger(__name__)


# ============================================================================
# ROUTER CONFIGURATION
# ============================================================================


router = APIRouter(
    prefix="/jobs",
    tags=["jobs"],
    responses={
        400: {"model": ErrorResponse, "description": "Bad Request - Unknown queue"},
        404: {"model": ErrorResponse, "description": "Not Found - Job ID not found or expired"},
        409: {"model": ErrorResponse, "description": "Conflict - Illegal job state"},
        422: {"model": ErrorResponse, "description": "Unprocessable Entity - Invalid payload"},
        503: {"model": ErrorResponse, "description": "Service Unavailable - Broker unreachable"},
        500: {"model": ErrorResponse, "description": "Internal Server Error"},
    },
)


# ============================================================================
# DEPENDENCY INJECTION
# ============================================================================


def get_dispatcher(request: Request) -> JobDispatcher:
    """Dispatcher of the container built by the app lifespan."""
    return request.app.state.container.dispatcher


def get_enqueue_handler(
    dispatcher: JobDispatcher = Depends(get_dispatcher),
) -> EnqueueJobCommandHandler:
    return EnqueueJobCommandHandler(dispatcher)


def get_job_status_query_handler(
    dispatcher: JobDispatcher = Depends(get_dispatcher),
) -> GetJobStatusQueryHandler:
    return GetJobStatusQueryHandler(dispatcher)


def get_queue_stats_query_handler(
    dispatcher: JobDispatcher = Depends(get_dispatcher),
) -> GetQueueStatsQueryHandler:
    return GetQueueStatsQueryHandler(dispatcher)


# ============================================================================
# ENQUEUE ENDPOINTS
# ============================================================================


@router.post(
    "/process-resume",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=EnqueueJobResponse,
    summary="Queue skill extraction for a resume",
)
async def process_resume(
    request: ProcessResumeRequest,
    handler: EnqueueJobCommandHandler = Depends(get_enqueue_handler),
) -> EnqueueJobResponse:
    """
    Queue an extract-skills job on resume-processing.

    Poll GET /jobs/status/{job_id} for progress; the resume row moves
    PENDING -> PROCESSING -> COMPLETED (or FAILED on a terminal error).
    """
    command = ProcessResumeCommand(
        resume_id=request.resume_id, user_id=request.user_id, priority=request.priority
    )
    job_id = await handler.handle(command)
    logger.info(f"Resume processing queued: resume_id={request.resume_id}, job_id={job_id}")
    return EnqueueJobResponse(job_id=job_id, message="Resume processing job queued")


@router.post(
    "/match-users",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=EnqueueJobResponse,
    summary="Queue job matching for a user",
)
async def match_users(
    request: MatchUsersRequest,
    handler: EnqueueJobCommandHandler = Depends(get_enqueue_handler),
) -> EnqueueJobResponse:
    command = MatchUserJobsCommand(
        user_id=request.user_id, resume_id=request.resume_id, priority=request.priority
    )
    job_id = await handler.handle(command)
    logger.info(f"Job matching queued: user_id={request.user_id}, job_id={job_id}")
    return EnqueueJobResponse(job_id=job_id, message="Job matching queued")


@router.post(
    "/send-notification",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=EnqueueJobResponse,
    summary="Queue a bulk notification email",
)
async def send_notification(
    request: SendNotificationRequest,
    handler: EnqueueJobCommandHandler = Depends(get_enqueue_handler),
) -> EnqueueJobResponse:
    command = SendNotificationCommand(
        notification_id=request.notification_id,
        recipients=[
            NotificationRecipient(id=r.id, email=r.email) for r in request.recipients
        ],
        priority=request.priority,
    )
    job_id = await handler.handle(command)
    logger.info(
        f"Notification queued: notification_id={request.notification_id}, "
        f"recipients={len(request.recipients)}, job_id={job_id}"
    )
    return EnqueueJobResponse(job_id=job_id, message="Notification email job queued")


@router.post(
    "/sync-jobs",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=EnqueueJobResponse,
    summary="Queue a job-listing sync from an external source",
)
async def sync_jobs(
    request: SyncJobsRequest,
    handler: EnqueueJobCommandHandler = Depends(get_enqueue_handler),
) -> EnqueueJobResponse:
    job_id = await handler.handle(
        SyncJobsCommand(source=request.source, priority=request.priority)
    )
    logger.info(f"Job sync queued: source={request.source}, job_id={job_id}")
    return EnqueueJobResponse(job_id=job_id, message="Job sync queued")


@router.post(
    "/generate-report",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=EnqueueJobResponse,
    summary="Queue an analytics report",
)
async def generate_report(
    request: GenerateReportRequest,
    handler: EnqueueJobCommandHandler = Depends(get_enqueue_handler),
) -> EnqueueJobResponse:
    command = GenerateReportCommand(
        report_type=request.report_type,
        date_range=ReportDateRange(
            start=request.date_range.start, end=request.date_range.end
        ),
        priority=request.priority,
    )
    job_id = await handler.handle(command)
    logger.info(f"Report queued: report_type={request.report_type}, job_id={job_id}")
    return EnqueueJobResponse(job_id=job_id, message="Report generation queued")


# ============================================================================
# QUERY ENDPOINTS
# ============================================================================


@router.get(
    "/status/{job_id}",
    status_code=status.HTTP_200_OK,
    response_model=JobStatusResponse,
    summary="Get status of a job",
    description=(
        "Current state, progress, result and error of a job. "
        "Response includes Cache-Control: no-cache for real-time polling."
    ),
)
async def get_job_status(
    response: Response,
    job_id: str = Path(..., min_length=1, description="Job ID returned by an enqueue endpoint"),
    handler: GetJobStatusQueryHandler = Depends(get_job_status_query_handler),
) -> JobStatusResponse:
    """
    Status lifecycle:
        - waiting: queued, not yet reserved
        - active: a worker holds the lease (progress 0-99)
        - delayed: waiting for a retry backoff or initial delay
        - completed: result available (progress 100)
        - failed: terminal, error carries the message

    Raises:
        JobNotFoundException: -> 404 JOB_NOT_FOUND
    """
    view = await handler.handle(GetJobStatusQuery(job_id=job_id))
    response.headers["Cache-Control"] = "no-cache"
    return JobStatusResponse.from_view(view)


@router.get(
    "/queue-stats",
    status_code=status.HTTP_200_OK,
    response_model=QueueStatsResponse,
    summary="Per-queue job counters",
)
async def get_queue_stats(
    handler: GetQueueStatsQueryHandler = Depends(get_queue_stats_query_handler),
) -> QueueStatsResponse:
    stats = await handler.handle(GetQueueStatsQuery())
    return QueueStatsResponse(queues=[QueueCounts.from_stats(s) for s in stats])


# ============================================================================
# OPERATOR ACTIONS
# ============================================================================


@router.post(
    "/retry/{job_id}",
    status_code=status.HTTP_200_OK,
    response_model=EnqueueJobResponse,
    summary="Re-queue a failed job",
)
async def retry_job(
    job_id: str = Path(..., min_length=1),
    dispatcher: JobDispatcher = Depends(get_dispatcher),
) -> EnqueueJobResponse:
    """
    Move a failed job back to waiting with its attempt counters reset.

    Raises:
        JobNotFoundException: -> 404
        IllegalJobStateError: job is not failed -> 409
    """
    retried_id = await dispatcher.retry(job_id)
    return EnqueueJobResponse(job_id=retried_id, message="Job re-queued")


@router.post(
    "/cancel/{job_id}",
    status_code=status.HTTP_200_OK,
    response_model=CancelJobResponse,
    summary="Cancel a job",
)
async def cancel_job(
    job_id: str = Path(..., min_length=1),
    dispatcher: JobDispatcher = Depends(get_dispatcher),
) -> CancelJobResponse:
    """
    Cancel a waiting, delayed or active job.

    Waiting and delayed jobs fail immediately with cause cancelled. Active
    jobs are flagged; the running handler observes the flag at its next
    cancellation check.

    Raises:
        JobNotFoundException: -> 404
        IllegalJobStateError: job already terminal -> 409
    """
    state = await dispatcher.cancel(job_id)
    if state == JobState.ACTIVE:
        message = "Cancellation requested, job will stop at its next checkpoint"
    else:
        message = "Job cancelled"
    return CancelJobResponse(job_id=job_id, status=state.value, message=message)
