"""
Enqueue Commands - CQRS Write Commands

One command per queue, carrying the job payload plus scheduling options.

Responsibility:
    - Data holders built by the API layer from request bodies
    - Split into payload (handler input) and EnqueueOptions (scheduling)
    - EnqueueJobCommandHandler hands them to the JobDispatcher

Architecture Notes:
    - Part of Application Layer (orchestration)
    - Payload validation proper happens in the dispatcher against the
      queue's payload model, so commands and direct enqueue behave alike
"""

import logging
from typing import Any, ClassVar, Optional

from pydantic import BaseModel, Field

from src.application.services.job_dispatcher import JobDispatcher
from src.domain.jobs import EnqueueOptions, constants

logger = logging.getLogger(__name__)

_OPTION_FIELDS = {"priority", "delay_ms"}


class EnqueueJobCommand(BaseModel):
    """
    Base enqueue command.

    Attributes:
        priority: Lower number = more urgent (default 0)
        delay_ms: Initial delay before the job becomes eligible
    """

    queue: ClassVar[str]

    priority: int = Field(default=0, description="Lower number = more urgent")
    delay_ms: int = Field(default=0, ge=0, description="Initial delay in milliseconds")

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude=_OPTION_FIELDS, exclude_none=True)

    def to_options(self) -> EnqueueOptions:
        return EnqueueOptions(priority=self.priority, delay_ms=self.delay_ms)


class ProcessResumeCommand(EnqueueJobCommand):
    """Extract skills from an uploaded resume."""

    queue: ClassVar[str] = constants.QUEUE_RESUME_PROCESSING

    resume_id: str = Field(min_length=1)
    user_id: Optional[str] = None


class MatchUserJobsCommand(EnqueueJobCommand):
    """Match a user against recent job listings."""

    queue: ClassVar[str] = constants.QUEUE_JOB_MATCHING

    user_id: str = Field(min_length=1)
    resume_id: Optional[str] = None


class NotificationRecipient(BaseModel):
    id: Optional[str] = None
    email: str


class SendNotificationCommand(EnqueueJobCommand):
    """Send a notification to a list of recipients."""

    queue: ClassVar[str] = constants.QUEUE_EMAIL_NOTIFICATIONS

    notification_id: str = Field(min_length=1)
    recipients: list[NotificationRecipient] = Field(min_length=1)


class SyncJobsCommand(EnqueueJobCommand):
    """Sync job listings from an external source."""

    queue: ClassVar[str] = constants.QUEUE_DATA_SYNC

    source: str = Field(min_length=1)


class ReportDateRange(BaseModel):
    start: str
    end: str


class GenerateReportCommand(EnqueueJobCommand):
    """Generate an analytics report."""

    queue: ClassVar[str] = constants.QUEUE_ANALYTICS

    report_type: str = Field(min_length=1)
    date_range: ReportDateRange


class EnqueueJobCommandHandler:
    """
    Handler turning enqueue commands into jobs.

    Examples:
        >>> handler = EnqueueJobCommandHandler(dispatcher)
        >>> job_id = await handler.handle(ProcessResumeCommand(resume_id="R1"))
    """

    def __init__(self, dispatcher: JobDispatcher) -> None:
        self._dispatcher = dispatcher

    async def handle(self, command: EnqueueJobCommand) -> str:
        """
        Raises:
            UnknownQueueError / InvalidJobPayloadError / BrokerUnavailableError
        """
        return await self._dispatcher.enqueue(
            command.queue, command.to_payload(), command.to_options()
        )
