"""
Application Commands (CQRS write side)
"""

from src.application.commands.enqueue_job import (
    EnqueueJobCommand,
    EnqueueJobCommandHandler,
    GenerateReportCommand,
    MatchUserJobsCommand,
    NotificationRecipient,
    ProcessResumeCommand,
    ReportDateRange,
    SendNotificationCommand,
    SyncJobsCommand,
)

__all__ = [
    "EnqueueJobCommand",
    "EnqueueJobCommandHandler",
    "GenerateReportCommand",
    "MatchUserJobsCommand",
    "NotificationRecipient",
    "ProcessResumeCommand",
    "ReportDateRange",
    "SendNotificationCommand",
    "SyncJobsCommand",
]
