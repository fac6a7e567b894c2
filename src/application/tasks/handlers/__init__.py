"""
Handler Catalogue

One handler class per queue; each is an async callable `(payload, ctx)`
with its collaborators injected through the constructor.
"""

from src.application.tasks.handlers.analytics_report import (
    REPORT_TYPES,
    AnalyticsReportHandler,
    GenerateReportPayload,
)
from src.application.tasks.handlers.bulk_email import BulkEmailHandler, SendNotificationPayload
from src.application.tasks.handlers.data_sync import DataSyncHandler, SyncJobsPayload
from src.application.tasks.handlers.resume_extract import (
    ExtractSkillsPayload,
    ResumeExtractHandler,
)
from src.application.tasks.handlers.user_job_match import (
    MATCH_THRESHOLD,
    MatchUserJobsPayload,
    UserJobMatchHandler,
)

__all__ = [
    "REPORT_TYPES",
    "MATCH_THRESHOLD",
    "AnalyticsReportHandler",
    "BulkEmailHandler",
    "DataSyncHandler",
    "ResumeExtractHandler",
    "UserJobMatchHandler",
    "ExtractSkillsPayload",
    "GenerateReportPayload",
    "MatchUserJobsPayload",
    "SendNotificationPayload",
    "SyncJobsPayload",
]
