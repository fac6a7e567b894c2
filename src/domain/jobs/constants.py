"""
Work-Dispatch Constants

Wire-level queue names, handler job names and dispatch defaults.

Business Context:
    Queue names and job names are part of the external contract: the admin
    UI polls status by job id and reads queue stats by queue name, and the
    Redis broker embeds queue names in its keys. Changing a value here is a
    breaking change for any job already persisted.

    The "queue" here is a broker work queue. Job *listings* (the `jobs`
    table in the relational store) are a different concept and are named
    "job listings" / "postings" throughout the code.
"""

from typing import Final


# ============================================================================
# QUEUE NAMES (wire-level, stable)
# ============================================================================

QUEUE_RESUME_PROCESSING: Final[str] = "resume-processing"
QUEUE_JOB_MATCHING: Final[str] = "job-matching"
QUEUE_EMAIL_NOTIFICATIONS: Final[str] = "email-notifications"
QUEUE_DATA_SYNC: Final[str] = "data-sync"
QUEUE_ANALYTICS: Final[str] = "analytics"

ALL_QUEUES: Final[tuple[str, ...]] = (
    QUEUE_RESUME_PROCESSING,
    QUEUE_JOB_MATCHING,
    QUEUE_EMAIL_NOTIFICATIONS,
    QUEUE_DATA_SYNC,
    QUEUE_ANALYTICS,
)


# ============================================================================
# HANDLER JOB NAMES (discriminator inside a queue)
# ============================================================================

JOB_EXTRACT_SKILLS: Final[str] = "extract-skills"
JOB_MATCH_USER_JOBS: Final[str] = "match-user-jobs"
JOB_SEND_NOTIFICATION: Final[str] = "send-notification"
JOB_SYNC_JOBS: Final[str] = "sync-jobs"
JOB_GENERATE_REPORT: Final[str] = "generate-report"


# ============================================================================
# DISPATCH DEFAULTS
# ============================================================================

DEFAULT_ATTEMPTS_MAX: Final[int] = 3
DEFAULT_VISIBILITY_MS: Final[int] = 30_000
DEFAULT_BACKOFF_BASE_MS: Final[int] = 2_000
DEFAULT_CRASH_ALLOWANCE: Final[int] = 3

# Exponential backoff cap and jitter band
MAX_BACKOFF_MS: Final[int] = 5 * 60 * 1000
BACKOFF_JITTER_RATIO: Final[float] = 0.2

# Retention windows for terminal jobs (0 disables purge)
DEFAULT_RETENTION_COMPLETED_SECONDS: Final[int] = 3600
DEFAULT_RETENTION_FAILED_SECONDS: Final[int] = 86400

# Progress bounds
PROGRESS_MIN: Final[int] = 0
PROGRESS_MAX: Final[int] = 100
