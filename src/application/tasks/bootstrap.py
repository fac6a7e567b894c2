"""
Registry Bootstrap

Builds the frozen QueueRegistry from DispatchSettings and the handler
catalogue.

Business Rules:
    - Queue -> (job name, payload model, default concurrency) is fixed here
    - attempts_max, backoff base and visibility come from settings
    - WORKER_CONCURRENCY overrides per-queue concurrency; an override that
      names an unknown queue raises UnknownQueueError
"""

import logging
from typing import Mapping, Optional

from pydantic import BaseModel

from src.application.tasks.dispatch_config import DispatchSettings
from src.application.tasks.handlers import (
    GenerateReportPayload,
    ExtractSkillsPayload,
    MatchUserJobsPayload,
    SendNotificationPayload,
    SyncJobsPayload,
)
from src.application.tasks.registry import Handler, QueueDefinition, QueueRegistry
from src.domain.jobs import BackoffPolicy, constants
from src.domain.shared.exceptions import UnknownQueueError

logger = logging.getLogger(__name__)

# queue -> (job name, payload model, default concurrency)
QUEUE_CATALOGUE: dict[str, tuple[str, Optional[type[BaseModel]], int]] = {
    constants.QUEUE_RESUME_PROCESSING: (constants.JOB_EXTRACT_SKILLS, ExtractSkillsPayload, 1),
    constants.QUEUE_JOB_MATCHING: (constants.JOB_MATCH_USER_JOBS, MatchUserJobsPayload, 1),
    constants.QUEUE_EMAIL_NOTIFICATIONS: (constants.JOB_SEND_NOTIFICATION, SendNotificationPayload, 2),
    constants.QUEUE_DATA_SYNC: (constants.JOB_SYNC_JOBS, SyncJobsPayload, 1),
    constants.QUEUE_ANALYTICS: (constants.JOB_GENERATE_REPORT, GenerateReportPayload, 1),
}


def build_registry(
    settings: DispatchSettings,
    handlers: Mapping[str, Handler],
    validate_payloads: bool = True,
) -> QueueRegistry:
    """
    Register one queue per handler and freeze the registry.

    Args:
        settings: Dispatch settings (defaults and concurrency overrides)
        handlers: Queue name -> handler
        validate_payloads: Attach the catalogue's payload models

    Raises:
        UnknownQueueError: Handler or concurrency override for an unknown queue
    """
    registry = QueueRegistry()
    backoff = BackoffPolicy.exponential(settings.default_backoff_base_ms)

    for queue, handler in handlers.items():
        if queue not in QUEUE_CATALOGUE:
            raise UnknownQueueError(queue)
        job_name, payload_model, concurrency = QUEUE_CATALOGUE[queue]
        registry.register(
            QueueDefinition(
                name=queue,
                job_name=job_name,
                handler=handler,
                attempts_max=settings.default_attempts_max,
                backoff=backoff,
                concurrency=concurrency,
                visibility_ms=settings.default_visibility_ms,
                payload_model=payload_model if validate_payloads else None,
            )
        )

    registry.apply_concurrency(settings.worker_concurrency_per_queue)
    logger.info(
        "Queue registry built: "
        + ", ".join(f"{d.name}(x{d.concurrency})" for d in registry)
    )
    return registry.freeze()
