"""
Bulk Email Handler (queue: email-notifications, job: send-notification)

Sends one notification to a list of recipients.

Business Rules:
    - Every recipient gets a notification_recipients row ('sent' or 'failed')
    - Recipients already recorded as 'sent' are skipped on a retry
    - The job completes when at least one recipient has the message;
      when every delivery failed it fails retryable
    - Missing notification row -> permanent failure
"""

import logging
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from src.application.ports.external_services import EmailSenderProtocol
from src.application.ports.repositories import NotificationRepositoryProtocol
from src.application.tasks.context import JobContext
from src.domain.shared.exceptions import (
    EmailDeliveryError,
    PermanentJobError,
    RetryableJobError,
)

logger = logging.getLogger(__name__)


class Recipient(BaseModel):
    id: Optional[str] = None
    email: str = Field(..., pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class SendNotificationPayload(BaseModel):
    """Payload of send-notification jobs."""

    notification_id: str = Field(..., min_length=1)
    recipients: list[Recipient] = Field(..., min_length=1)

    model_config = ConfigDict(extra="ignore")


class BulkEmailHandler:
    """Handler for send-notification jobs."""

    def __init__(
        self,
        notifications: NotificationRepositoryProtocol,
        sender: EmailSenderProtocol,
    ) -> None:
        self._notifications = notifications
        self._sender = sender

    async def __call__(self, payload: Any, ctx: JobContext) -> dict[str, Any]:
        data = SendNotificationPayload.model_validate(payload)
        ctx.progress(10)

        notification = await self._notifications.get_notification(data.notification_id)
        if notification is None:
            raise PermanentJobError(f"Notification {data.notification_id} not found")
        ctx.progress(20)

        already_sent = await self._notifications.get_sent_emails(notification.id)
        pending = [r for r in data.recipients if r.email not in already_sent]

        sent = failed = 0
        last_error: Optional[EmailDeliveryError] = None
        for index, recipient in enumerate(pending, start=1):
            ctx.raise_if_cancelled()
            try:
                await self._sender.send(recipient.email, notification.title, notification.content)
            except EmailDeliveryError as e:
                failed += 1
                last_error = e
                logger.warning(f"Notification {notification.id}: delivery to {recipient.email} failed: {e}")
                await self._notifications.record_recipient(
                    notification.id, recipient.id, recipient.email, "failed", str(e)
                )
            else:
                sent += 1
                await self._notifications.record_recipient(
                    notification.id, recipient.id, recipient.email, "sent"
                )
            ctx.progress(20 + int(60 * index / len(pending)))
        ctx.progress(80)

        delivered = len(already_sent & {r.email for r in data.recipients}) + sent
        if delivered == 0:
            raise RetryableJobError(
                f"All {failed} deliveries of notification {notification.id} failed: {last_error}"
            )

        await self._notifications.mark_sent(notification.id, delivered)
        ctx.progress(100)

        ctx.log("notification sent", notification_id=notification.id, sent=delivered, failed=failed)
        return {
            "notification_id": notification.id,
            "sent": delivered,
            "failed": failed,
            "skipped": len(data.recipients) - len(pending),
        }
