"""Tests for BulkEmailHandler."""

from unittest.mock import AsyncMock

import pytest
from pydantic import ValidationError

from src.application.ports.repositories import NotificationRecord
from src.application.tasks.handlers import BulkEmailHandler
from src.domain.shared.exceptions import EmailDeliveryError, PermanentJobError, RetryableJobError

QUEUE, NAME = "email-notifications", "send-notification"

PAYLOAD = {
    "notification_id": "N1",
    "recipients": [
        {"id": "u1", "email": "ada@example.com"},
        {"id": "u2", "email": "bob@example.com"},
        {"id": "u3", "email": "cy@example.com"},
    ],
}


@pytest.fixture
def notifications():
    repo = AsyncMock()
    repo.get_notification.return_value = NotificationRecord(
        id="N1", title="New jobs", content="<p>Three new jobs match your profile</p>"
    )
    repo.get_sent_emails.return_value = set()
    return repo


@pytest.fixture
def sender():
    return AsyncMock()


@pytest.mark.asyncio
async def test_sends_to_every_recipient(notifications, sender, make_ctx):
    ctx = make_ctx(QUEUE, NAME)

    result = await BulkEmailHandler(notifications, sender)(PAYLOAD, ctx)

    assert result == {"notification_id": "N1", "sent": 3, "failed": 0, "skipped": 0}
    assert sender.send.await_count == 3
    sender.send.assert_any_await(
        "ada@example.com", "New jobs", "<p>Three new jobs match your profile</p>"
    )
    notifications.record_recipient.assert_any_await("N1", "u2", "bob@example.com", "sent")
    notifications.mark_sent.assert_awaited_once_with("N1", 3)
    assert ctx.current_progress == 100


@pytest.mark.asyncio
async def test_partial_failure_completes(notifications, sender, make_ctx):
    """
    Verifies:
    - A failed delivery is recorded as 'failed' with the error text
    - The job still completes when at least one recipient got the message
    """
    sender.send.side_effect = [None, EmailDeliveryError("mailbox full", retryable=False), None]

    result = await BulkEmailHandler(notifications, sender)(PAYLOAD, make_ctx(QUEUE, NAME))

    assert result["sent"] == 2
    assert result["failed"] == 1
    failed_call = notifications.record_recipient.await_args_list[1]
    assert failed_call.args[:4] == ("N1", "u2", "bob@example.com", "failed")
    assert "mailbox full" in failed_call.args[4]
    notifications.mark_sent.assert_awaited_once_with("N1", 2)


@pytest.mark.asyncio
async def test_all_failed_is_retryable(notifications, sender, make_ctx):
    sender.send.side_effect = EmailDeliveryError("smtp down", retryable=True)

    with pytest.raises(RetryableJobError, match="All 3 deliveries"):
        await BulkEmailHandler(notifications, sender)(PAYLOAD, make_ctx(QUEUE, NAME))

    notifications.mark_sent.assert_not_awaited()
    assert notifications.record_recipient.await_count == 3


@pytest.mark.asyncio
async def test_retry_skips_recipients_already_sent(notifications, sender, make_ctx):
    notifications.get_sent_emails.return_value = {"ada@example.com", "bob@example.com"}

    result = await BulkEmailHandler(notifications, sender)(PAYLOAD, make_ctx(QUEUE, NAME))

    sender.send.assert_awaited_once()
    assert sender.send.await_args.args[0] == "cy@example.com"
    assert result == {"notification_id": "N1", "sent": 3, "failed": 0, "skipped": 2}


@pytest.mark.asyncio
async def test_missing_notification_is_permanent(notifications, sender, make_ctx):
    notifications.get_notification.return_value = None

    with pytest.raises(PermanentJobError, match="N1"):
        await BulkEmailHandler(notifications, sender)(PAYLOAD, make_ctx(QUEUE, NAME))

    sender.send.assert_not_awaited()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload",
    [
        {"notification_id": "N1", "recipients": []},
        {"notification_id": "N1", "recipients": [{"email": "not-an-email"}]},
        {"recipients": [{"email": "ada@example.com"}]},
    ],
)
async def test_invalid_payload_rejected(notifications, sender, make_ctx, payload):
    with pytest.raises(ValidationError):
        await BulkEmailHandler(notifications, sender)(payload, make_ctx(QUEUE, NAME))
