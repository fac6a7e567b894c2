"""
SMTP Email Sender

Sends HTML email through an SMTP relay with the standard library client.

Responsibility:
    - Build a multipart message (plain-text fallback + HTML)
    - Deliver it over SMTP (optionally STARTTLS + login)
    - Classify failures into EmailDeliveryError

Architecture Notes:
    - Infrastructure Layer (implements EmailSenderProtocol)
    - smtplib is blocking; each send runs in a worker thread
      (asyncio.to_thread) so the event loop keeps serving other jobs

Error Handling:
    - Socket errors, timeouts, disconnects, 4xx replies -> retryable
    - 5xx replies (rejected recipient, auth failure) -> permanent
"""

import asyncio
import logging
import os
import re
import smtplib
from email.message import EmailMessage
from email.utils import make_msgid
from typing import Optional

from src.domain.shared.exceptions import EmailDeliveryError

# Configure logger for this module
logger = logging.getLogger(__name__)


def strip_html(html: str) -> str:
    """Plain-text rendering of an HTML body."""
    return re.sub(r"\s+", " ", re.sub(r"<[^>]*>", "", html)).strip()


def _smtp_code(error: smtplib.SMTPException) -> Optional[int]:
    if isinstance(error, smtplib.SMTPRecipientsRefused):
        codes = [code for code, _ in error.recipients.values()]
        return max(codes) if codes else None
    return getattr(error, "smtp_code", None)


class SmtpEmailSender:
    """
    EmailSenderProtocol implementation on smtplib.

    Examples:
        >>> sender = SmtpEmailSender(host="smtp.example.com", port=587)
        >>> message_id = await sender.send("a@example.com", "Hello", "<p>Hi</p>")
    """

    def __init__(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        from_address: Optional[str] = None,
        use_tls: Optional[bool] = None,
        timeout: float = 30.0,
    ) -> None:
        self.host = host or os.getenv("SMTP_HOST", "localhost")
        self.port = port or int(os.getenv("SMTP_PORT", "587"))
        self.username = username if username is not None else os.getenv("SMTP_USERNAME", "")
        self.password = password if password is not None else os.getenv("SMTP_PASSWORD", "")
        self.from_address = from_address or os.getenv("SMTP_FROM", "noreply@upstar.com")
        self.use_tls = (
            use_tls
            if use_tls is not None
            else os.getenv("SMTP_USE_TLS", "true").strip().lower() in ("1", "true", "yes")
        )
        self.timeout = timeout

    def _build_message(self, to: str, subject: str, html: str) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self.from_address
        message["To"] = to
        message["Subject"] = subject
        message["Message-ID"] = make_msgid(domain=self.from_address.split("@")[-1])
        message.set_content(strip_html(html))
        message.add_alternative(html, subtype="html")
        return message

    def _deliver(self, message: EmailMessage) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
            if self.use_tls:
                smtp.starttls()
            if self.username:
                smtp.login(self.username, self.password)
            smtp.send_message(message)

    async def send(self, to: str, subject: str, html: str) -> str:
        message = self._build_message(to, subject, html)

        try:
            await asyncio.to_thread(self._deliver, message)
        except smtplib.SMTPServerDisconnected as e:
            raise EmailDeliveryError(
                f"SMTP server disconnected: {e}", retryable=True, code="disconnected"
            ) from e
        except smtplib.SMTPException as e:
            code = _smtp_code(e)
            retryable = code is None or 400 <= code < 500
            raise EmailDeliveryError(
                f"SMTP delivery to {to} failed: {e}",
                retryable=retryable,
                code=f"smtp_{code}" if code else "smtp_error",
                status_code=code,
            ) from e
        except OSError as e:
            raise EmailDeliveryError(
                f"SMTP connection failed: {e}", retryable=True, code="connection_error"
            ) from e

        logger.info(f"Email sent to {to}: {subject}")
        return message["Message-ID"]
