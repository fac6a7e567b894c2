"""
Email Infrastructure Module

Exports:
    - SmtpEmailSender: SMTP delivery (implements EmailSenderProtocol)
"""

from .smtp_sender import SmtpEmailSender, strip_html

__all__ = ["SmtpEmailSender", "strip_html"]
