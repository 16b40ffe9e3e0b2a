"""
Alert delivery through Django's configured mail backend (EMAIL_BACKEND,
EMAIL_HOST and friends in settings). Sender defaults to DEFAULT_FROM_EMAIL.
"""

import logging
import smtplib

from django.conf import settings
from django.core.mail import EmailMessage as DjangoEmailMessage

from .interface import EmailException, EmailMessage, EmailServiceInterface


logger = logging.getLogger(__name__)


class SMTPEmailService(EmailServiceInterface):
    def __init__(self):
        self.default_from = getattr(settings, "DEFAULT_FROM_EMAIL", "noreply@example.com")

    def send(self, message: EmailMessage) -> bool:
        if not message.to:
            logger.warning(f"Dropping mail '{message.subject}': no recipients")
            return False

        outgoing = DjangoEmailMessage(
            subject=message.subject,
            body=message.body,
            from_email=message.from_email or self.default_from,
            to=message.to,
            cc=message.cc,
            headers=message.headers or None,
        )

        try:
            delivered = outgoing.send(fail_silently=False)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Mail '{message.subject}' to {message.to} failed: {e}")
            raise EmailException(f"Could not deliver '{message.subject}': {e}") from e

        logger.info(f"Mailed '{message.subject}' to {len(message.recipients)} address(es)")
        return delivered > 0
