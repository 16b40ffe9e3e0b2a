import logging
from typing import List, Optional

from .interface import EmailMessage, EmailServiceInterface

logger = logging.getLogger(__name__)


class MockEmailService(EmailServiceInterface):
    """Keeps alert mail in memory; selected with EMAIL_SERVICE_BACKEND="mock"."""

    def __init__(self):
        self.sent_messages: List[EmailMessage] = []

    def send(self, message: EmailMessage) -> bool:
        if not message.recipients:
            return False
        logger.info(f"[MOCK EMAIL] {message.subject} -> {', '.join(message.recipients)}")
        self.sent_messages.append(message)
        return True

    def clear_sent_messages(self):
        self.sent_messages.clear()

    def get_last_message(self) -> Optional[EmailMessage]:
        return self.sent_messages[-1] if self.sent_messages else None
