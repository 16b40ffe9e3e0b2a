"""Operator alert mail: SMTP through Django, or an in-memory mock for tests."""

from .factory import EMAIL_BACKENDS, EmailFactory
from .interface import EmailException, EmailMessage, EmailServiceInterface
from .mock_service import MockEmailService
from .smtp_service import SMTPEmailService

__all__ = [
    "EMAIL_BACKENDS",
    "EmailException",
    "EmailFactory",
    "EmailMessage",
    "EmailServiceInterface",
    "MockEmailService",
    "SMTPEmailService",
]
