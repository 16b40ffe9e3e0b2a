import logging
from typing import Dict, Type

from django.conf import settings

from .interface import EmailServiceInterface
from .mock_service import MockEmailService
from .smtp_service import SMTPEmailService


logger = logging.getLogger(__name__)

EMAIL_BACKENDS: Dict[str, Type[EmailServiceInterface]] = {
    "smtp": SMTPEmailService,
    "mock": MockEmailService,
}


class EmailFactory:
    """Builds the alert mail backend named by EMAIL_SERVICE_BACKEND (smtp | mock)."""

    @staticmethod
    def create(backend: str | None = None) -> EmailServiceInterface:
        name = backend or getattr(settings, "EMAIL_SERVICE_BACKEND", "smtp")
        try:
            service_class = EMAIL_BACKENDS[name]
        except KeyError:
            raise ValueError(f"Unknown email backend '{name}'; expected one of {sorted(EMAIL_BACKENDS)}") from None

        logger.info(f"Alert mail backend: {name}")
        return service_class()
