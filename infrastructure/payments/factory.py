import logging
from typing import Dict, Type

from django.conf import settings

from .interface import PaymentProviderInterface
from .mock_provider import MockPaymentProvider
from .stripe_provider import StripeProvider

logger = logging.getLogger(__name__)

PAYMENT_PROVIDERS: Dict[str, Type[PaymentProviderInterface]] = {
    "stripe": StripeProvider,
    "mock": MockPaymentProvider,
}


class PaymentFactory:
    """
    Builds the provider named by PAYMENT_PROVIDER.

    "stripe" moves real money through Stripe PaymentIntents and Connect
    transfers; "mock" keeps everything in memory for tests and local runs.
    """

    @staticmethod
    def create(backend: str | None = None) -> PaymentProviderInterface:
        name = backend or getattr(settings, "PAYMENT_PROVIDER", "stripe")
        try:
            provider_class = PAYMENT_PROVIDERS[name]
        except KeyError:
            raise ValueError(f"Unknown payment provider '{name}'; expected one of {sorted(PAYMENT_PROVIDERS)}") from None

        logger.info(f"Payment provider: {name}")
        return provider_class()
