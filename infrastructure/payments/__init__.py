"""
Money movement behind one interface: buyer charges, seller transfers and
connected-account onboarding, served by Stripe or an in-memory mock.
"""

from .factory import PAYMENT_PROVIDERS, PaymentFactory
from .interface import (
    ChargeResult,
    PaymentDeclined,
    PaymentException,
    PaymentProviderInterface,
    PaymentStatus,
    PaymentTimeout,
    TransferResult,
)
from .mock_provider import MockPaymentProvider
from .stripe_provider import StripeProvider

__all__ = [
    "PAYMENT_PROVIDERS",
    "ChargeResult",
    "MockPaymentProvider",
    "PaymentDeclined",
    "PaymentException",
    "PaymentFactory",
    "PaymentProviderInterface",
    "PaymentStatus",
    "PaymentTimeout",
    "StripeProvider",
    "TransferResult",
]
