"""
SellerService - seller enrollment and payout destinations

A seller is a user with a SellerAccount. The account's payout destination is
the connected account that receives settlement transfers; until it is set,
payouts for the seller's orders wait in the reconciliation queue.
"""

import logging
import re

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from django.db import transaction

from infrastructure.events import get_event_bus
from infrastructure.payments.interface import PaymentException, PaymentProviderInterface
from marketplace.domain.events.seller_events import SellerPayoutDestinationRegisteredEvent
from marketplace.infra.observability.metrics import payout_destinations_registered_total
from marketplace.sellers.domain.models.seller_account import SellerAccount
from marketplace.services.base import BaseService, ErrorCodes, ServiceResult, service_err, service_ok
from utils.logging_utils import mask_value

User = get_user_model()
logger = logging.getLogger(__name__)

PAYOUT_DESTINATION_PATTERN = re.compile(r"^acct_[A-Za-z0-9]+$")


class SellerService(BaseService):
    """
    Service for seller payout accounts.
    """

    def __init__(self, payment_provider: PaymentProviderInterface = None, event_bus=None):
        super().__init__()
        self._payment_provider = payment_provider
        self.event_bus = event_bus or get_event_bus()

    @property
    def payment_provider(self) -> PaymentProviderInterface:
        # Resolved lazily; only onboarding talks to the provider
        if self._payment_provider is None:
            from infrastructure.container import container

            self._payment_provider = container.payment()
        return self._payment_provider

    @BaseService.log_performance
    def enroll(self, seller: User) -> ServiceResult[SellerAccount]:
        """Make a user a seller. Idempotent."""
        account, created = SellerAccount.objects.get_or_create(seller=seller)
        if created:
            self.logger.info(f"Enrolled user {seller.pk} as seller")
        return service_ok(account)

    @BaseService.log_performance
    def get_account(self, seller_id) -> ServiceResult[SellerAccount]:
        try:
            account = SellerAccount.objects.select_related("seller").get(seller_id=seller_id)
        except (SellerAccount.DoesNotExist, ValueError, ValidationError):
            return service_err(ErrorCodes.SELLER_NOT_FOUND, f"Seller {seller_id} not found")
        return service_ok(account)

    @BaseService.log_performance
    def register_payout_destination(
        self, seller: User, destination: str, source: str = "manual"
    ) -> ServiceResult[SellerAccount]:
        """
        Store the connected account that receives the seller's payouts.

        Args:
            seller: Selling user (enrolled on first registration)
            destination: Stripe Connect account id, must start with acct_
            source: "manual" or "onboarding", for metrics
        """
        destination = (destination or "").strip()
        if not PAYOUT_DESTINATION_PATTERN.match(destination):
            return service_err(ErrorCodes.VALIDATION_ERROR, "Payout destination must be a connected account id (acct_...)")

        with transaction.atomic():
            account, _ = SellerAccount.objects.select_for_update().get_or_create(seller=seller)
            account.payout_destination = destination
            account.save(update_fields=["payout_destination", "updated_at"])

        payout_destinations_registered_total.labels(source=source).inc()
        event = SellerPayoutDestinationRegisteredEvent(seller_id=str(seller.pk), payout_destination=destination)
        event.publish(self.event_bus)

        self.logger.info(f"Seller {seller.pk} payout destination set to {mask_value(destination)}")
        return service_ok(account)

    @BaseService.log_performance
    def onboard_connected_account(self, seller: User, email: str, country: str = "US") -> ServiceResult[SellerAccount]:
        """
        Create an Express connected account with the payment provider and use it
        as the seller's payout destination.
        """
        if not email:
            return service_err(ErrorCodes.VALIDATION_ERROR, "An e-mail address is required for onboarding")

        try:
            account_id = self.payment_provider.create_connected_account(email=email, country=country)
        except PaymentException as e:
            self.logger.error(f"Connected account onboarding failed for seller {seller.pk}: {e}")
            return service_err(ErrorCodes.PAYMENT_PROVIDER_ERROR, str(e))

        return self.register_payout_destination(seller, account_id, source="onboarding")
