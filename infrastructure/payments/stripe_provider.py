"""
Stripe Payment Provider
========================

Concrete implementation of PaymentProviderInterface using Stripe
PaymentIntents for buyer charges and Stripe Connect transfers for seller
payouts.
"""

import logging
from decimal import Decimal
from typing import Any, Dict, Optional

import stripe
from django.conf import settings
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from payment_system.domain.services.currency import to_minor_units
from utils.logging_utils import mask_value

from .interface import (
    ChargeResult,
    PaymentDeclined,
    PaymentException,
    PaymentProviderInterface,
    PaymentStatus,
    PaymentTimeout,
    TransferResult,
)

logger = logging.getLogger(__name__)


class StripeProvider(PaymentProviderInterface):
    """
    Stripe payment provider implementation.

    Configuration (in settings.py):
        STRIPE_SECRET_KEY: Stripe secret API key
        SETTLEMENT["PROVIDER_TIMEOUT_SECONDS"]: Network timeout for every Stripe call

    Only rate-limit errors are retried here: Stripe rejects those before
    doing any work. Connection errors and 5xx responses leave the outcome
    unknown and are surfaced as PaymentTimeout for reconciliation.
    """

    def __init__(self):
        """Initialize Stripe provider with API credentials."""
        stripe.api_key = getattr(settings, "STRIPE_SECRET_KEY", "")
        timeout = settings.SETTLEMENT.get("PROVIDER_TIMEOUT_SECONDS", 30)
        stripe.default_http_client = stripe.RequestsClient(timeout=timeout)
        # Idempotent retries happen in tenacity and in the reconciliation sweep
        stripe.max_network_retries = 0

        if not stripe.api_key:
            logger.warning("STRIPE_SECRET_KEY not configured")

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(stripe.RateLimitError),
        reraise=True,
    )
    def _create_payment_intent_api(self, **kwargs):
        """Internal method to create and confirm a PaymentIntent with retries."""
        return stripe.PaymentIntent.create(**kwargs)

    def charge(
        self,
        amount: Decimal,
        currency: str,
        payment_method_ref: str,
        idempotency_key: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ChargeResult:
        """
        Create and confirm a Stripe PaymentIntent for the full amount.

        Args:
            amount: Payment amount in major currency unit (e.g., 19.99 USD)
            currency: ISO currency code
            payment_method_ref: Stripe PaymentMethod id
            idempotency_key: Stripe idempotency key for this attempt
            metadata: Custom metadata

        Returns:
            ChargeResult object

        Raises:
            PaymentDeclined: If the card was declined or the request rejected
            PaymentTimeout: If Stripe could not be reached or failed mid-request
            PaymentException: For any other Stripe error
        """
        amount_minor = to_minor_units(amount, currency)

        try:
            intent = self._create_payment_intent_api(
                amount=amount_minor,
                currency=currency.lower(),
                payment_method=payment_method_ref,
                confirm=True,
                automatic_payment_methods={"enabled": True, "allow_redirects": "never"},
                metadata=metadata or {},
                idempotency_key=idempotency_key,
            )
        except stripe.CardError as e:
            logger.warning(f"Card declined for payment method {mask_value(payment_method_ref)}: {e.code}")
            raise PaymentDeclined(
                e.user_message or "Your card was declined.",
                code=e.code or "card_declined",
                reference=self._declined_intent_id(e),
            ) from e
        except stripe.InvalidRequestError as e:
            logger.error(f"Stripe rejected charge request: {str(e)}")
            raise PaymentDeclined(
                e.user_message or "The payment could not be processed.",
                code=e.code or "invalid_request",
            ) from e
        except (stripe.APIConnectionError, stripe.APIError) as e:
            logger.error(f"Stripe charge outcome unknown (key {idempotency_key}): {str(e)}")
            raise PaymentTimeout(f"Charge outcome unknown: {str(e)}", code="provider_unreachable") from e
        except stripe.StripeError as e:
            logger.error(f"Stripe charge failed: {str(e)}")
            raise PaymentException(f"Charge failed: {str(e)}", code=e.code) from e

        status = self._map_stripe_payment_status(intent.status)
        logger.info(f"Stripe PaymentIntent {intent.id} status {intent.status}")

        failure_code = None
        failure_message = None
        if status == PaymentStatus.FAILED:
            last_error = getattr(intent, "last_payment_error", None)
            failure_code = getattr(last_error, "code", None) or intent.status
            failure_message = getattr(last_error, "message", None) or "The payment could not be completed."

        return ChargeResult(
            charge_ref=intent.id,
            status=status,
            amount=intent.amount,
            currency=intent.currency,
            failure_code=failure_code,
            failure_message=failure_message,
            metadata=dict(intent.metadata or {}),
        )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(stripe.RateLimitError),
        reraise=True,
    )
    def _create_transfer_api(self, **kwargs):
        return stripe.Transfer.create(**kwargs)

    def transfer(
        self,
        amount: Decimal,
        currency: str,
        destination_account: str,
        idempotency_key: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> TransferResult:
        """
        Create a transfer to a connected account.

        Args:
            amount: Amount to transfer
            currency: Currency code
            destination_account: Destination Stripe account ID
            idempotency_key: Stripe idempotency key for this transfer
            metadata: Optional metadata

        Returns:
            TransferResult

        Raises:
            PaymentDeclined: If Stripe rejected the transfer
            PaymentTimeout: If the outcome is unknown
            PaymentException: For any other Stripe error
        """
        transfer_params = {
            "amount": to_minor_units(amount, currency),
            "currency": currency.lower(),
            "destination": destination_account,
            "idempotency_key": idempotency_key,
        }
        if metadata:
            transfer_params["metadata"] = metadata
            if "order_id" in metadata:
                transfer_params["transfer_group"] = f"order_{metadata['order_id']}"

        try:
            transfer = self._create_transfer_api(**transfer_params)
        except stripe.InvalidRequestError as e:
            logger.error(f"Stripe rejected transfer to {mask_value(destination_account)}: {str(e)}")
            raise PaymentDeclined(f"Transfer rejected: {str(e)}", code=e.code or "invalid_request") from e
        except (stripe.APIConnectionError, stripe.APIError) as e:
            logger.error(f"Stripe transfer outcome unknown (key {idempotency_key}): {str(e)}")
            raise PaymentTimeout(f"Transfer outcome unknown: {str(e)}", code="provider_unreachable") from e
        except stripe.StripeError as e:
            logger.error(f"Stripe transfer failed: {str(e)}")
            raise PaymentException(f"Transfer failed: {str(e)}", code=e.code) from e

        logger.info(f"Created Stripe transfer: {transfer.id} to {mask_value(destination_account)}")

        return TransferResult(
            transfer_ref=transfer.id,
            status=PaymentStatus.SUCCEEDED,  # Transfers are synchronous
            amount=transfer.amount,
            currency=transfer.currency,
            destination=transfer.destination,
        )

    def create_connected_account(self, email: str, country: str = "US") -> str:
        """
        Create a Stripe Express account that can receive transfers.

        Returns:
            Stripe account id (acct_...)
        """
        try:
            account = stripe.Account.create(
                type="express",
                country=country,
                email=email,
                business_type="individual",
                capabilities={
                    "card_payments": {"requested": True},
                    "transfers": {"requested": True},
                },
            )
        except stripe.StripeError as e:
            logger.error(f"Connected account creation failed: {str(e)}")
            raise PaymentException(f"Account setup failed: {str(e)}", code=e.code) from e

        logger.info(f"Created Stripe connected account {mask_value(account.id)}")
        return account.id

    @staticmethod
    def _declined_intent_id(error) -> Optional[str]:
        payment_intent = getattr(getattr(error, "error", None), "payment_intent", None)
        if payment_intent:
            return payment_intent.get("id")
        return None

    def _map_stripe_payment_status(self, stripe_status: str) -> PaymentStatus:
        """
        Map Stripe payment intent status to internal PaymentStatus.

        Args:
            stripe_status: Stripe payment intent status

        Returns:
            PaymentStatus enum value
        """
        status_mapping = {
            "processing": PaymentStatus.PROCESSING,
            "requires_capture": PaymentStatus.PROCESSING,
            "canceled": PaymentStatus.CANCELED,
            "succeeded": PaymentStatus.SUCCEEDED,
        }

        # requires_payment_method / requires_action cannot complete server-side
        return status_mapping.get(stripe_status, PaymentStatus.FAILED)
