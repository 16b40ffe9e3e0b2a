"""
Payment Infrastructure Tests
==============================

Unit tests for payment provider abstraction layer.
"""

from decimal import Decimal
from unittest.mock import MagicMock, patch

import stripe
from django.test import TestCase, override_settings

from infrastructure.payments import (
    MockPaymentProvider,
    PaymentDeclined,
    PaymentException,
    PaymentFactory,
    PaymentProviderInterface,
    PaymentStatus,
    PaymentTimeout,
    StripeProvider,
)


class PaymentInterfaceTest(TestCase):
    """Test PaymentProviderInterface contract."""

    def test_interface_is_abstract(self):
        """PaymentProviderInterface should not be instantiable."""
        with self.assertRaises(TypeError):
            PaymentProviderInterface()


def stripe_intent(status="succeeded", amount=1999):
    intent = MagicMock()
    intent.id = "pi_test_123"
    intent.status = status
    intent.amount = amount
    intent.currency = "usd"
    intent.metadata = {"order_id": "123"}
    intent.last_payment_error = None
    return intent


@override_settings(STRIPE_SECRET_KEY="sk_test_fake")
class StripeChargeTest(TestCase):
    """Test StripeProvider.charge."""

    def setUp(self):
        self.provider = StripeProvider()

    @patch("stripe.PaymentIntent.create")
    def test_charge_success(self, mock_create):
        mock_create.return_value = stripe_intent()

        result = self.provider.charge(
            amount=Decimal("19.99"),
            currency="USD",
            payment_method_ref="pm_card_visa",
            idempotency_key="settlement-123-1-charge",
            metadata={"order_id": "123"},
        )

        self.assertTrue(result.succeeded)
        self.assertEqual(result.charge_ref, "pi_test_123")
        self.assertEqual(result.amount, 1999)

        kwargs = mock_create.call_args.kwargs
        self.assertEqual(kwargs["amount"], 1999)
        self.assertEqual(kwargs["currency"], "usd")
        self.assertEqual(kwargs["idempotency_key"], "settlement-123-1-charge")
        self.assertTrue(kwargs["confirm"])

    @patch("stripe.PaymentIntent.create")
    def test_intent_requiring_action_is_failed(self, mock_create):
        mock_create.return_value = stripe_intent(status="requires_action")

        result = self.provider.charge(Decimal("19.99"), "usd", "pm_card_3ds", "key-1")

        self.assertEqual(result.status, PaymentStatus.FAILED)
        self.assertEqual(result.failure_code, "requires_action")

    @patch("stripe.PaymentIntent.create")
    def test_processing_intent(self, mock_create):
        mock_create.return_value = stripe_intent(status="processing")

        result = self.provider.charge(Decimal("19.99"), "usd", "pm_card_visa", "key-1")

        self.assertEqual(result.status, PaymentStatus.PROCESSING)

    @patch("stripe.PaymentIntent.create")
    def test_card_error_is_declined(self, mock_create):
        mock_create.side_effect = stripe.CardError("Your card has expired.", "number", "expired_card")

        with self.assertRaises(PaymentDeclined) as ctx:
            self.provider.charge(Decimal("19.99"), "usd", "pm_card_expired", "key-1")

        self.assertEqual(ctx.exception.code, "expired_card")

    @patch("stripe.PaymentIntent.create")
    def test_connection_error_is_unknown_outcome(self, mock_create):
        mock_create.side_effect = stripe.APIConnectionError("Connection reset")

        with self.assertRaises(PaymentTimeout):
            self.provider.charge(Decimal("19.99"), "usd", "pm_card_visa", "key-1")

    @patch("stripe.PaymentIntent.create")
    def test_authentication_error_is_provider_error(self, mock_create):
        mock_create.side_effect = stripe.AuthenticationError("Invalid API key")

        with self.assertRaises(PaymentException) as ctx:
            self.provider.charge(Decimal("19.99"), "usd", "pm_card_visa", "key-1")

        self.assertNotIsInstance(ctx.exception, (PaymentDeclined, PaymentTimeout))

    @patch("time.sleep")
    @patch("stripe.PaymentIntent.create")
    def test_rate_limit_is_retried_with_same_key(self, mock_create, mock_sleep):
        mock_create.side_effect = [stripe.RateLimitError("Too many requests"), stripe_intent()]

        result = self.provider.charge(Decimal("19.99"), "usd", "pm_card_visa", "key-1")

        self.assertTrue(result.succeeded)
        self.assertEqual(mock_create.call_count, 2)
        keys = {call.kwargs["idempotency_key"] for call in mock_create.call_args_list}
        self.assertEqual(keys, {"key-1"})


@override_settings(STRIPE_SECRET_KEY="sk_test_fake")
class StripeTransferTest(TestCase):
    """Test StripeProvider.transfer and connected accounts."""

    def setUp(self):
        self.provider = StripeProvider()

    @patch("stripe.Transfer.create")
    def test_transfer_success(self, mock_create):
        mock_transfer = MagicMock()
        mock_transfer.id = "tr_test_123"
        mock_transfer.amount = 1799
        mock_transfer.currency = "usd"
        mock_transfer.destination = "acct_seller"
        mock_create.return_value = mock_transfer

        result = self.provider.transfer(
            amount=Decimal("17.99"),
            currency="usd",
            destination_account="acct_seller",
            idempotency_key="settlement-123-1-transfer",
            metadata={"order_id": "123"},
        )

        self.assertTrue(result.succeeded)
        self.assertEqual(result.transfer_ref, "tr_test_123")
        mock_create.assert_called_once_with(
            amount=1799,
            currency="usd",
            destination="acct_seller",
            idempotency_key="settlement-123-1-transfer",
            metadata={"order_id": "123"},
            transfer_group="order_123",
        )

    @patch("stripe.Transfer.create")
    def test_rejected_transfer_is_declined(self, mock_create):
        mock_create.side_effect = stripe.InvalidRequestError("No such destination", "destination")

        with self.assertRaises(PaymentDeclined):
            self.provider.transfer(Decimal("17.99"), "usd", "acct_missing", "key-1")

    @patch("stripe.Transfer.create")
    def test_transfer_api_error_is_unknown_outcome(self, mock_create):
        mock_create.side_effect = stripe.APIError("Internal error")

        with self.assertRaises(PaymentTimeout):
            self.provider.transfer(Decimal("17.99"), "usd", "acct_seller", "key-1")

    @patch("stripe.Account.create")
    def test_create_connected_account(self, mock_create):
        mock_create.return_value = MagicMock(id="acct_new123")

        account_id = self.provider.create_connected_account("seller@example.com", country="PT")

        self.assertEqual(account_id, "acct_new123")
        self.assertEqual(mock_create.call_args.kwargs["type"], "express")
        self.assertEqual(mock_create.call_args.kwargs["country"], "PT")

    @patch("stripe.Account.create")
    def test_connected_account_failure(self, mock_create):
        mock_create.side_effect = stripe.APIConnectionError("Connection reset")

        with self.assertRaises(PaymentException):
            self.provider.create_connected_account("seller@example.com")


class MockPaymentProviderTest(TestCase):
    """Test MockPaymentProvider idempotency and scripting."""

    def setUp(self):
        self.provider = MockPaymentProvider()

    def test_same_key_charges_once(self):
        first = self.provider.charge(Decimal("19.99"), "usd", "pm_card_visa", "key-1")
        second = self.provider.charge(Decimal("19.99"), "usd", "pm_card_visa", "key-1")

        self.assertEqual(first.charge_ref, second.charge_ref)
        self.assertEqual(len(self.provider.successful_charges), 1)
        self.assertEqual(first.amount, 1999)

    def test_declined_charge_is_remembered(self):
        self.provider.decline_payment_method("pm_card_declined")

        with self.assertRaises(PaymentDeclined):
            self.provider.charge(Decimal("19.99"), "usd", "pm_card_declined", "key-1")

        self.assertEqual(self.provider.charges["key-1"].status, PaymentStatus.FAILED)
        self.assertEqual(self.provider.successful_charges, [])

    def test_timed_out_charge_still_lands(self):
        self.provider.time_out_next_charge()

        with self.assertRaises(PaymentTimeout):
            self.provider.charge(Decimal("19.99"), "usd", "pm_card_visa", "key-1")

        replay = self.provider.charge(Decimal("19.99"), "usd", "pm_card_visa", "key-1")
        self.assertTrue(replay.succeeded)
        self.assertEqual(len(self.provider.successful_charges), 1)

    def test_declined_transfer_is_replayed_for_its_key(self):
        self.provider.fail_transfers_to("acct_broken", times=1)

        with self.assertRaises(PaymentDeclined):
            self.provider.transfer(Decimal("17.99"), "usd", "acct_broken", "key-1")

        # The destination has recovered, but the key still carries the refusal
        with self.assertRaises(PaymentDeclined) as ctx:
            self.provider.transfer(Decimal("17.99"), "usd", "acct_broken", "key-1")
        self.assertEqual(ctx.exception.code, "transfer_failed")
        self.assertEqual(self.provider.transfers, {})

        result = self.provider.transfer(Decimal("17.99"), "usd", "acct_broken", "key-2")
        self.assertTrue(result.succeeded)
        self.assertEqual(list(self.provider.transfers), ["key-2"])


class PaymentFactoryTest(TestCase):
    """Test PaymentFactory."""

    def test_create_mock(self):
        self.assertIsInstance(PaymentFactory.create("mock"), MockPaymentProvider)

    @override_settings(STRIPE_SECRET_KEY="sk_test_fake")
    def test_create_stripe(self):
        self.assertIsInstance(PaymentFactory.create("stripe"), StripeProvider)

    @override_settings(PAYMENT_PROVIDER="mock")
    def test_create_from_settings(self):
        self.assertIsInstance(PaymentFactory.create(), MockPaymentProvider)

    def test_invalid_backend(self):
        with self.assertRaises(ValueError):
            PaymentFactory.create("paypal")
