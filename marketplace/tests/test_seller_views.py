from unittest.mock import patch

from django.test import TestCase
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APIClient

from infrastructure.container import container
from infrastructure.payments import PaymentException
from marketplace.models import SellerAccount
from marketplace.tests.factories import SellerAccountFactory, UserFactory


class SellerViewTests(TestCase):
    def setUp(self):
        container.reset()
        self.client = APIClient()
        self.user = UserFactory()
        self.client.force_authenticate(user=self.user)

    def test_enroll_and_read_account(self):
        response = self.client.get(reverse("marketplace:seller-me"))
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

        response = self.client.post(reverse("marketplace:seller-enroll"))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(response.data["has_payout_destination"])

        response = self.client.get(reverse("marketplace:seller-me"))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["seller_id"], self.user.pk)

    def test_register_payout_destination(self):
        response = self.client.post(
            reverse("marketplace:seller-payout-destination"), {"payout_destination": "acct_123ABC"}, format="json"
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(SellerAccount.objects.get(seller=self.user).payout_destination, "acct_123ABC")

    def test_register_invalid_payout_destination(self):
        SellerAccountFactory(seller=self.user, payout_destination="acct_existing")

        response = self.client.post(
            reverse("marketplace:seller-payout-destination"), {"payout_destination": "iban_PT50"}, format="json"
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(SellerAccount.objects.get(seller=self.user).payout_destination, "acct_existing")

    def test_onboarding_uses_payment_provider(self):
        response = self.client.post(
            reverse("marketplace:seller-onboarding"), {"email": "seller@example.com", "country": "PT"}, format="json"
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data["payout_destination"].startswith("acct_"))
        self.assertEqual(container.payment().accounts, [response.data["payout_destination"]])

    def test_onboarding_provider_error_is_bad_gateway(self):
        with patch.object(
            container.payment(), "create_connected_account", side_effect=PaymentException("Stripe unavailable")
        ):
            response = self.client.post(
                reverse("marketplace:seller-onboarding"), {"email": "seller@example.com"}, format="json"
            )

        self.assertEqual(response.status_code, status.HTTP_502_BAD_GATEWAY)
        self.assertEqual(response.data["error"], "payment_provider_error")
