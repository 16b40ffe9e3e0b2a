from django.conf import settings
from django.db import models


class SellerAccount(models.Model):
    """
    A seller's payout profile.

    The account is passed explicitly into settlement as proof that the caller
    resolved the order's seller; ``payout_destination`` is the connected
    account that receives transfers and may be empty until the seller
    onboards.
    """

    seller = models.OneToOneField(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="seller_account")
    payout_destination = models.CharField(
        max_length=255, blank=True, help_text="Stripe Connect account id (acct_...)"
    )
    is_verified = models.BooleanField(default=False)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        app_label = "marketplace"

    def __str__(self):
        return f"SellerAccount for {self.seller_id}"

    @property
    def has_payout_destination(self) -> bool:
        return bool(self.payout_destination)
