from rest_framework import serializers

from marketplace.models import SellerAccount


class SellerAccountSerializer(serializers.ModelSerializer):
    seller_id = serializers.IntegerField(read_only=True)
    has_payout_destination = serializers.BooleanField(read_only=True)

    class Meta:
        model = SellerAccount
        fields = ["seller_id", "payout_destination", "has_payout_destination", "is_verified", "created_at", "updated_at"]
        read_only_fields = fields


class PayoutDestinationRequestSerializer(serializers.Serializer):
    payout_destination = serializers.CharField(max_length=255, help_text="Stripe Connect account id (acct_...)")


class OnboardingRequestSerializer(serializers.Serializer):
    email = serializers.EmailField(help_text="E-mail for the connected account")
    country = serializers.CharField(max_length=2, default="US", help_text="2-letter Country Code (ISO 3166-1 alpha-2)")
