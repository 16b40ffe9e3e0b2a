from decimal import Decimal

from rest_framework import serializers

from payment_system.domain.services.currency import quantum
from payment_system.models import ReconciliationEntry, SettlementRecord
from utils.logging_utils import mask_value


class CurrencyAmountsMixin:
    """Render ``amount_fields`` at the precision of the row's currency (19.99 USD, 0.945 KWD)."""

    amount_fields = ()

    def to_representation(self, instance):
        data = super().to_representation(instance)
        for name in self.amount_fields:
            if data.get(name) is not None:
                data[name] = str(Decimal(str(data[name])).quantize(quantum(data["currency"])))
        return data


# ==============================================================================
# Settlement Responses
# ==============================================================================


class SettlementRecordSerializer(CurrencyAmountsMixin, serializers.ModelSerializer):
    """Full ledger view for the seller and staff"""

    amount_fields = ("total_amount", "platform_commission", "seller_payout")
    payment_method_ref = serializers.SerializerMethodField()

    class Meta:
        model = SettlementRecord
        fields = [
            "id",
            "order",
            "attempt_number",
            "idempotency_key",
            "currency",
            "total_amount",
            "commission_rate",
            "platform_commission",
            "seller_payout",
            "payment_method_ref",
            "payout_destination",
            "charge_ref",
            "transfer_ref",
            "outcome",
            "transfer_attempts",
            "failure_code",
            "failure_message",
            "created_at",
            "updated_at",
            "completed_at",
        ]
        read_only_fields = fields

    def get_payment_method_ref(self, obj) -> str:
        return mask_value(obj.payment_method_ref)


class BuyerSettlementSerializer(CurrencyAmountsMixin, serializers.Serializer):
    """
    What the buyer sees. Payout problems are platform-facing, so every
    outcome after a successful charge is reported as paid.
    """

    amount_fields = ("total_amount",)

    order_id = serializers.UUIDField(source="record.order_id")
    attempt_number = serializers.IntegerField(source="record.attempt_number")
    total_amount = serializers.DecimalField(source="record.total_amount", max_digits=12, decimal_places=3)
    currency = serializers.CharField(source="record.currency")
    status = serializers.SerializerMethodField()
    message = serializers.CharField()

    def get_status(self, obj) -> str:
        outcome = obj.record.outcome
        if outcome in SettlementRecord.TERMINAL_CHARGED_OUTCOMES or outcome in (
            SettlementRecord.OUTCOME_CHARGED,
            SettlementRecord.OUTCOME_TRANSFER_UNKNOWN,
        ):
            return "paid"
        if outcome == SettlementRecord.OUTCOME_CHARGE_FAILED:
            return "failed"
        return "processing"


# ==============================================================================
# Reconciliation / Admin Responses
# ==============================================================================


class ReconciliationEntrySerializer(CurrencyAmountsMixin, serializers.ModelSerializer):
    amount_fields = ("amount",)

    order_id = serializers.UUIDField(source="settlement.order_id", read_only=True)
    seller_id = serializers.IntegerField(source="settlement.order.seller_id", read_only=True)

    class Meta:
        model = ReconciliationEntry
        fields = [
            "id",
            "settlement",
            "order_id",
            "seller_id",
            "kind",
            "status",
            "amount",
            "currency",
            "attempts",
            "next_attempt_at",
            "last_error",
            "resolution_ref",
            "resolved_at",
            "notes",
            "created_at",
        ]
        read_only_fields = fields


class RevenueRowSerializer(CurrencyAmountsMixin, serializers.Serializer):
    amount_fields = ("platform_commission", "gross_volume", "seller_payouts")

    currency = serializers.CharField()
    platform_commission = serializers.DecimalField(max_digits=16, decimal_places=3)
    gross_volume = serializers.DecimalField(max_digits=16, decimal_places=3)
    seller_payouts = serializers.DecimalField(max_digits=16, decimal_places=3)
    orders_settled = serializers.IntegerField()
    sellers = serializers.IntegerField()


class RevenueSummarySerializer(serializers.Serializer):
    """Platform revenue per currency"""

    since = serializers.DateTimeField(allow_null=True)
    currencies = RevenueRowSerializer(many=True)


class ReconciliationSweepResponseSerializer(serializers.Serializer):
    processed = serializers.IntegerField()
    resolved = serializers.IntegerField()
    rescheduled = serializers.IntegerField()
    abandoned = serializers.IntegerField()
    requeued = serializers.IntegerField()


# ==============================================================================
# Common Responses
# ==============================================================================


class ErrorResponseSerializer(serializers.Serializer):
    """Standard error response"""

    error = serializers.CharField(help_text="Error code identifier")
    detail = serializers.CharField(help_text="Human-readable error message")
