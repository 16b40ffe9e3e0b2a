from rest_framework import serializers


class SettlementRequestSerializer(serializers.Serializer):
    order_id = serializers.UUIDField(required=True, help_text="ID of the order to settle")
    payment_method_ref = serializers.CharField(
        required=True, max_length=255, help_text="Payment method reference to charge (e.g. pm_...)"
    )


class ReconciliationResolveRequestSerializer(serializers.Serializer):
    resolution_ref = serializers.CharField(
        required=True, max_length=255, help_text="Provider reference proving the money moved (e.g. tr_...)"
    )
    notes = serializers.CharField(required=False, allow_blank=True, default="", help_text="Optional operator notes")
    outcome = serializers.ChoiceField(
        choices=["succeeded", "failed"],
        required=False,
        allow_null=True,
        default=None,
        help_text="Confirmed outcome of an unknown charge or transfer; required for those entries",
    )


class ReconciliationSweepRequestSerializer(serializers.Serializer):
    limit = serializers.IntegerField(required=False, default=100, min_value=1, max_value=1000)
