from rest_framework import serializers

from marketplace.models import Order, OrderStatusChange
from utils.logging_utils import mask_value


class OrderStatusChangeSerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderStatusChange
        fields = ["from_status", "to_status", "reason", "created_at"]


class OrderSerializer(serializers.ModelSerializer):
    buyer_id = serializers.IntegerField(read_only=True)
    seller_id = serializers.IntegerField(read_only=True)
    payment_method = serializers.SerializerMethodField()

    class Meta:
        model = Order
        fields = [
            "id",
            "buyer_id",
            "seller_id",
            "status",
            "total_amount",
            "currency",
            "shipping_address",
            "payment_method",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields

    def get_payment_method(self, obj) -> str:
        return mask_value(obj.payment_method)


class OrderDetailSerializer(OrderSerializer):
    status_history = OrderStatusChangeSerializer(source="status_changes", many=True, read_only=True)

    class Meta(OrderSerializer.Meta):
        fields = OrderSerializer.Meta.fields + ["status_history"]
        read_only_fields = fields


class CreateOrderRequestSerializer(serializers.Serializer):
    """Request body for creating an order"""

    seller_id = serializers.IntegerField(help_text="Id of the selling user")
    total_amount = serializers.DecimalField(
        max_digits=10, decimal_places=2, help_text="Order total including shipping and tax"
    )
    shipping_address = serializers.JSONField(help_text="Shipping address (string or object)")
    payment_method = serializers.CharField(max_length=255, help_text="Payment method reference, e.g. pm_...")


class UpdateOrderStatusRequestSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=[choice for choice, _ in Order.STATUS_CHOICES])
    reason = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")
