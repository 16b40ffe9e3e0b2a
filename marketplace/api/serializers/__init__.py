from marketplace.ordering.api.serializers.order_serializers import (
    CreateOrderRequestSerializer,
    OrderDetailSerializer,
    OrderSerializer,
    OrderStatusChangeSerializer,
    UpdateOrderStatusRequestSerializer,
)
from marketplace.sellers.api.serializers.seller_serializers import (
    OnboardingRequestSerializer,
    PayoutDestinationRequestSerializer,
    SellerAccountSerializer,
)

from .response_serializers import ErrorResponseSerializer, OrderListResponseSerializer

__all__ = [
    "CreateOrderRequestSerializer",
    "ErrorResponseSerializer",
    "OnboardingRequestSerializer",
    "OrderDetailSerializer",
    "OrderListResponseSerializer",
    "OrderSerializer",
    "OrderStatusChangeSerializer",
    "PayoutDestinationRequestSerializer",
    "SellerAccountSerializer",
    "UpdateOrderStatusRequestSerializer",
]
