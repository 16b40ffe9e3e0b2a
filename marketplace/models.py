from marketplace.ordering.domain.models import Order, OrderStatusChange
from marketplace.sellers.domain.models import SellerAccount


__all__ = [
    "Order",
    "OrderStatusChange",
    "SellerAccount",
]
