from .base import DomainEvent
from .order_events import OrderPlacedEvent, OrderStatusChangedEvent
from .seller_events import SellerPayoutDestinationRegisteredEvent


__all__ = [
    "DomainEvent",
    "OrderPlacedEvent",
    "OrderStatusChangedEvent",
    "SellerPayoutDestinationRegisteredEvent",
]
