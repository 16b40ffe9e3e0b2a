from dataclasses import dataclass
from decimal import Decimal

from .base import DomainEvent


@dataclass
class OrderPlacedEvent(DomainEvent):
    """Event: Order placed."""

    def __init__(self, order_id: str, buyer_id: str, seller_id: str, total_amount: Decimal, currency: str):
        super().__init__(
            event_type="order.placed",
            payload={
                "order_id": order_id,
                "buyer_id": buyer_id,
                "seller_id": seller_id,
                "total_amount": str(total_amount),
                "currency": currency,
            },
        )


@dataclass
class OrderStatusChangedEvent(DomainEvent):
    """Event: Order moved to a new status."""

    def __init__(self, order_id: str, from_status: str, to_status: str, reason: str = ""):
        super().__init__(
            event_type="order.status_changed",
            payload={
                "order_id": order_id,
                "from_status": from_status,
                "to_status": to_status,
                "reason": reason,
            },
        )
