from dataclasses import dataclass

from .base import DomainEvent


@dataclass
class SellerPayoutDestinationRegisteredEvent(DomainEvent):
    """Event: Seller can now receive payouts; queued payouts may be retried."""

    def __init__(self, seller_id: str, payout_destination: str):
        super().__init__(
            event_type="seller.payout_destination_registered",
            payload={"seller_id": seller_id, "payout_destination": payout_destination},
        )
