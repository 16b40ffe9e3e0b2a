import logging

from infrastructure.events import get_event_bus


logger = logging.getLogger(__name__)


def handle_order_placed(event_data):
    """Handle order.placed event."""
    payload = event_data.get("payload", {})
    logger.info(
        f"[Marketplace Listener] Order placed: {payload.get('order_id')} "
        f"({payload.get('total_amount')} {str(payload.get('currency', '')).upper()}) for seller {payload.get('seller_id')}"
    )


def handle_settlement_completed(event_data):
    """Handle settlement.completed event."""
    payload = event_data.get("payload", {})
    logger.info(
        f"[Marketplace Listener] Order {payload.get('order_id')} settled: "
        f"seller receives {payload.get('seller_payout')} {str(payload.get('currency', '')).upper()}"
    )


def register_marketplace_listeners():
    event_bus = get_event_bus()
    event_bus.subscribe("order.placed", handle_order_placed)
    event_bus.subscribe("settlement.completed", handle_settlement_completed)
