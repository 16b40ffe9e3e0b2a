from django.test import TestCase

from infrastructure.events import get_event_bus
from marketplace.infra.events.listeners import handle_order_placed, handle_settlement_completed


class ListenerTests(TestCase):
    def test_handle_order_placed_logs(self):
        event_data = {
            "event_type": "order.placed",
            "payload": {"order_id": "abc", "total_amount": "19.99", "currency": "usd", "seller_id": "7"},
        }

        with self.assertLogs("marketplace.infra.events.listeners", level="INFO") as logs:
            handle_order_placed(event_data)

        self.assertIn("19.99 USD", logs.output[0])

    def test_handle_settlement_completed_logs(self):
        event_data = {"payload": {"order_id": "abc", "seller_payout": "17.99", "currency": "usd"}}

        with self.assertLogs("marketplace.infra.events.listeners", level="INFO") as logs:
            handle_settlement_completed(event_data)

        self.assertIn("seller receives 17.99 USD", logs.output[0])

    def test_listeners_registered_on_startup(self):
        event_bus = get_event_bus()

        self.assertIn(handle_order_placed, event_bus._subscribers["order.placed"])
        self.assertIn(handle_settlement_completed, event_bus._subscribers["settlement.completed"])
