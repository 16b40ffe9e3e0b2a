import logging
from typing import List

from .event_bus_interface import EventBus


logger = logging.getLogger(__name__)


class InMemoryEventBus(EventBus):
    """Synchronous, process-local event bus.

    Handlers run inline on publish. Used by the test settings and
    single-process development setups (EVENT_BUS_BACKEND="memory").
    """

    def __init__(self):
        super().__init__()
        self.published: List[dict] = []

    def publish(self, event_type: str, payload: dict):
        message = self.envelope(event_type, payload)
        self.published.append(message)
        logger.info(f"Published event: {event_type}")
        self.dispatch(message)

    def events_of_type(self, event_type: str) -> List[dict]:
        return [message for message in self.published if message["event_type"] == event_type]

    def clear(self):
        """Forget published events; subscriptions stay."""
        self.published.clear()
