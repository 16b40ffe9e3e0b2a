import logging
from abc import ABC, abstractmethod
from typing import Callable, Dict, List

from django.utils import timezone


logger = logging.getLogger(__name__)


class EventBus(ABC):
    """
    Publish/subscribe contract shared by the Redis and in-memory buses.

    Handlers receive an envelope ``{"event_type", "occurred_at", "payload"}``.
    A failing handler is logged and never reaches the publisher: settlement
    code publishes after money has moved.
    """

    def __init__(self):
        self._subscribers: Dict[str, List[Callable]] = {}

    @abstractmethod
    def publish(self, event_type: str, payload: dict):
        """Publish ``payload`` under ``event_type``."""

    def subscribe(self, event_type: str, handler: Callable):
        handlers = self._subscribers.setdefault(event_type, [])
        if handler in handlers:
            return
        handlers.append(handler)
        logger.info(f"Subscribed {getattr(handler, '__name__', handler)} to {event_type}")

    @staticmethod
    def envelope(event_type: str, payload: dict) -> dict:
        return {"event_type": event_type, "occurred_at": timezone.now().isoformat(), "payload": payload}

    def dispatch(self, message: dict):
        event_type = message.get("event_type")
        for handler in list(self._subscribers.get(event_type, [])):
            try:
                handler(message)
            except Exception:
                logger.exception(f"Handler {getattr(handler, '__name__', handler)} failed for {event_type}")
