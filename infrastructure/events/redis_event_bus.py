import json
import logging
import threading
from typing import Optional

import redis
from django.conf import settings

from .event_bus_interface import EventBus
from .in_memory_event_bus import InMemoryEventBus


logger = logging.getLogger(__name__)

CHANNEL_PREFIX = "events."


class RedisEventBus(EventBus):
    """
    Cross-process event bus over Redis pub/sub.

    Each event type maps to channel ``events.<event_type>``. Publishing never
    raises: a Redis outage costs the notification, not the settlement.
    """

    def __init__(self, redis_url: Optional[str] = None):
        super().__init__()
        self.redis_url = redis_url or getattr(settings, "CELERY_BROKER_URL", None)
        if not isinstance(self.redis_url, str):
            self.redis_url = "redis://localhost:6379/0"

        try:
            self.redis_client = redis.from_url(self.redis_url)
        except (ValueError, redis.RedisError) as e:
            logger.error(f"Event bus disabled, bad Redis URL {self.redis_url}: {e}")
            self.redis_client = None

        self._listener: Optional[threading.Thread] = None

    def publish(self, event_type: str, payload: dict):
        if self.redis_client is None:
            logger.warning(f"Event {event_type} dropped: no Redis client")
            return

        try:
            self.redis_client.publish(
                CHANNEL_PREFIX + event_type, json.dumps(self.envelope(event_type, payload), default=str)
            )
        except redis.RedisError as e:
            logger.error(f"Event {event_type} dropped: {e}")
            return
        logger.info(f"Published event: {event_type}")

    def start_listening(self):
        """Consume subscribed channels on a daemon thread (idempotent)."""
        if self.redis_client is None or not self._subscribers:
            return
        if self._listener is not None and self._listener.is_alive():
            return

        self._listener = threading.Thread(target=self._listen, name="event-bus-listener", daemon=True)
        self._listener.start()

    def _listen(self):
        channels = [CHANNEL_PREFIX + event_type for event_type in self._subscribers]
        try:
            pubsub = self.redis_client.pubsub()
            pubsub.subscribe(*channels)
            logger.info(f"Event bus listening on {channels}")
            for raw in pubsub.listen():
                if raw["type"] == "message":
                    self._receive(raw["data"])
        except redis.RedisError as e:
            logger.error(f"Event bus listener stopped: {e}")

    def _receive(self, data):
        try:
            message = json.loads(data)
        except (TypeError, ValueError) as e:
            logger.error(f"Undecodable event message: {e}")
            return
        self.dispatch(message)


_event_bus_instance: Optional[EventBus] = None

EVENT_BUS_BACKENDS = {
    "redis": RedisEventBus,
    "memory": InMemoryEventBus,
}


def get_event_bus() -> EventBus:
    """Process-wide bus selected by EVENT_BUS_BACKEND (redis | memory)."""
    global _event_bus_instance
    if _event_bus_instance is None:
        backend = getattr(settings, "EVENT_BUS_BACKEND", "redis")
        if backend not in EVENT_BUS_BACKENDS:
            raise ValueError(f"Unknown event bus backend '{backend}'; expected one of {sorted(EVENT_BUS_BACKENDS)}")
        _event_bus_instance = EVENT_BUS_BACKENDS[backend]()
    return _event_bus_instance
