from dataclasses import dataclass, field
from typing import Any, Dict


@dataclass
class DomainEvent:
    """A marketplace fact other apps may react to. The bus stamps ``occurred_at`` on publish."""

    event_type: str
    payload: Dict[str, Any] = field(default_factory=dict)

    def publish(self, event_bus):
        event_bus.publish(self.event_type, self.payload)
