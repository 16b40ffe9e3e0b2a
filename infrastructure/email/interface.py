"""
Operator e-mail contract.

Settlement code only needs to tell humans that money is stuck; it builds an
``EmailMessage`` and hands it to whichever backend the container provides.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional


@dataclass
class EmailMessage:
    """Plain-text message addressed to operators.

    ``headers`` carries extra mail headers such as ``X-Settlement-Id`` so
    alert mail can be filtered by mailbox rules.
    """

    subject: str
    body: str
    to: List[str]
    from_email: Optional[str] = None
    cc: List[str] = field(default_factory=list)
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def recipients(self) -> List[str]:
        return [*self.to, *self.cc]


class EmailServiceInterface(ABC):
    @abstractmethod
    def send(self, message: EmailMessage) -> bool:
        """
        Deliver one message.

        Returns False when there was nobody to deliver to.

        Raises:
            EmailException: The backend accepted the call but could not deliver
        """


class EmailException(Exception):
    """Delivery failed inside the mail backend."""
