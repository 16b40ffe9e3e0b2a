"""
Service container.

One process-wide registry for the provider adapters and the order,
seller, settlement and reconciliation services wired on top of them. Views,
Celery tasks and management commands resolve their services here so they
all share one payment provider and one event bus.

    from infrastructure.container import container

    result = container.settlement_service().settle_order(order_id, account, "pm_...")

Tests call ``container.reset()`` to drop everything that was built.
"""

import logging
from typing import Any, Callable, Dict, Optional

from .email import EmailFactory, EmailServiceInterface
from .events import get_event_bus
from .payments import PaymentFactory, PaymentProviderInterface

logger = logging.getLogger(__name__)


class ServiceContainer:
    """Lazily builds and caches services; every instantiation returns the same container."""

    _instance: Optional["ServiceContainer"] = None

    def __new__(cls):
        if cls._instance is None:
            instance = super().__new__(cls)
            instance._services: Dict[str, Any] = {}
            cls._instance = instance
            logger.info("Service container created")
        return cls._instance

    def _resolve(self, name: str, build: Callable[[], Any], rebuild: bool = False):
        if rebuild or name not in self._services:
            self._services[name] = build()
            logger.debug(f"Container built {name}: {type(self._services[name]).__name__}")
        return self._services[name]

    # Adapters. Passing a backend name replaces the cached adapter.

    def email(self, backend: Optional[str] = None) -> EmailServiceInterface:
        return self._resolve("email", lambda: EmailFactory.create(backend), rebuild=backend is not None)

    def payment(self, backend: Optional[str] = None) -> PaymentProviderInterface:
        return self._resolve("payment", lambda: PaymentFactory.create(backend), rebuild=backend is not None)

    # Domain services

    def order_service(self):
        from marketplace.services import OrderService

        return self._resolve("order_service", lambda: OrderService(event_bus=get_event_bus()))

    def seller_service(self):
        from marketplace.services import SellerService

        return self._resolve(
            "seller_service",
            lambda: SellerService(payment_provider=self.payment(), event_bus=get_event_bus()),
        )

    def settlement_service(self):
        from payment_system.domain.services.settlement_service import SettlementService

        return self._resolve(
            "settlement_service",
            lambda: SettlementService(
                payment_provider=self.payment(),
                event_bus=get_event_bus(),
                order_service=self.order_service(),
            ),
        )

    def reconciliation_service(self):
        from payment_system.domain.services.reconciliation_service import ReconciliationService

        return self._resolve(
            "reconciliation_service",
            lambda: ReconciliationService(
                settlement_service=self.settlement_service(),
                payment_provider=self.payment(),
                event_bus=get_event_bus(),
            ),
        )

    def reset(self):
        self._services.clear()
        logger.info("Service container reset")


container = ServiceContainer()
