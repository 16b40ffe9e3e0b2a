import logging
import os

from django.apps import AppConfig


logger = logging.getLogger(__name__)


class PaymentSystemConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "payment_system"
    verbose_name = "Payment System"

    def ready(self):
        """Initialize payment system when Django starts"""
        from django.conf import settings

        from infrastructure.events import RedisEventBus, get_event_bus
        from infrastructure.observability.tracing import setup_tracing
        from payment_system.infra.events.listeners import register_payment_listeners

        # Register event listeners (Must run in all processes)
        register_payment_listeners()

        setup_tracing(
            service_name=getattr(settings, "OTEL_SERVICE_NAME", "market-backend"),
            endpoint=getattr(settings, "OTEL_EXPORTER_OTLP_TRACES_ENDPOINT", None),
            enable=getattr(settings, "OTEL_TRACING_ENABLED", False),
        )

        # Only the serving process listens on Redis, not the autoreloader parent
        if os.environ.get("RUN_MAIN") != "true":
            return

        event_bus = get_event_bus()
        if isinstance(event_bus, RedisEventBus):
            event_bus.start_listening()
            logger.info("[STARTUP] Payment System listening for events")
