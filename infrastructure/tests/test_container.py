"""
Service Container Tests
========================

Unit tests for dependency injection container.
"""

from django.test import TestCase, override_settings

from infrastructure.container import ServiceContainer, container
from infrastructure.email import EmailServiceInterface, MockEmailService
from infrastructure.events import InMemoryEventBus
from infrastructure.payments import MockPaymentProvider, PaymentProviderInterface, StripeProvider


class ServiceContainerTest(TestCase):
    """Test ServiceContainer implementation."""

    def setUp(self):
        container.reset()

    def tearDown(self):
        container.reset()

    def test_container_is_singleton(self):
        container1 = ServiceContainer()
        container2 = ServiceContainer()

        self.assertIs(container1, container2)
        self.assertIs(container1, container)

    @override_settings(EMAIL_SERVICE_BACKEND="mock")
    def test_get_email_service(self):
        email = container.email()

        self.assertIsInstance(email, EmailServiceInterface)
        self.assertIsInstance(email, MockEmailService)

        # Second call should return cached instance
        self.assertIs(email, container.email())

    @override_settings(PAYMENT_PROVIDER="mock")
    def test_get_payment_service(self):
        payment = container.payment()

        self.assertIsInstance(payment, PaymentProviderInterface)
        self.assertIsInstance(payment, MockPaymentProvider)
        self.assertIs(payment, container.payment())

    @override_settings(STRIPE_SECRET_KEY="sk_test_fake")
    def test_payment_with_explicit_backend(self):
        payment = container.payment("stripe")
        self.assertIsInstance(payment, StripeProvider)

    def test_reset_container(self):
        email1 = container.email("mock")
        payment1 = container.payment("mock")

        container.reset()

        self.assertIsNot(email1, container.email("mock"))
        self.assertIsNot(payment1, container.payment("mock"))


@override_settings(PAYMENT_PROVIDER="mock")
class DomainServiceWiringTest(TestCase):
    """Domain services are built once and share the container's adapters."""

    def setUp(self):
        container.reset()

    def tearDown(self):
        container.reset()

    def test_settlement_service_uses_container_payment_provider(self):
        settlement_service = container.settlement_service()

        self.assertIs(settlement_service.payment_provider, container.payment())
        self.assertIs(settlement_service.order_service, container.order_service())
        self.assertIsInstance(settlement_service.event_bus, InMemoryEventBus)

    def test_reconciliation_service_reuses_settlement_service(self):
        reconciliation_service = container.reconciliation_service()

        self.assertIs(reconciliation_service.settlement_service, container.settlement_service())
        self.assertIs(container.reconciliation_service(), reconciliation_service)

    def test_seller_service_is_cached(self):
        self.assertIs(container.seller_service(), container.seller_service())
