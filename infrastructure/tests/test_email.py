"""
Email Infrastructure Tests
===========================

Unit tests for email service abstraction layer.
"""

import smtplib
from unittest.mock import patch

from django.test import TestCase, override_settings

from infrastructure.email import (
    EmailException,
    EmailFactory,
    EmailMessage,
    EmailServiceInterface,
    MockEmailService,
    SMTPEmailService,
)


class EmailInterfaceTest(TestCase):
    """Test EmailServiceInterface contract."""

    def test_interface_is_abstract(self):
        """EmailServiceInterface should not be instantiable."""
        with self.assertRaises(TypeError):
            EmailServiceInterface()


class MockEmailServiceTest(TestCase):
    """Test MockEmailService implementation."""

    def setUp(self):
        self.email_service = MockEmailService()

    def test_send_email(self):
        message = EmailMessage(subject="Settlement alert", body="Transfer failed", to=["ops@example.com"])

        self.assertTrue(self.email_service.send(message))
        self.assertEqual(self.email_service.sent_messages, [message])
        self.assertEqual(self.email_service.get_last_message(), message)

    def test_message_without_recipients_is_dropped(self):
        self.assertFalse(self.email_service.send(EmailMessage(subject="a", body="b", to=[])))
        self.assertEqual(self.email_service.sent_messages, [])

    def test_cc_counts_as_recipient(self):
        message = EmailMessage(subject="a", body="b", to=["ops@example.com"], cc=["cfo@example.com"])

        self.assertEqual(message.recipients, ["ops@example.com", "cfo@example.com"])

    def test_clear_sent_messages(self):
        self.email_service.send(EmailMessage(subject="a", body="b", to=["ops@example.com"]))

        self.email_service.clear_sent_messages()

        self.assertIsNone(self.email_service.get_last_message())


@override_settings(
    EMAIL_BACKEND="django.core.mail.backends.locmem.EmailBackend",
    DEFAULT_FROM_EMAIL="payments@example.com",
)
class SMTPEmailServiceTest(TestCase):
    """Test SMTPEmailService implementation."""

    def setUp(self):
        self.email_service = SMTPEmailService()

    def test_send_through_django_backend(self):
        from django.core import mail

        sent = self.email_service.send(
            EmailMessage(
                subject="Settlement alert",
                body="Transfer failed",
                to=["ops@example.com"],
                cc=["cfo@example.com"],
                headers={"X-Settlement-Id": "abc"},
            )
        )

        self.assertTrue(sent)
        self.assertEqual(len(mail.outbox), 1)
        self.assertEqual(mail.outbox[0].from_email, "payments@example.com")
        self.assertEqual(mail.outbox[0].cc, ["cfo@example.com"])
        self.assertEqual(mail.outbox[0].extra_headers["X-Settlement-Id"], "abc")

    def test_no_recipients(self):
        self.assertFalse(self.email_service.send(EmailMessage(subject="a", body="b", to=[])))

    @patch("infrastructure.email.smtp_service.DjangoEmailMessage.send")
    def test_smtp_failure_raises(self, mock_send):
        mock_send.side_effect = smtplib.SMTPException("Connection refused")

        with self.assertRaises(EmailException):
            self.email_service.send(EmailMessage(subject="a", body="b", to=["ops@example.com"]))


class EmailFactoryTest(TestCase):
    """Test EmailFactory."""

    def test_create_mock(self):
        self.assertIsInstance(EmailFactory.create("mock"), MockEmailService)

    def test_create_smtp(self):
        self.assertIsInstance(EmailFactory.create("smtp"), SMTPEmailService)

    @override_settings(EMAIL_SERVICE_BACKEND="mock")
    def test_create_from_settings(self):
        self.assertIsInstance(EmailFactory.create(), MockEmailService)

    def test_invalid_backend(self):
        with self.assertRaises(ValueError):
            EmailFactory.create("carrier_pigeon")
