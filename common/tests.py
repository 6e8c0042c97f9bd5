from unittest.mock import Mock

from django.core import mail
from django.core.exceptions import ImproperlyConfigured
from django.test import SimpleTestCase, override_settings

from common.errors import DeliveryError
from common.notifications import (
    Attachment,
    EmailNotificationGateway,
    LoggingNotificationGateway,
    build_notification_gateway,
    normalize_recipients,
)


@override_settings(
    EMAIL_BACKEND="django.core.mail.backends.locmem.EmailBackend",
    DEFAULT_FROM_EMAIL="Eagles Events <noreply@eagleevents.com>",
)
class EmailNotificationGatewayTests(SimpleTestCase):
    def test_send_builds_multipart_message_with_attachment(self):
        gateway = EmailNotificationGateway()

        info = gateway.send(
            "client@example.com, ops@eagleevents.com",
            "Your Quote Request - QTE-20260101-ABCDE",
            "Plain body",
            html_body="<p>Html body</p>",
            attachments=[Attachment("Quote-QTE-20260101-ABCDE.pdf", b"%PDF-1.4")],
        )

        self.assertTrue(info.delivered)
        self.assertEqual(info.recipients, ("client@example.com", "ops@eagleevents.com"))
        self.assertEqual(len(mail.outbox), 1)
        message = mail.outbox[0]
        self.assertEqual(message.from_email, "Eagles Events <noreply@eagleevents.com>")
        self.assertEqual(message.alternatives[0][1], "text/html")
        self.assertEqual(message.attachments[0][0], "Quote-QTE-20260101-ABCDE.pdf")
        self.assertEqual(message.extra_headers["Message-ID"], info.message_id)

    def test_send_without_recipients_fails(self):
        with self.assertRaises(DeliveryError):
            EmailNotificationGateway().send([], "Subject", "Body")
        self.assertEqual(mail.outbox, [])

    def test_transport_errors_become_delivery_errors(self):
        connection = Mock()
        connection.send_messages.side_effect = ConnectionRefusedError("refused")
        gateway = EmailNotificationGateway(connection=connection)

        with self.assertRaises(DeliveryError) as ctx:
            gateway.send("client@example.com", "Subject", "Body")

        self.assertIn("refused", str(ctx.exception))

    def test_verify_reports_connection_failures(self):
        connection = Mock()
        connection.open.side_effect = OSError("no route to host")

        with self.assertLogs("common.notifications", level="ERROR"):
            self.assertFalse(EmailNotificationGateway(connection=connection).verify())
        self.assertTrue(EmailNotificationGateway().verify())


class LoggingNotificationGatewayTests(SimpleTestCase):
    def test_send_only_logs(self):
        with self.assertLogs("common.notifications", level="INFO") as cm:
            info = LoggingNotificationGateway().send(["client@example.com"], "Subject", "Body")

        self.assertFalse(info.delivered)
        self.assertTrue(info.message_id.startswith("no-send-"))
        self.assertTrue(any("email_not_sent" in line for line in cm.output))
        self.assertEqual(mail.outbox, [])

    def test_verify_is_false(self):
        self.assertFalse(LoggingNotificationGateway().verify())


class GatewaySelectionTests(SimpleTestCase):
    def test_backend_names_select_gateway(self):
        self.assertIsInstance(build_notification_gateway("email"), EmailNotificationGateway)
        with self.assertLogs("common.notifications", level="WARNING"):
            self.assertIsInstance(build_notification_gateway(" Logging "), LoggingNotificationGateway)

    @override_settings(NOTIFICATION_BACKEND="carrier-pigeon")
    def test_unknown_backend_is_a_configuration_error(self):
        with self.assertRaises(ImproperlyConfigured):
            build_notification_gateway()

    def test_normalize_recipients(self):
        self.assertEqual(normalize_recipients(" a@example.com ,, b@example.com "), ["a@example.com", "b@example.com"])
        self.assertEqual(normalize_recipients(None), [])
