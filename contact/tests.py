from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.test import TestCase, override_settings
from rest_framework.test import APIClient

from common.errors import DeliveryError
from common.notifications import DeliveryInfo, NotificationGateway, normalize_recipients
from contact.models import ContactMessage


class RecordingGateway(NotificationGateway):
    mode = "recording"

    def __init__(self, fail=False):
        self.fail = fail
        self.sent = []

    def send(self, to, subject, text_body, html_body=None, attachments=None):
        if self.fail:
            raise DeliveryError("Email sending failed: connection refused")
        recipients = normalize_recipients(to)
        self.sent.append({"to": recipients, "subject": subject, "text_body": text_body})
        return DeliveryInfo(message_id="<contact@recording>", recipients=tuple(recipients))


def message_payload(**overrides):
    payload = {
        "name": "Ayanda Mthembu",
        "email": "Ayanda@Example.com",
        "phone": "+27 72 555 0123",
        "message": "Do you have marquee tents available for 200 guests in March?",
    }
    payload.update(overrides)
    return payload


@override_settings(CONTACT_TO=["bookings@eagleevents.com"])
class ContactSubmissionTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.gateway = RecordingGateway()
        patcher = patch("contact.services.get_notification_gateway", return_value=self.gateway)
        patcher.start()
        self.addCleanup(patcher.stop)

    def test_public_submission_is_stored_and_forwarded(self):
        response = self.client.post(
            "/api/v1/contact/",
            message_payload(),
            format="json",
            HTTP_USER_AGENT="pytest-browser",
            HTTP_REFERER="https://eagleevents.com/contact",
        )

        self.assertEqual(response.status_code, 201)
        body = response.json()
        self.assertEqual(body["message"], "Message saved successfully")

        message = ContactMessage.objects.get(id=body["id"])
        self.assertEqual(message.email, "ayanda@example.com")
        self.assertEqual(message.status, ContactMessage.Status.NEW)
        self.assertEqual(message.source, "website")
        self.assertEqual(message.meta["user_agent"], "pytest-browser")
        self.assertEqual(message.meta["referrer"], "https://eagleevents.com/contact")

        self.assertEqual(len(self.gateway.sent), 1)
        sent = self.gateway.sent[0]
        self.assertEqual(sent["to"], ["bookings@eagleevents.com"])
        self.assertEqual(sent["subject"], "New Website Message from Ayanda Mthembu")
        self.assertIn("marquee tents", sent["text_body"])

    def test_delivery_failure_still_stores_message(self):
        self.gateway.fail = True

        with self.assertLogs("contact.services", level="WARNING") as cm:
            response = self.client.post("/api/v1/contact/", message_payload(), format="json")

        self.assertEqual(response.status_code, 201)
        self.assertTrue(ContactMessage.objects.filter(id=response.json()["id"]).exists())
        self.assertTrue(any("contact_notification_failed" in line for line in cm.output))

    @override_settings(CONTACT_TO=[])
    def test_missing_recipient_skips_notification(self):
        with self.assertLogs("contact.services", level="WARNING") as cm:
            response = self.client.post("/api/v1/contact/", message_payload(), format="json")

        self.assertEqual(response.status_code, 201)
        self.assertEqual(self.gateway.sent, [])
        self.assertTrue(any("contact_notification_skipped_no_recipient" in line for line in cm.output))

    def test_invalid_submission_returns_validation_envelope(self):
        response = self.client.post(
            "/api/v1/contact/",
            message_payload(name="A", email="nope", message="Too short"),
            format="json",
        )

        self.assertEqual(response.status_code, 400)
        body = response.json()
        self.assertEqual(body["code"], "validation_error")
        self.assertEqual(set(body["errors"]), {"name", "email", "message"})
        self.assertFalse(ContactMessage.objects.exists())
        self.assertEqual(self.gateway.sent, [])


class ContactAdminTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.staff = get_user_model().objects.create_user(
            username="inbox-staff",
            email="inbox-staff@eagleevents.com",
            password="pass1234",
            role="staff",
        )
        self.first = ContactMessage.objects.create(**message_payload())
        self.second = ContactMessage.objects.create(
            **message_payload(name="Pieter van Wyk", email="pieter@example.com", message="Please call me back about a quote.")
        )
        self.second.status = ContactMessage.Status.READ
        self.second.save()

    def test_listing_requires_authentication(self):
        response = self.client.get("/api/v1/contact/")

        self.assertEqual(response.status_code, 401)

    def test_list_filters_by_status_and_query(self):
        self.client.force_authenticate(user=self.staff)

        response = self.client.get("/api/v1/contact/", {"status": "read"})
        self.assertEqual([row["name"] for row in response.json()["results"]], ["Pieter van Wyk"])

        response = self.client.get("/api/v1/contact/", {"q": "marquee"})
        self.assertEqual([row["name"] for row in response.json()["results"]], ["Ayanda Mthembu"])

    def test_status_is_the_only_writable_field(self):
        self.client.force_authenticate(user=self.staff)

        response = self.client.patch(
            f"/api/v1/contact/{self.first.id}/",
            {"status": "replied", "message": "Rewritten by staff member."},
            format="json",
        )

        self.assertEqual(response.status_code, 200)
        self.first.refresh_from_db()
        self.assertEqual(self.first.status, ContactMessage.Status.REPLIED)
        self.assertIn("marquee tents", self.first.message)

    def test_invalid_status_is_rejected(self):
        self.client.force_authenticate(user=self.staff)

        response = self.client.patch(f"/api/v1/contact/{self.first.id}/", {"status": "spam"}, format="json")

        self.assertEqual(response.status_code, 400)

    def test_put_is_not_allowed(self):
        self.client.force_authenticate(user=self.staff)

        response = self.client.put(f"/api/v1/contact/{self.first.id}/", {"status": "closed"}, format="json")

        self.assertEqual(response.status_code, 405)

    def test_delete(self):
        self.client.force_authenticate(user=self.staff)

        response = self.client.delete(f"/api/v1/contact/{self.second.id}/")

        self.assertEqual(response.status_code, 204)
        self.assertFalse(ContactMessage.objects.filter(pk=self.second.pk).exists())
