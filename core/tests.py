from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.test import TestCase, override_settings
from rest_framework.test import APIClient

from common.notifications import LoggingNotificationGateway, NotificationGateway
from core.models import AuditLog


class VerifiedGateway(NotificationGateway):
    mode = "email"


class AdminAuthTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.user_model = get_user_model()

    def signup(self, **overrides):
        payload = {"name": "Sizwe Ndlovu", "email": "Sizwe@EagleEvents.com", "password": "Str0ngPass!"}
        payload.update(overrides)
        return self.client.post("/api/v1/admin/auth/signup/", payload, format="json")

    def test_signup_creates_admin_and_returns_tokens(self):
        response = self.signup()

        self.assertEqual(response.status_code, 201)
        body = response.json()
        self.assertIn("access", body)
        self.assertIn("refresh", body)
        self.assertEqual(body["admin"]["email"], "sizwe@eagleevents.com")
        self.assertEqual(body["admin"]["role"], "admin")
        self.assertEqual(body["admin"]["name"], "Sizwe Ndlovu")

        user = self.user_model.objects.get(email="sizwe@eagleevents.com")
        self.assertEqual(user.role, self.user_model.Role.ADMIN)
        self.assertTrue(user.check_password("Str0ngPass!"))
        self.assertTrue(AuditLog.objects.filter(action="user.create", entity_id=user.id).exists())

    def test_signup_blocks_demo_and_test_addresses(self):
        for email in ("demo@eagleevents.com", "qa.test@eagleevents.com"):
            response = self.signup(email=email)
            self.assertEqual(response.status_code, 400)
            self.assertIn("email", response.json()["errors"])

        self.assertFalse(self.user_model.objects.exists())

    def test_signup_rejects_existing_email(self):
        self.signup()

        response = self.signup(email="SIZWE@eagleevents.com")

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["errors"]["email"], ["Admin already exists with this email."])
        self.assertEqual(self.user_model.objects.count(), 1)

    @override_settings(ALLOW_ADMIN_SIGNUP=False)
    def test_signup_can_be_disabled(self):
        response = self.signup()

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["code"], "permission_denied")
        self.assertFalse(self.user_model.objects.exists())

    def test_login_by_email_and_fetch_profile(self):
        self.signup()

        response = self.client.post(
            "/api/v1/admin/auth/login/",
            {"username": "SIZWE@eagleevents.com", "password": "Str0ngPass!"},
            format="json",
        )

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["admin"]["email"], "sizwe@eagleevents.com")

        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {body['access']}")
        response = self.client.get("/api/v1/admin/auth/me/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["role"], "admin")

    def test_login_with_wrong_password_is_rejected(self):
        self.signup()

        response = self.client.post(
            "/api/v1/admin/auth/login/",
            {"username": "sizwe@eagleevents.com", "password": "wrong-password"},
            format="json",
        )

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["code"], "authentication_failed")

    def test_profile_requires_authentication(self):
        response = self.client.get("/api/v1/admin/auth/me/")

        self.assertEqual(response.status_code, 401)
        body = response.json()
        self.assertEqual(sorted(body.keys()), ["code", "errors", "message", "status"])
        self.assertEqual(body["code"], "not_authenticated")


class AuditLogApiTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.user_model = get_user_model()
        self.admin = self.user_model.objects.create_user(
            username="records-admin",
            email="records-admin@eagleevents.com",
            password="pass1234",
            role="admin",
        )
        self.staff = self.user_model.objects.create_user(
            username="records-staff",
            email="records-staff@eagleevents.com",
            password="pass1234",
            role="staff",
        )
        AuditLog.objects.create(actor=self.admin, action="quote.delete", entity="quote")
        AuditLog.objects.create(actor=self.admin, action="customer.create", entity="customer")

    def test_admin_can_filter_audit_logs(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.get("/api/v1/admin/audit-logs/", {"entity": "quote"})

        self.assertEqual(response.status_code, 200)
        results = response.json()["results"]
        self.assertEqual([row["action"] for row in results], ["quote.delete"])
        self.assertEqual(results[0]["actor_username"], "records-admin")

    def test_staff_cannot_read_audit_logs(self):
        self.client.force_authenticate(user=self.staff)

        with self.assertLogs("security.authorization", level="WARNING") as cm:
            response = self.client.get("/api/v1/admin/audit-logs/")

        self.assertEqual(response.status_code, 403)
        self.assertTrue(any("admin.records.manage" in line for line in cm.output))

    def test_audit_logs_are_read_only(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.post("/api/v1/admin/audit-logs/", {"action": "forged"}, format="json")

        self.assertEqual(response.status_code, 405)
        self.assertEqual(response.json()["code"], "method_not_allowed")


class HealthCheckTests(TestCase):
    def setUp(self):
        self.client = APIClient()

    def test_liveness_and_readiness(self):
        response = self.client.get("/api/v1/healthz/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "ok")

        response = self.client.get("/api/v1/readyz/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "ready")

    def test_request_id_is_echoed(self):
        response = self.client.get("/api/v1/healthz/", HTTP_X_REQUEST_ID="req-abc-123")

        self.assertEqual(response["X-Request-ID"], "req-abc-123")
        self.assertEqual(response.json()["request_id"], "req-abc-123")

    def test_email_health_reports_verified_transport(self):
        with patch("core.views.get_notification_gateway", return_value=VerifiedGateway()):
            response = self.client.get("/api/v1/health/email/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "ok")
        self.assertEqual(response.json()["mode"], "email")

    def test_email_health_fails_in_logging_mode(self):
        with patch("core.views.get_notification_gateway", return_value=LoggingNotificationGateway()):
            response = self.client.get("/api/v1/health/email/")

        self.assertEqual(response.status_code, 503)
        self.assertEqual(response.json()["status"], "error")
        self.assertEqual(response.json()["mode"], "logging")
