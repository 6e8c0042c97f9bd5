from datetime import timedelta
from decimal import Decimal
from io import StringIO

from django.contrib.auth import get_user_model
from django.core.management import call_command
from django.test import TestCase, override_settings
from django.utils import timezone
from rest_framework.test import APIClient

from common.errors import DuplicateKeyError
from core.models import AuditLog
from customers.models import Customer
from customers.services import (
    approved_quote_customers,
    create_customer,
    materialize_customer_from_quote,
    sweep_stale_quotation_customers,
)
from quotes.models import Quote


def make_quote(**overrides):
    fields = {
        "customer_name": "Thabo Nkosi",
        "email": "thabo@example.com",
        "phone": "+27 83 555 0199",
        "event_date": timezone.now() + timedelta(days=45),
        "event_type": Quote.EventType.WEDDING,
        "location": "Midrand",
        "total_amount": Decimal("1500.00"),
        "payment_method": Quote.PaymentMethod.EFT,
    }
    fields.update(overrides)
    return Quote.objects.create(**fields)


def age_customer(customer, days):
    Customer.objects.filter(pk=customer.pk).update(created_at=timezone.now() - timedelta(days=days))


class CustomerMaterializationTests(TestCase):
    def test_first_approval_creates_active_customer(self):
        quote = make_quote()

        with self.assertLogs("customers.services", level="INFO"):
            customer = materialize_customer_from_quote(quote)

        self.assertEqual(customer.email, "thabo@example.com")
        self.assertEqual(customer.status, Customer.Status.ACTIVE)
        self.assertEqual(customer.total_bookings, 1)
        self.assertEqual(customer.total_spent, Decimal("1500.00"))
        self.assertIsNotNone(customer.booking_date)
        self.assertEqual(customer.notes, f"Customer created from approved quote {quote.reference}")

    def test_repeat_email_updates_existing_customer(self):
        materialize_customer_from_quote(make_quote())
        later = make_quote(
            customer_name="Thabo M. Nkosi",
            email="THABO@example.com",
            phone="",
            total_amount=Decimal("500.00"),
            event_date=timezone.now() + timedelta(days=90),
        )

        customer = materialize_customer_from_quote(later)

        self.assertEqual(Customer.objects.count(), 1)
        customer.refresh_from_db()
        self.assertEqual(customer.name, "Thabo M. Nkosi")
        self.assertEqual(customer.phone, "+27 83 555 0199")
        self.assertEqual(customer.total_bookings, 2)
        self.assertEqual(customer.total_spent, Decimal("2000.00"))
        self.assertEqual(customer.last_event_date, later.event_date)

    def test_existing_quotation_customer_is_promoted_to_active(self):
        existing = Customer.objects.create(name="Thabo", email="thabo@example.com", status=Customer.Status.QUOTATION)

        materialize_customer_from_quote(make_quote())

        existing.refresh_from_db()
        self.assertEqual(existing.status, Customer.Status.ACTIVE)
        self.assertEqual(existing.total_bookings, 1)

    def test_quote_without_email_is_skipped(self):
        quote = make_quote()
        quote.email = ""

        with self.assertLogs("customers.services", level="WARNING") as cm:
            result = materialize_customer_from_quote(quote)

        self.assertIsNone(result)
        self.assertFalse(Customer.objects.exists())
        self.assertTrue(any("customer_materialize_skipped_no_email" in line for line in cm.output))


class CustomerSweepTests(TestCase):
    def setUp(self):
        self.stale = Customer.objects.create(name="Stale", email="stale@example.com", status=Customer.Status.QUOTATION)
        self.recent = Customer.objects.create(name="Recent", email="recent@example.com", status=Customer.Status.QUOTATION)
        self.active = Customer.objects.create(name="Active", email="active@example.com", status=Customer.Status.ACTIVE)
        age_customer(self.stale, 31)
        age_customer(self.recent, 29)
        age_customer(self.active, 90)

    def test_sweep_deletes_only_stale_quotation_customers(self):
        deleted = sweep_stale_quotation_customers()

        self.assertEqual(deleted, 1)
        remaining = set(Customer.objects.values_list("email", flat=True))
        self.assertEqual(remaining, {"recent@example.com", "active@example.com"})

    def test_sweep_is_idempotent(self):
        sweep_stale_quotation_customers()

        self.assertEqual(sweep_stale_quotation_customers(), 0)

    def test_retention_window_can_be_overridden(self):
        self.assertEqual(sweep_stale_quotation_customers(retention_days=7), 2)

    @override_settings(CUSTOMER_QUOTATION_RETENTION_DAYS=60)
    def test_retention_window_follows_settings(self):
        self.assertEqual(sweep_stale_quotation_customers(), 0)

    def test_command_runs_a_single_sweep(self):
        out = StringIO()

        call_command("sweep_customers", "--once", stdout=out)

        self.assertIn("Deleted 1 stale quotation customers", out.getvalue())
        self.assertFalse(Customer.objects.filter(pk=self.stale.pk).exists())


class CustomerServiceTests(TestCase):
    def test_create_rejects_duplicate_email_case_insensitively(self):
        create_customer({"name": "Lindiwe", "email": "lindiwe@example.com"})

        with self.assertRaises(DuplicateKeyError):
            create_customer({"name": "Lindiwe Again", "email": "Lindiwe@Example.com"})

    def test_approved_quote_customers_groups_by_email(self):
        make_quote(email="thabo@example.com", status=Quote.Status.APPROVED, total_amount=Decimal("100.00"))
        make_quote(
            customer_name="Thabo Latest",
            email="Thabo@Example.com",
            status=Quote.Status.CONFIRMED,
            total_amount=Decimal("250.00"),
        )
        make_quote(email="pending@example.com", status=Quote.Status.PENDING)

        rows = approved_quote_customers()

        self.assertEqual(len(rows), 1)
        row = rows[0]
        self.assertEqual(row["email"], "thabo@example.com")
        self.assertEqual(row["name"], "Thabo Latest")
        self.assertEqual(row["total_quotes"], 2)
        self.assertEqual(row["total_spent"], Decimal("350.00"))


class CustomerApiTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.user_model = get_user_model()
        self.admin = self.user_model.objects.create_user(
            username="customer-admin",
            email="customer-admin@eagleevents.com",
            password="pass1234",
            role="admin",
        )
        self.staff = self.user_model.objects.create_user(
            username="customer-staff",
            email="customer-staff@eagleevents.com",
            password="pass1234",
            role="staff",
        )

    def test_requires_authentication(self):
        response = self.client.get("/api/v1/admin/customers/")

        self.assertEqual(response.status_code, 401)

    def test_staff_can_create_and_creation_is_audited(self):
        self.client.force_authenticate(user=self.staff)

        response = self.client.post(
            "/api/v1/admin/customers/",
            {"name": "Naledi Khumalo", "email": "Naledi@Example.com", "phone": "+27 11 555 0100"},
            format="json",
        )

        self.assertEqual(response.status_code, 201)
        body = response.json()
        self.assertEqual(body["email"], "naledi@example.com")
        self.assertEqual(body["status"], "active")
        self.assertEqual(body["total_bookings"], 0)
        self.assertTrue(AuditLog.objects.filter(action="customer.create", entity_id=body["id"]).exists())

    def test_duplicate_email_returns_conflict(self):
        Customer.objects.create(name="Naledi", email="naledi@example.com")
        self.client.force_authenticate(user=self.admin)

        response = self.client.post(
            "/api/v1/admin/customers/",
            {"name": "Naledi Copy", "email": "NALEDI@example.com"},
            format="json",
        )

        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["code"], "duplicate_key")

    def test_update_to_taken_email_returns_conflict(self):
        Customer.objects.create(name="Naledi", email="naledi@example.com")
        other = Customer.objects.create(name="Sipho", email="sipho@example.com")
        self.client.force_authenticate(user=self.admin)

        response = self.client.patch(
            f"/api/v1/admin/customers/{other.id}/",
            {"email": "naledi@example.com"},
            format="json",
        )

        self.assertEqual(response.status_code, 409)
        other.refresh_from_db()
        self.assertEqual(other.email, "sipho@example.com")

    def test_list_filters_by_status_and_search(self):
        Customer.objects.create(name="Naledi", email="naledi@example.com", status=Customer.Status.QUOTATION)
        Customer.objects.create(name="Sipho", email="sipho@example.com", company="Sipho Sound")
        self.client.force_authenticate(user=self.staff)

        response = self.client.get("/api/v1/admin/customers/", {"status": "quotation"})
        self.assertEqual([row["name"] for row in response.json()["results"]], ["Naledi"])

        response = self.client.get("/api/v1/admin/customers/", {"q": "sound"})
        self.assertEqual([row["name"] for row in response.json()["results"]], ["Sipho"])

    def test_only_admin_can_delete(self):
        customer = Customer.objects.create(name="Sipho", email="sipho@example.com")

        self.client.force_authenticate(user=self.staff)
        with self.assertLogs("security.authorization", level="WARNING"):
            response = self.client.delete(f"/api/v1/admin/customers/{customer.id}/")
        self.assertEqual(response.status_code, 403)

        self.client.force_authenticate(user=self.admin)
        response = self.client.delete(f"/api/v1/admin/customers/{customer.id}/")
        self.assertEqual(response.status_code, 204)
        self.assertFalse(Customer.objects.filter(pk=customer.pk).exists())

    def test_approved_quotes_endpoint(self):
        make_quote(status=Quote.Status.APPROVED)
        self.client.force_authenticate(user=self.staff)

        response = self.client.get("/api/v1/admin/customers/approved-quotes/")

        self.assertEqual(response.status_code, 200)
        results = response.json()["results"]
        self.assertEqual(results[0]["email"], "thabo@example.com")
        self.assertEqual(results[0]["total_spent"], "1500.00")
