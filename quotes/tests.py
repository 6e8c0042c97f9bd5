import re
import uuid
from datetime import timedelta
from decimal import Decimal
from unittest.mock import Mock, patch

from django.contrib.auth import get_user_model
from django.test import TestCase, override_settings
from django.utils import timezone
from rest_framework.test import APIClient

from common.errors import (
    DeliveryError,
    DuplicateKeyError,
    EmptyItemsError,
    InvalidStatusError,
    NotFoundError,
    RenderError,
    ValidationError,
)
from common.notifications import DeliveryInfo, NotificationGateway, normalize_recipients
from core.models import AuditLog
from customers.models import Customer
from quotes.documents import QuoteDocumentGenerator
from quotes.emails import format_currency, quote_received_email
from quotes.models import MAX_COUNT, Quote, generate_reference
from quotes.normalization import coerce_price, coerce_quantity, normalize_event_type
from quotes.pipeline import Pipeline, Step, WorkflowContext
from quotes.services import QuoteLifecycleManager, is_approval_transition, page_window

REFERENCE_PATTERN = re.compile(r"^QTE-\d{8}-[A-Z0-9]{5}$")


class FakeGateway(NotificationGateway):
    mode = "fake"

    def __init__(self, fail_for=(), fail_all=False):
        self.sent = []
        self.fail_for = set(fail_for)
        self.fail_all = fail_all

    def send(self, to, subject, text_body, html_body=None, attachments=None):
        recipients = normalize_recipients(to)
        if self.fail_all or self.fail_for.intersection(recipients):
            raise DeliveryError("SMTP connection refused")
        self.sent.append({"to": recipients, "subject": subject, "attachments": list(attachments or [])})
        return DeliveryInfo(message_id=f"<{uuid.uuid4().hex}@fake>", recipients=tuple(recipients))

    def subjects_for(self, recipient):
        return [message["subject"] for message in self.sent if recipient in message["to"]]


class FakeDocuments:
    def __init__(self, fail=False):
        self.fail = fail
        self.rendered = []
        self.persisted_before_render = []

    def render(self, quote):
        self.persisted_before_render.append(Quote.objects.filter(pk=quote.pk).exists())
        if self.fail:
            raise RenderError("font missing")
        self.rendered.append(quote.pk)
        return b"%PDF-1.4 fake"


def quote_payload(**overrides):
    payload = {
        "customer_name": "Jane Mokoena",
        "company": "Mokoena Holdings",
        "email": "Jane@Example.com",
        "phone": "+27 82 555 0101",
        "event_date": timezone.now() + timedelta(days=30),
        "event_type": "Birthday",
        "services": ["Tents", "Lighting"],
        "guest_count": 120,
        "location": "Sandton",
        "items": [
            {"name": "Stretch tent", "quantity": 2, "price": "150.50"},
            {"name": "Fairy lights", "quantity": "abc", "price": "-5"},
        ],
        "payment_method": "eft",
        "notes": "Please deliver early.",
    }
    payload.update(overrides)
    return payload


class LifecycleTestMixin:
    admin_email = "ops@eagleevents.com"

    def build_manager(self, *, gateway=None, documents=None, notify_admins=True, materializer=None):
        self.gateway = gateway or FakeGateway()
        self.documents = documents or FakeDocuments()
        self.materializer = materializer or Mock(return_value=None)
        return QuoteLifecycleManager(
            notifications=self.gateway,
            documents=self.documents,
            notify_admins=notify_admins,
            admin_recipients=[self.admin_email],
            customer_materializer=self.materializer,
        )


class PipelineTests(TestCase):
    def test_non_fatal_failure_is_recorded_and_next_step_runs(self):
        calls = []

        def boom(context):
            raise RuntimeError("down")

        pipeline = Pipeline(
            "demo",
            [
                Step("first", lambda context: calls.append("first")),
                Step("second", boom),
                Step("third", lambda context: calls.append("third")),
            ],
        )

        with self.assertLogs("quotes.pipeline", level="WARNING") as cm:
            context = pipeline.run(WorkflowContext())

        self.assertEqual(calls, ["first", "third"])
        self.assertEqual(context.completed, ["first", "third"])
        self.assertEqual(context.failed_steps, ["second"])
        self.assertTrue(any("pipeline_step_failed" in line for line in cm.output))

    def test_fatal_failure_aborts_the_run(self):
        calls = []

        def boom(context):
            raise EmptyItemsError()

        pipeline = Pipeline(
            "demo",
            [Step("guard", boom, fatal=True), Step("after", lambda context: calls.append("after"))],
        )

        with self.assertRaises(EmptyItemsError):
            pipeline.run(WorkflowContext())
        self.assertEqual(calls, [])

    def test_step_with_false_condition_is_skipped(self):
        pipeline = Pipeline("demo", [Step("gated", lambda context: None, condition=lambda context: False)])

        context = pipeline.run(WorkflowContext())

        self.assertEqual(context.skipped, ["gated"])
        self.assertEqual(context.completed, [])


class NormalizationTests(TestCase):
    def test_event_type_synonyms(self):
        self.assertEqual(normalize_event_type("Birthday"), "private")
        self.assertEqual(normalize_event_type("  CONCERT "), "festival")
        self.assertEqual(normalize_event_type("office"), "corporate")
        self.assertEqual(normalize_event_type("wedding"), "wedding")
        self.assertEqual(normalize_event_type("gala dinner"), "other")
        self.assertEqual(normalize_event_type(""), "other")
        self.assertEqual(normalize_event_type(None), "other")

    def test_quantity_and_price_are_coerced_not_rejected(self):
        self.assertEqual(coerce_quantity("3"), 3)
        self.assertEqual(coerce_quantity("abc"), 1)
        self.assertEqual(coerce_quantity(0), 1)
        self.assertEqual(coerce_quantity(-4), 1)
        self.assertEqual(coerce_quantity("Infinity"), 1)
        self.assertEqual(coerce_price("99.999"), Decimal("100.00"))
        self.assertEqual(coerce_price("-5"), Decimal("0.00"))
        self.assertEqual(coerce_price("NaN"), Decimal("0.00"))
        self.assertEqual(coerce_price(None), Decimal("0.00"))

    def test_quantity_past_storable_range_stays_out_of_range(self):
        self.assertEqual(coerce_quantity(str(MAX_COUNT)), MAX_COUNT)
        self.assertEqual(coerce_quantity("99999999999999999999"), MAX_COUNT + 1)
        self.assertEqual(coerce_quantity("1e999999999"), MAX_COUNT + 1)
        self.assertEqual(coerce_quantity("-1e30"), 1)
        self.assertEqual(coerce_price("1e30"), Decimal("1e30"))

    def test_page_window_clamps_page_and_limit(self):
        self.assertEqual(page_window(None, None), (1, 10))
        self.assertEqual(page_window("0", "500"), (1, 100))
        self.assertEqual(page_window("3", "abc"), (3, 10))
        self.assertEqual(page_window(2, -5), (2, 1))

    def test_reference_format(self):
        now = timezone.now()
        reference = generate_reference(now)
        self.assertRegex(reference, REFERENCE_PATTERN)
        self.assertTrue(reference.startswith(f"QTE-{now:%Y%m%d}-"))

    def test_approval_transition_guard(self):
        self.assertTrue(is_approval_transition("pending", "approved"))
        self.assertTrue(is_approval_transition("approved", "confirmed"))
        self.assertFalse(is_approval_transition("approved", "approved"))
        self.assertFalse(is_approval_transition("Approved", "approved"))
        self.assertFalse(is_approval_transition("pending", "rejected"))


class QuoteSubmissionTests(LifecycleTestMixin, TestCase):
    def test_submit_persists_quote_with_derived_total_and_normalized_fields(self):
        manager = self.build_manager()

        quote = manager.submit_quote(quote_payload(total_amount="1.00"))

        quote.refresh_from_db()
        self.assertRegex(quote.reference, REFERENCE_PATTERN)
        self.assertEqual(quote.email, "jane@example.com")
        self.assertEqual(quote.event_type, "private")
        self.assertEqual(quote.status, "pending")
        self.assertEqual(quote.payment_status, "pending")
        self.assertEqual(quote.total_amount, Decimal("301.00"))

        items = list(quote.items.all())
        self.assertEqual([item.name for item in items], ["Stretch tent", "Fairy lights"])
        self.assertEqual(items[0].total, Decimal("301.00"))
        self.assertEqual(items[1].quantity, 1)
        self.assertEqual(items[1].price, Decimal("0.00"))
        self.assertEqual(quote.total_amount, sum(item.total for item in items))

    def test_submit_renders_after_persisting_and_notifies_customer_then_admins(self):
        manager = self.build_manager()

        quote = manager.submit_quote(quote_payload())

        self.assertEqual(self.documents.persisted_before_render, [True])
        self.assertEqual([message["to"] for message in self.gateway.sent], [["jane@example.com"], [self.admin_email]])
        customer_message = self.gateway.sent[0]
        self.assertEqual(customer_message["subject"], f"Your Quote Request - {quote.reference}")
        self.assertEqual(customer_message["attachments"][0].filename, f"Quote-{quote.reference}.pdf")

    def test_submit_without_items_is_rejected_and_nothing_is_stored(self):
        manager = self.build_manager()

        with self.assertRaises(EmptyItemsError):
            manager.submit_quote(quote_payload(items=[]))

        self.assertFalse(Quote.objects.exists())
        self.assertEqual(self.gateway.sent, [])
        self.assertEqual(self.documents.rendered, [])

    def test_submit_rejects_event_date_in_the_past(self):
        manager = self.build_manager()

        with self.assertRaises(ValidationError) as ctx:
            manager.submit_quote(quote_payload(event_date=timezone.now() - timedelta(days=1)))

        self.assertIn("event_date", ctx.exception.details)
        self.assertFalse(Quote.objects.exists())

    def test_submit_keeps_event_type_other_only_for_other(self):
        manager = self.build_manager()

        kept = manager.submit_quote(quote_payload(event_type="Gala", event_type_other="Charity gala"))
        dropped = manager.submit_quote(quote_payload(event_type="wedding", event_type_other="Ignored"))

        self.assertEqual((kept.event_type, kept.event_type_other), ("other", "Charity gala"))
        self.assertEqual((dropped.event_type, dropped.event_type_other), ("wedding", ""))

    def test_submit_wraps_single_service_and_truncates_notes(self):
        manager = self.build_manager()

        quote = manager.submit_quote(quote_payload(services="Catering", notes="x" * 1500, guest_count="0"))

        self.assertEqual(quote.services, ["Catering"])
        self.assertEqual(len(quote.notes), 1000)
        self.assertEqual(quote.guest_count, 1)

    def test_render_failure_does_not_block_submission(self):
        manager = self.build_manager(documents=FakeDocuments(fail=True))

        with self.assertLogs("quotes.pipeline", level="WARNING") as cm:
            quote = manager.submit_quote(quote_payload())

        self.assertTrue(Quote.objects.filter(pk=quote.pk).exists())
        self.assertEqual(len(self.gateway.sent), 2)
        self.assertEqual(self.gateway.sent[0]["attachments"], [])
        self.assertTrue(any("render_document" in line or "pipeline_step_failed" in line for line in cm.output))

    def test_customer_email_failure_does_not_block_admin_notification(self):
        manager = self.build_manager(gateway=FakeGateway(fail_for={"jane@example.com"}))

        quote = manager.submit_quote(quote_payload())

        self.assertTrue(Quote.objects.filter(pk=quote.pk).exists())
        self.assertEqual(self.gateway.subjects_for(self.admin_email), [f"New Quote Request - {quote.reference}"])

    def test_every_delivery_failing_does_not_block_submission(self):
        manager = self.build_manager(gateway=FakeGateway(fail_all=True))

        with self.assertLogs("quotes.services", level="INFO") as cm:
            quote = manager.submit_quote(quote_payload())

        self.assertTrue(Quote.objects.filter(pk=quote.pk).exists())
        self.assertEqual(self.gateway.sent, [])
        self.assertTrue(any("failed_steps=notify_customer,notify_admins" in line for line in cm.output))

    def test_out_of_range_quantity_is_rejected_and_nothing_is_stored(self):
        manager = self.build_manager()

        with self.assertRaises(ValidationError) as ctx:
            manager.submit_quote(
                quote_payload(items=[{"name": "Chairs", "quantity": "99999999999999999999", "price": "0"}])
            )

        self.assertIn("quantity", ctx.exception.details["items"]["0"])
        self.assertFalse(Quote.objects.exists())
        self.assertEqual(self.gateway.sent, [])

    def test_oversized_price_and_guest_count_are_rejected(self):
        manager = self.build_manager()

        with self.assertRaises(ValidationError) as ctx:
            manager.submit_quote(quote_payload(items=[{"name": "Stage", "quantity": 1, "price": "1e30"}]))
        self.assertIn("price", ctx.exception.details["items"]["0"])

        with self.assertRaises(ValidationError) as ctx:
            manager.submit_quote(quote_payload(guest_count="99999999999999999999"))
        self.assertIn("guest_count", ctx.exception.details)

        self.assertFalse(Quote.objects.exists())

    def test_admin_notification_can_be_disabled(self):
        manager = self.build_manager(notify_admins=False)

        manager.submit_quote(quote_payload())

        self.assertEqual([message["to"] for message in self.gateway.sent], [["jane@example.com"]])

    @override_settings(NOTIFY_ADMINS=False)
    def test_admin_notification_follows_settings_when_not_injected(self):
        gateway = FakeGateway()
        manager = QuoteLifecycleManager(notifications=gateway, documents=FakeDocuments())

        manager.submit_quote(quote_payload())

        self.assertEqual(len(gateway.sent), 1)

    def test_references_are_unique_and_collisions_surface_as_duplicate_key(self):
        manager = self.build_manager()
        first = manager.submit_quote(quote_payload())
        second = manager.submit_quote(quote_payload())
        self.assertNotEqual(first.reference, second.reference)

        with patch("quotes.models.generate_reference", return_value=first.reference):
            with self.assertRaises(DuplicateKeyError):
                manager.submit_quote(quote_payload())

        self.assertEqual(Quote.objects.count(), 2)


class QuoteStatusTransitionTests(LifecycleTestMixin, TestCase):
    def setUp(self):
        self.manager = self.build_manager()
        self.quote = self.manager.submit_quote(quote_payload())
        self.gateway.sent.clear()

    def test_approval_fires_side_effects_exactly_once(self):
        self.manager.update_quote_status(self.quote.id, "approved")
        self.manager.update_quote_status(self.quote.id, "approved")
        self.manager.update_quote_status(self.quote.id, "APPROVED")

        self.assertEqual(self.materializer.call_count, 1)
        self.assertEqual(
            self.gateway.subjects_for("jane@example.com"),
            [f"Your Quote Has Been Confirmed - {self.quote.reference}"],
        )
        self.assertEqual(self.gateway.subjects_for(self.admin_email), [f"Quote Approved - {self.quote.reference}"])

    def test_status_is_lowercased_before_saving(self):
        quote = self.manager.update_quote_status(self.quote.id, "  Confirmed ")

        quote.refresh_from_db()
        self.assertEqual(quote.status, "confirmed")
        self.assertEqual(self.materializer.call_count, 1)

    def test_non_approval_status_has_no_side_effects(self):
        self.manager.update_quote_status(self.quote.id, "rejected")

        self.materializer.assert_not_called()
        self.assertEqual(self.gateway.sent, [])

    def test_invalid_status_is_rejected_without_mutation(self):
        with self.assertRaises(InvalidStatusError):
            self.manager.update_quote_status(self.quote.id, "archived")

        self.quote.refresh_from_db()
        self.assertEqual(self.quote.status, "pending")

    def test_unknown_quote_raises_not_found(self):
        with self.assertRaises(NotFoundError):
            self.manager.update_quote_status(uuid.uuid4(), "approved")
        with self.assertRaises(NotFoundError):
            self.manager.get_quote("not-a-uuid")

    def test_materialization_failure_is_non_fatal(self):
        self.materializer.side_effect = DuplicateKeyError("A customer with email jane@example.com already exists.")

        quote = self.manager.update_quote_status(self.quote.id, "approved")

        quote.refresh_from_db()
        self.assertEqual(quote.status, "approved")
        self.assertEqual(self.gateway.subjects_for(self.admin_email), [f"Quote Approved - {self.quote.reference}"])

    def test_approving_two_quotes_for_one_email_keeps_one_customer(self):
        second = self.manager.submit_quote(quote_payload(customer_name="Jane M. Mokoena", email="JANE.com"))
        manager = QuoteLifecycleManager(notifications=FakeGateway(), documents=FakeDocuments(), notify_admins=False)

        manager.update_quote_status(self.quote.id, "approved")
        manager.update_quote_status(second.id, "confirmed")

        customer = Customer.objects.get()
        self.assertEqual(customer.email, "jane@example.com")
        self.assertEqual(customer.name, "Jane M. Mokoena")
        self.assertEqual(customer.total_bookings, 2)
        self.assertEqual(customer.total_spent, Decimal("602.00"))

    def test_approval_creates_customer_with_default_materializer(self):
        gateway = FakeGateway()
        manager = QuoteLifecycleManager(notifications=gateway, documents=FakeDocuments(), notify_admins=False)

        manager.update_quote_status(self.quote.id, "approved")

        customer = Customer.objects.get(email="jane@example.com")
        self.assertEqual(customer.status, Customer.Status.ACTIVE)
        self.assertEqual(customer.total_bookings, 1)
        self.assertEqual(customer.total_spent, Decimal("301.00"))
        self.assertIn(self.quote.reference, customer.notes)


class QuoteFieldUpdateTests(LifecycleTestMixin, TestCase):
    def setUp(self):
        self.manager = self.build_manager()
        self.quote = self.manager.submit_quote(quote_payload())
        self.gateway.sent.clear()

    def test_replacing_items_recomputes_total(self):
        quote = self.manager.update_quote_fields(
            self.quote.id,
            {"items": [{"name": "Chairs", "quantity": "10", "price": "12.5"}]},
        )

        quote.refresh_from_db()
        self.assertEqual(quote.total_amount, Decimal("125.00"))
        self.assertEqual([item.name for item in quote.items.all()], ["Chairs"])

    def test_unlisted_fields_are_ignored(self):
        original_reference = self.quote.reference

        quote = self.manager.update_quote_fields(
            self.quote.id,
            {"reference": "QTE-HACKED", "total_amount": "1.00", "location": "Pretoria"},
        )

        quote.refresh_from_db()
        self.assertEqual(quote.reference, original_reference)
        self.assertEqual(quote.total_amount, Decimal("301.00"))
        self.assertEqual(quote.location, "Pretoria")

    def test_event_type_is_renormalized(self):
        quote = self.manager.update_quote_fields(self.quote.id, {"event_type": "Business"})

        self.assertEqual(quote.event_type, "corporate")

    def test_changed_event_date_must_be_in_the_future(self):
        with self.assertRaises(ValidationError):
            self.manager.update_quote_fields(self.quote.id, {"event_date": timezone.now() - timedelta(days=2)})

    def test_status_change_through_field_update_fires_approval_once(self):
        self.manager.update_quote_fields(self.quote.id, {"status": "Approved", "notes": "Approved by phone"})
        self.manager.update_quote_fields(self.quote.id, {"status": "approved"})

        self.assertEqual(self.materializer.call_count, 1)

    def test_field_update_rejects_unknown_status(self):
        with self.assertRaises(InvalidStatusError):
            self.manager.update_quote_fields(self.quote.id, {"status": "lost"})

    def test_out_of_range_item_update_leaves_quote_untouched(self):
        with self.assertRaises(ValidationError):
            self.manager.update_quote_fields(
                self.quote.id,
                {"items": [{"name": "Chairs", "quantity": "99999999999999999999", "price": "1"}]},
            )

        self.quote.refresh_from_db()
        self.assertEqual(self.quote.total_amount, Decimal("301.00"))
        self.assertEqual(self.quote.items.count(), 2)

    def test_payment_status_update_accepts_only_three_values(self):
        quote = self.manager.update_payment_status(self.quote.id, "Paid")
        self.assertEqual(quote.payment_status, "paid")

        with self.assertRaises(InvalidStatusError):
            self.manager.update_payment_status(self.quote.id, "refunded")

        self.assertEqual(self.gateway.sent, [])
        self.materializer.assert_not_called()


class QuotePaymentTests(LifecycleTestMixin, TestCase):
    def setUp(self):
        self.manager = self.build_manager()
        self.quote = self.manager.submit_quote(quote_payload())
        self.gateway.sent.clear()

    def test_amount_must_match_quote_total(self):
        with self.assertRaises(ValidationError):
            self.manager.process_payment(self.quote.id, "eft", "300.00")

        self.quote.refresh_from_db()
        self.assertEqual(self.quote.payment_status, "pending")

    def test_successful_payment_confirms_quote_once(self):
        quote, payment = self.manager.process_payment(self.quote.id, "cash", "301.00", reference="BANK-123")

        quote.refresh_from_db()
        self.assertEqual(quote.status, "confirmed")
        self.assertEqual(quote.payment_status, "paid")
        self.assertEqual(payment.status, "completed")
        self.assertEqual(payment.currency, "ZAR")
        self.assertEqual(payment.reference, "BANK-123")
        self.assertTrue(payment.transaction_id.startswith("TXN-"))
        self.assertEqual(self.materializer.call_count, 1)
        self.assertIn(f"Payment Confirmation - {quote.reference}", self.gateway.subjects_for("jane@example.com"))

        self.manager.update_quote_status(quote.id, "confirmed")
        self.assertEqual(self.materializer.call_count, 1)
        self.assertEqual(self.manager.get_payment_details(quote.id).pk, payment.pk)

    def test_payment_details_missing_raises_not_found(self):
        with self.assertRaises(NotFoundError):
            self.manager.get_payment_details(self.quote.id)


class QuoteQueryTests(LifecycleTestMixin, TestCase):
    def setUp(self):
        self.manager = self.build_manager()
        now = timezone.now()
        self.alice = self.manager.submit_quote(
            quote_payload(customer_name="Alice Dlamini", email="alice@example.com", event_date=now + timedelta(days=10))
        )
        self.bongani = self.manager.submit_quote(
            quote_payload(customer_name="Bongani Zulu", email="bongani@example.com", event_date=now + timedelta(days=20))
        )
        self.carla = self.manager.submit_quote(
            quote_payload(customer_name="Carla Naidoo", email="carla@example.com", event_date=now + timedelta(days=40))
        )
        self.manager.update_quote_status(self.carla.id, "rejected")

    def test_filters_by_status_search_and_event_date_range(self):
        items, total = self.manager.list_quotes({"status": "pending"})
        self.assertEqual(total, 2)

        items, total = self.manager.list_quotes({"search": "ALICE"})
        self.assertEqual([quote.id for quote in items], [self.alice.id])

        items, total = self.manager.list_quotes({"start_date": (timezone.now() + timedelta(days=15)).isoformat()})
        self.assertEqual(total, 2)

    def test_pagination_and_sorting(self):
        items, total = self.manager.list_quotes({}, page=1, limit=2, sort_by="customer_name", sort_order="asc")
        self.assertEqual(total, 3)
        self.assertEqual([quote.customer_name for quote in items], ["Alice Dlamini", "Bongani Zulu"])

        items, total = self.manager.list_quotes({}, page=2, limit=2, sort_by="customer_name", sort_order="asc")
        self.assertEqual([quote.customer_name for quote in items], ["Carla Naidoo"])

    def test_unknown_sort_field_falls_back_to_created_at(self):
        items, total = self.manager.list_quotes({}, sort_by="password")

        self.assertEqual(total, 3)
        self.assertEqual(len(items), 3)

    def test_delete_quote(self):
        self.manager.delete_quote(self.alice.id)

        self.assertFalse(Quote.objects.filter(pk=self.alice.pk).exists())
        with self.assertRaises(NotFoundError):
            self.manager.delete_quote(self.alice.id)


class QuoteDocumentAndEmailTests(LifecycleTestMixin, TestCase):
    def setUp(self):
        self.quote = self.build_manager().submit_quote(quote_payload(notes="Gate code <1234> & ring"))

    def test_pdf_is_rendered(self):
        document = QuoteDocumentGenerator().render(self.quote)

        self.assertTrue(document.startswith(b"%PDF"))

    def test_render_errors_are_wrapped(self):
        with patch("quotes.documents.SimpleDocTemplate.build", side_effect=OSError("disk full")):
            with self.assertRaises(RenderError):
                QuoteDocumentGenerator().render(self.quote)

    def test_received_email_lists_reference_and_total(self):
        content = quote_received_email(self.quote)

        self.assertEqual(content.subject, f"Your Quote Request - {self.quote.reference}")
        self.assertIn(self.quote.reference, content.text_body)
        self.assertIn(format_currency(Decimal("301.00")), content.text_body)
        self.assertIn("R 301.00", content.html_body)


class QuoteApiTests(LifecycleTestMixin, TestCase):
    def setUp(self):
        self.client = APIClient()
        self.user_model = get_user_model()
        self.admin = self.user_model.objects.create_user(
            username="quote-admin",
            email="quote-admin@eagleevents.com",
            password="pass1234",
            role="admin",
        )
        self.staff = self.user_model.objects.create_user(
            username="quote-staff",
            email="quote-staff@eagleevents.com",
            password="pass1234",
            role="staff",
        )
        self.manager = self.build_manager()
        patcher = patch("quotes.views.default_lifecycle_manager", return_value=self.manager)
        patcher.start()
        self.addCleanup(patcher.stop)

    def api_payload(self, **overrides):
        payload = quote_payload(**overrides)
        if hasattr(payload["event_date"], "isoformat"):
            payload["event_date"] = payload["event_date"].isoformat()
        return payload

    def test_public_submission_returns_created_quote(self):
        response = self.client.post("/api/v1/quotes/", self.api_payload(), format="json")

        self.assertEqual(response.status_code, 201)
        body = response.json()
        self.assertRegex(body["reference"], REFERENCE_PATTERN)
        self.assertEqual(body["total_amount"], "301.00")
        self.assertEqual(body["event_type"], "private")
        self.assertEqual(len(body["items"]), 2)
        self.assertIsNone(body["payment"])

    def test_submission_accepts_plain_date(self):
        event_day = (timezone.now() + timedelta(days=60)).date().isoformat()

        response = self.client.post("/api/v1/quotes/", self.api_payload(event_date=event_day), format="json")

        self.assertEqual(response.status_code, 201)

    def test_submission_without_items_returns_empty_items_error(self):
        response = self.client.post("/api/v1/quotes/", self.api_payload(items=[]), format="json")

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "empty_items")

    def test_submission_with_invalid_email_returns_validation_envelope(self):
        response = self.client.post("/api/v1/quotes/", self.api_payload(email="not-an-email"), format="json")

        self.assertEqual(response.status_code, 400)
        body = response.json()
        self.assertEqual(body["code"], "validation_error")
        self.assertIn("email", body["errors"])
        self.assertEqual(body["status"], 400)

    def test_listing_requires_authentication(self):
        response = self.client.get("/api/v1/quotes/")

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["code"], "not_authenticated")

    def test_listing_pages_through_quotes(self):
        for name in ("Carla Naidoo", "Alice Dlamini", "Bongani Zulu"):
            self.manager.submit_quote(quote_payload(customer_name=name))
        self.client.force_authenticate(user=self.staff)

        response = self.client.get(
            "/api/v1/quotes/", {"limit": 2, "sort_by": "customer_name", "sort_order": "asc"}
        )
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["count"], 3)
        self.assertEqual([row["customer_name"] for row in body["results"]], ["Alice Dlamini", "Bongani Zulu"])
        self.assertIn("page=2", body["next"])
        self.assertIsNone(body["previous"])

        response = self.client.get(
            "/api/v1/quotes/", {"limit": 2, "page": 2, "sort_by": "customer_name", "sort_order": "asc"}
        )
        body = response.json()
        self.assertEqual([row["customer_name"] for row in body["results"]], ["Carla Naidoo"])
        self.assertIsNone(body["next"])
        self.assertNotIn("page=", body["previous"])

    def test_submission_with_out_of_range_quantity_returns_validation_error(self):
        response = self.client.post(
            "/api/v1/quotes/",
            self.api_payload(items=[{"name": "Chairs", "quantity": "99999999999999999999", "price": "0"}]),
            format="json",
        )

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "validation_error")
        self.assertFalse(Quote.objects.exists())

    def test_staff_can_list_but_cannot_change_status(self):
        quote = self.manager.submit_quote(quote_payload())
        self.client.force_authenticate(user=self.staff)

        response = self.client.get("/api/v1/quotes/", {"status": "pending"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["count"], 1)

        with self.assertLogs("security.authorization", level="WARNING"):
            response = self.client.patch(f"/api/v1/quotes/{quote.id}/status/", {"status": "approved"}, format="json")
        self.assertEqual(response.status_code, 403)

    def test_admin_status_update_is_audited(self):
        quote = self.manager.submit_quote(quote_payload())
        self.client.force_authenticate(user=self.admin)

        response = self.client.patch(f"/api/v1/quotes/{quote.id}/status/", {"status": "Approved"}, format="json")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "approved")
        log = AuditLog.objects.get(action="quote.status_update")
        self.assertEqual(log.entity_id, quote.id)
        self.assertEqual(log.before_snapshot["status"], "pending")
        self.assertEqual(log.after_snapshot["status"], "approved")

    def test_invalid_status_returns_invalid_status_code(self):
        quote = self.manager.submit_quote(quote_payload())
        self.client.force_authenticate(user=self.admin)

        response = self.client.patch(f"/api/v1/quotes/{quote.id}/status/", {"status": "archived"}, format="json")

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "invalid_status")

    def test_payment_status_endpoint(self):
        quote = self.manager.submit_quote(quote_payload())
        self.client.force_authenticate(user=self.admin)

        response = self.client.patch(
            f"/api/v1/quotes/{quote.id}/payment-status/", {"payment_status": "failed"}, format="json"
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["payment_status"], "failed")

        response = self.client.patch(
            f"/api/v1/quotes/{quote.id}/payment-status/", {"payment_status": "refunded"}, format="json"
        )
        self.assertEqual(response.status_code, 400)

    def test_admin_can_update_and_delete_quote(self):
        quote = self.manager.submit_quote(quote_payload())
        self.client.force_authenticate(user=self.admin)

        response = self.client.patch(
            f"/api/v1/quotes/{quote.id}/",
            {"items": [{"name": "Stage", "quantity": 1, "price": "2500"}], "guest_count": 80},
            format="json",
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["total_amount"], "2500.00")
        self.assertEqual(response.json()["guest_count"], 80)

        response = self.client.delete(f"/api/v1/quotes/{quote.id}/")
        self.assertEqual(response.status_code, 204)
        self.assertFalse(Quote.objects.filter(pk=quote.pk).exists())

    def test_unknown_quote_returns_not_found_envelope(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.get("/api/v1/quotes/not-a-uuid/")

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["code"], "not_found")

    def test_payment_processing_and_details(self):
        quote = self.manager.submit_quote(quote_payload())

        response = self.client.get(f"/api/v1/payments/quote/{quote.id}/")
        self.assertEqual(response.status_code, 404)

        response = self.client.post(
            "/api/v1/payments/process/",
            {"quote_id": str(quote.id), "payment_method": "eft", "amount": "301.00"},
            format="json",
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["payment_status"], "completed")

        response = self.client.get(f"/api/v1/payments/quote/{quote.id}/")
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["status"], "confirmed")
        self.assertEqual(body["payment"]["amount"], "301.00")

    def test_payment_amount_mismatch_returns_validation_error(self):
        quote = self.manager.submit_quote(quote_payload())

        response = self.client.post(
            "/api/v1/payments/process/",
            {"quote_id": str(quote.id), "payment_method": "eft", "amount": "10.00"},
            format="json",
        )

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "validation_error")
