"""
Quote lifecycle: submission, updates, status transitions and payments.

Side effects are declared as pipelines. Submission persists before it renders
and notifies; the approval pipeline runs only after the status write has
committed, and only when the status actually moves into an approval status.
"""
from __future__ import annotations

import functools
import logging
import secrets
import uuid
from decimal import Decimal, InvalidOperation

from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import DatabaseError, IntegrityError, transaction
from django.db.models import Q
from django.utils import timezone

from common import errors
from common.notifications import Attachment, get_notification_gateway
from common.notifications import admin_recipients as configured_admin_recipients
from customers.services import materialize_customer_from_quote
from quotes import emails
from quotes.documents import QuoteDocumentGenerator, document_filename
from quotes.models import Quote, QuoteItem, QuotePayment, validate_future_event_date
from quotes.normalization import (
    coerce_guest_count,
    coerce_services,
    normalize_event_type,
    normalize_items,
    parse_event_date,
    truncate_notes,
)
from quotes.pipeline import Pipeline, Step, WorkflowContext

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = (
    "customer_name",
    "company",
    "email",
    "phone",
    "event_date",
    "event_type",
    "event_type_other",
    "services",
    "guest_count",
    "location",
    "items",
    "payment_method",
    "payment_status",
    "status",
    "notes",
)

SORTABLE_FIELDS = frozenset(
    {"created_at", "updated_at", "event_date", "total_amount", "customer_name", "status", "payment_status", "reference"}
)

PAYMENT_STATUS_UPDATES = frozenset(
    {Quote.PaymentStatus.PENDING, Quote.PaymentStatus.PAID, Quote.PaymentStatus.FAILED}
)

LIST_DEFAULT_LIMIT = 10
LIST_MAX_LIMIT = 100


def page_window(page, limit):
    """Clamp raw page/limit values to a 1-based page and a limit in ``1..LIST_MAX_LIMIT``."""
    try:
        page = max(1, int(page))
    except (TypeError, ValueError):
        page = 1
    try:
        limit = min(LIST_MAX_LIMIT, max(1, int(limit)))
    except (TypeError, ValueError):
        limit = LIST_DEFAULT_LIMIT
    return page, limit


def parse_quote_id(quote_id):
    try:
        return uuid.UUID(str(quote_id))
    except (TypeError, ValueError, AttributeError) as exc:
        raise errors.NotFoundError("Quote not found.") from exc


def normalize_status(value):
    status = str(value or "").strip().lower()
    if status not in Quote.Status.values:
        raise errors.InvalidStatusError(
            f"Invalid status. Must be one of: {', '.join(Quote.Status.values)}.",
            details={"status": value, "allowed": list(Quote.Status.values)},
        )
    return status


def is_approval_transition(previous_status, new_status) -> bool:
    new_status = str(new_status or "").lower()
    return new_status in Quote.APPROVAL_STATUSES and new_status != str(previous_status or "").lower()


def _validation_details(exc: DjangoValidationError):
    return exc.message_dict if hasattr(exc, "error_dict") else {"non_field_errors": exc.messages}


def _generate_payment_id(prefix):
    return f"{prefix}-{timezone.now():%Y%m%d%H%M%S}-{secrets.token_hex(3).upper()}"


class QuoteLifecycleManager:
    def __init__(
        self,
        *,
        notifications,
        documents,
        notify_admins=None,
        admin_recipients=None,
        customer_materializer=materialize_customer_from_quote,
    ):
        self.notifications = notifications
        self.documents = documents
        self._notify_admins = notify_admins
        self._admin_recipients = admin_recipients
        self.customer_materializer = customer_materializer

        self.submission_pipeline = Pipeline(
            "quote.submit",
            [
                Step("normalize", self._normalize_submission, fatal=True),
                Step("persist", self._persist_submission, fatal=True),
                Step("render_document", self._render_document),
                Step("notify_customer", self._notify_customer_received),
                Step("notify_admins", self._notify_admins_new_quote, condition=self._should_notify_admins),
            ],
        )
        self.approval_pipeline = Pipeline(
            "quote.approval",
            [
                Step("render_document", self._render_document),
                Step("notify_customer", self._notify_customer_confirmed),
                Step("materialize_customer", self._materialize_customer),
                Step("notify_admins", self._notify_admins_approved, condition=self._should_notify_admins),
            ],
        )
        self.payment_pipeline = Pipeline(
            "quote.payment",
            [Step("notify_customer", self._notify_customer_paid)],
        )

    # Settings are read per call so override_settings applies to the cached manager.
    def admins_enabled(self) -> bool:
        if self._notify_admins is not None:
            return bool(self._notify_admins)
        return bool(getattr(settings, "NOTIFY_ADMINS", True))

    def admin_recipients(self) -> list[str]:
        if self._admin_recipients is not None:
            return list(self._admin_recipients)
        return configured_admin_recipients()

    # Submission

    def submit_quote(self, payload) -> Quote:
        context = self.submission_pipeline.run(WorkflowContext(payload=dict(payload or {})))
        quote = context.quote
        logger.info(
            "quote_submitted failed_steps=%s",
            ",".join(context.failed_steps) or "-",
            extra={"quote_id": str(quote.id), "reference": quote.reference},
        )
        return quote

    def _normalize_submission(self, context: WorkflowContext):
        payload = context.payload
        items = payload.get("items")
        if not items:
            raise errors.EmptyItemsError()

        event_date = parse_event_date(payload.get("event_date"))
        if event_date is None:
            raise errors.ValidationError("Event date is required.", details={"event_date": ["Enter a valid date."]})

        event_type = normalize_event_type(payload.get("event_type"))
        context.payload = {
            "customer_name": str(payload.get("customer_name") or "").strip(),
            "company": str(payload.get("company") or "").strip(),
            "email": str(payload.get("email") or "").strip().lower(),
            "phone": str(payload.get("phone") or "").strip(),
            "event_date": event_date,
            "event_type": event_type,
            "event_type_other": (
                str(payload.get("event_type_other") or "").strip() if event_type == Quote.EventType.OTHER else ""
            ),
            "services": coerce_services(payload.get("services")),
            "guest_count": coerce_guest_count(payload.get("guest_count")),
            "location": str(payload.get("location") or "").strip(),
            "payment_method": str(payload.get("payment_method") or "").strip().lower(),
            "notes": truncate_notes(payload.get("notes")),
            "items": normalize_items(items),
        }

    def _persist_submission(self, context: WorkflowContext):
        fields = dict(context.payload)
        items = self._build_items(fields.pop("items"))
        quote = Quote(**fields)
        quote.total_amount = sum((item.total for item in items), Decimal("0.00"))

        try:
            quote.full_clean()
        except DjangoValidationError as exc:
            raise errors.ValidationError("Quote validation failed.", details=_validation_details(exc)) from exc

        try:
            with transaction.atomic():
                quote.save()
                self._write_items(quote, items)
        except IntegrityError as exc:
            raise errors.DuplicateKeyError("A quote with this reference already exists.") from exc
        except DatabaseError as exc:
            raise errors.PersistenceError(f"Quote could not be saved: {exc}") from exc

        context.quote = quote

    def _build_items(self, items) -> list[QuoteItem]:
        """Unsaved, validated item rows; out-of-range values raise ``ValidationError``."""
        built = []
        item_errors = {}
        for position, item in enumerate(items):
            quote_item = QuoteItem(
                position=position,
                name=item["name"],
                quantity=item["quantity"],
                price=item["price"],
                total=item["total"],
            )
            try:
                quote_item.full_clean(exclude=["quote", "name"], validate_unique=False)
            except DjangoValidationError as exc:
                item_errors[str(position)] = exc.message_dict
            built.append(quote_item)

        if item_errors:
            raise errors.ValidationError("Quote item validation failed.", details={"items": item_errors})
        return built

    def _write_items(self, quote, items):
        for item in items:
            item.quote = quote
        QuoteItem.objects.bulk_create(items)

    # Shared steps

    def _render_document(self, context: WorkflowContext):
        context.document = self.documents.render(context.quote)

    def _attachments(self, context: WorkflowContext):
        if not context.document:
            return None
        return [Attachment(document_filename(context.quote), context.document)]

    def _should_notify_admins(self, context: WorkflowContext) -> bool:
        return self.admins_enabled() and bool(self.admin_recipients())

    def _send(self, to, content, attachments=None):
        return self.notifications.send(
            to,
            content.subject,
            content.text_body,
            html_body=content.html_body,
            attachments=attachments,
        )

    def _notify_customer_received(self, context: WorkflowContext):
        self._send(context.quote.email, emails.quote_received_email(context.quote), self._attachments(context))

    def _notify_admins_new_quote(self, context: WorkflowContext):
        self._send(self.admin_recipients(), emails.admin_new_quote_email(context.quote), self._attachments(context))

    def _notify_customer_confirmed(self, context: WorkflowContext):
        self._send(context.quote.email, emails.quote_confirmed_email(context.quote), self._attachments(context))

    def _materialize_customer(self, context: WorkflowContext):
        context.customer = self.customer_materializer(context.quote)

    def _notify_admins_approved(self, context: WorkflowContext):
        self._send(self.admin_recipients(), emails.admin_quote_approved_email(context.quote), self._attachments(context))

    def _notify_customer_paid(self, context: WorkflowContext):
        quote = context.quote
        self._send(quote.email, emails.payment_confirmation_email(quote, context.payload["payment"]))

    # Reads

    def get_quote(self, quote_id) -> Quote:
        try:
            return Quote.objects.select_related("payment").prefetch_related("items").get(pk=parse_quote_id(quote_id))
        except Quote.DoesNotExist as exc:
            raise errors.NotFoundError("Quote not found.") from exc

    def _locked_quote(self, quote_id) -> Quote:
        try:
            return Quote.objects.select_for_update().get(pk=parse_quote_id(quote_id))
        except Quote.DoesNotExist as exc:
            raise errors.NotFoundError("Quote not found.") from exc

    def query_quotes(self, filters=None, sort_by=None, sort_order=None):
        filters = filters or {}
        qs = Quote.objects.select_related("payment").prefetch_related("items")

        status = filters.get("status")
        if status:
            qs = qs.filter(status=str(status).strip().lower())

        payment_status = filters.get("payment_status")
        if payment_status:
            qs = qs.filter(payment_status=str(payment_status).strip().lower())

        start_date = parse_event_date(filters.get("start_date"))
        if start_date:
            qs = qs.filter(event_date__gte=start_date)

        end_date = parse_event_date(filters.get("end_date"))
        if end_date:
            qs = qs.filter(event_date__lte=end_date)

        search = str(filters.get("search") or "").strip()
        if search:
            qs = qs.filter(
                Q(customer_name__icontains=search)
                | Q(email__icontains=search)
                | Q(phone__icontains=search)
                | Q(reference__icontains=search)
            )

        field = sort_by if sort_by in SORTABLE_FIELDS else "created_at"
        direction = "" if str(sort_order or "").lower() == "asc" else "-"
        return qs.order_by(f"{direction}{field}", "-id")

    def list_quotes(self, filters=None, page=1, limit=LIST_DEFAULT_LIMIT, sort_by="created_at", sort_order="desc"):
        """Return ``(quotes, total)`` for one page of the filtered listing."""
        page, limit = page_window(page, limit)
        qs = self.query_quotes(filters, sort_by=sort_by, sort_order=sort_order)
        total = qs.count()
        offset = (page - 1) * limit
        return list(qs[offset : offset + limit]), total

    # Updates and transitions

    def _run_approval_if_transitioned(self, quote, previous_status):
        if not is_approval_transition(previous_status, quote.status):
            return None
        logger.info(
            "quote_approval_transition previous=%s new=%s",
            previous_status,
            quote.status,
            extra={"quote_id": str(quote.id), "reference": quote.reference},
        )
        return self.approval_pipeline.run(WorkflowContext(quote=quote, previous_status=previous_status))

    def update_quote_fields(self, quote_id, changes) -> Quote:
        changes = {key: value for key, value in dict(changes or {}).items() if key in UPDATABLE_FIELDS}
        if "status" in changes:
            changes["status"] = normalize_status(changes["status"])

        try:
            with transaction.atomic():
                quote = self._locked_quote(quote_id)
                previous_status = quote.status
                items = self._apply_changes(quote, changes)

                try:
                    quote.full_clean()
                except DjangoValidationError as exc:
                    raise errors.ValidationError("Quote validation failed.", details=_validation_details(exc)) from exc

                quote.save()
                if items is not None:
                    quote.items.all().delete()
                    self._write_items(quote, items)
        except IntegrityError as exc:
            raise errors.DuplicateKeyError("A quote with the same unique value already exists.") from exc
        except DatabaseError as exc:
            raise errors.PersistenceError(f"Quote could not be saved: {exc}") from exc

        logger.info(
            "quote_updated fields=%s",
            ",".join(sorted(changes)),
            extra={"quote_id": str(quote.id), "reference": quote.reference},
        )
        self._run_approval_if_transitioned(quote, previous_status)
        return quote

    def _apply_changes(self, quote, changes):
        items = None
        for field, value in changes.items():
            if field == "items":
                if not value:
                    raise errors.EmptyItemsError()
                items = self._build_items(normalize_items(value))
                quote.total_amount = sum((item.total for item in items), Decimal("0.00"))
            elif field == "event_date":
                event_date = parse_event_date(value)
                if event_date is None:
                    raise errors.ValidationError("Invalid event date.", details={"event_date": ["Enter a valid date."]})
                if event_date != quote.event_date:
                    try:
                        validate_future_event_date(event_date)
                    except DjangoValidationError as exc:
                        raise errors.ValidationError(exc.messages[0], details={"event_date": exc.messages}) from exc
                quote.event_date = event_date
            elif field == "event_type":
                quote.event_type = normalize_event_type(value)
            elif field == "services":
                quote.services = coerce_services(value)
            elif field == "guest_count":
                quote.guest_count = coerce_guest_count(value)
            elif field == "notes":
                quote.notes = truncate_notes(value)
            elif field in {"email", "payment_method", "payment_status"}:
                setattr(quote, field, str(value or "").strip().lower())
            elif isinstance(value, str):
                setattr(quote, field, value.strip())
            else:
                setattr(quote, field, value)

        if quote.event_type != Quote.EventType.OTHER:
            quote.event_type_other = ""
        return items

    def update_quote_status(self, quote_id, status) -> Quote:
        new_status = normalize_status(status)

        with transaction.atomic():
            quote = self._locked_quote(quote_id)
            previous_status = quote.status
            quote.status = new_status
            quote.save(update_fields=["status", "updated_at"])

        logger.info(
            "quote_status_updated previous=%s new=%s",
            previous_status,
            new_status,
            extra={"quote_id": str(quote.id), "reference": quote.reference},
        )
        self._run_approval_if_transitioned(quote, previous_status)
        return quote

    def update_payment_status(self, quote_id, payment_status) -> Quote:
        value = str(payment_status or "").strip().lower()
        if value not in PAYMENT_STATUS_UPDATES:
            raise errors.InvalidStatusError(
                "Invalid payment status. Must be one of: pending, paid, failed.",
                details={"payment_status": payment_status, "allowed": sorted(PAYMENT_STATUS_UPDATES)},
            )

        with transaction.atomic():
            quote = self._locked_quote(quote_id)
            quote.payment_status = value
            quote.save(update_fields=["payment_status", "updated_at"])

        logger.info(
            "quote_payment_status_updated payment_status=%s",
            value,
            extra={"quote_id": str(quote.id), "reference": quote.reference},
        )
        return quote

    def delete_quote(self, quote_id):
        quote = self.get_quote(quote_id)
        quote_pk, reference = quote.pk, quote.reference
        quote.delete()
        logger.info("quote_deleted", extra={"quote_id": str(quote_pk), "reference": reference})

    # Payments

    def process_payment(self, quote_id, method, amount, reference=None):
        method = str(method or "").strip().lower()
        if method not in Quote.PaymentMethod.values:
            raise errors.ValidationError(
                "Invalid payment method.",
                details={"payment_method": [f"Must be one of: {', '.join(Quote.PaymentMethod.values)}."]},
            )
        try:
            amount = Decimal(str(amount))
        except (InvalidOperation, TypeError, ValueError) as exc:
            raise errors.ValidationError("Invalid payment amount.", details={"amount": ["Enter a number."]}) from exc

        with transaction.atomic():
            quote = self._locked_quote(quote_id)
            if quote.payment_status == Quote.PaymentStatus.PAID:
                raise errors.ValidationError("Quote has already been paid.")
            if amount != quote.total_amount:
                raise errors.ValidationError(
                    "Payment amount does not match quote total.",
                    details={"amount": [f"Expected {quote.total_amount}."]},
                )

            payment, _ = QuotePayment.objects.update_or_create(
                quote=quote,
                defaults={
                    "method": method,
                    "status": QuotePayment.Status.COMPLETED,
                    "amount": amount,
                    "currency": "ZAR",
                    "reference": reference or _generate_payment_id("PAY"),
                    "transaction_id": _generate_payment_id("TXN"),
                    "paid_at": timezone.now(),
                },
            )

            previous_status = quote.status
            quote.payment_method = method
            quote.payment_status = Quote.PaymentStatus.PAID
            quote.status = Quote.Status.CONFIRMED
            quote.save(update_fields=["payment_method", "payment_status", "status", "updated_at"])

        logger.info(
            "quote_payment_processed transaction_id=%s",
            payment.transaction_id,
            extra={"quote_id": str(quote.id), "reference": quote.reference},
        )
        self._run_approval_if_transitioned(quote, previous_status)
        self.payment_pipeline.run(WorkflowContext(quote=quote, payload={"payment": payment}))
        return quote, payment

    def get_payment_details(self, quote_id) -> QuotePayment:
        quote = self.get_quote(quote_id)
        try:
            return quote.payment
        except QuotePayment.DoesNotExist as exc:
            raise errors.NotFoundError("No payment found for this quote.") from exc


@functools.lru_cache(maxsize=1)
def default_lifecycle_manager() -> QuoteLifecycleManager:
    return QuoteLifecycleManager(
        notifications=get_notification_gateway(),
        documents=QuoteDocumentGenerator(),
    )
