import logging
from datetime import timedelta
from decimal import Decimal

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import Count, Max, Min, Q, Sum
from django.db.models.functions import Lower
from django.utils import timezone

from common.errors import DuplicateKeyError
from customers.models import Customer
from quotes.models import Quote

logger = logging.getLogger(__name__)

CUSTOMER_UPDATE_FIELDS = ("name", "email", "phone", "address", "company", "notes", "status", "booking_date")


def materialize_customer_from_quote(quote):
    """
    Create or update the customer record behind an approved quote.

    Returns the customer, or ``None`` when the quote carries no email. A
    concurrent insert of the same email surfaces as ``DuplicateKeyError``.
    """
    email = (quote.email or "").strip().lower()
    if not email:
        logger.warning("customer_materialize_skipped_no_email", extra={"quote_id": str(quote.id)})
        return None

    amount = Decimal(quote.total_amount or 0)
    try:
        with transaction.atomic():
            customer = Customer.objects.select_for_update().filter(email=email).first()
            if customer is not None:
                if quote.customer_name:
                    customer.name = quote.customer_name
                if quote.phone:
                    customer.phone = quote.phone
                customer.status = Customer.Status.ACTIVE
                customer.last_event_date = quote.event_date
                customer.total_spent = Decimal(customer.total_spent or 0) + amount
                customer.total_bookings = (customer.total_bookings or 0) + 1
                customer.save(
                    update_fields=[
                        "name",
                        "phone",
                        "status",
                        "last_event_date",
                        "total_spent",
                        "total_bookings",
                        "updated_at",
                    ]
                )
                created = False
            else:
                customer = Customer.objects.create(
                    name=quote.customer_name,
                    email=email,
                    phone=quote.phone or "",
                    company=quote.company or "",
                    status=Customer.Status.ACTIVE,
                    booking_date=timezone.now(),
                    total_bookings=1,
                    total_spent=amount,
                    last_event_date=quote.event_date,
                    notes=f"Customer created from approved quote {quote.reference}",
                )
                created = True
    except IntegrityError as exc:
        raise DuplicateKeyError(f"A customer with email {email} already exists.") from exc

    logger.info(
        "customer_materialized created=%s",
        created,
        extra={"customer_id": str(customer.id), "quote_id": str(quote.id), "reference": quote.reference},
    )
    return customer


def sweep_stale_quotation_customers(now=None, retention_days=None):
    """Delete customers still in ``quotation`` status past the retention window."""
    now = now or timezone.now()
    if retention_days is None:
        retention_days = settings.CUSTOMER_QUOTATION_RETENTION_DAYS
    cutoff = now - timedelta(days=retention_days)

    deleted_count, _ = Customer.objects.filter(
        status=Customer.Status.QUOTATION,
        created_at__lt=cutoff,
    ).delete()

    logger.info("customer_sweep_completed", extra={"deleted_count": deleted_count, "cutoff": cutoff.isoformat()})
    return deleted_count


def _email_taken(email, exclude_id=None):
    if not email:
        return False
    qs = Customer.objects.filter(email__iexact=email.strip())
    if exclude_id is not None:
        qs = qs.exclude(id=exclude_id)
    return qs.exists()


def _save(customer, **kwargs):
    try:
        with transaction.atomic():
            customer.save(**kwargs)
    except IntegrityError as exc:
        raise DuplicateKeyError("Customer with this email already exists.", details={"email": customer.email}) from exc
    return customer


def create_customer(data):
    if _email_taken(data.get("email")):
        raise DuplicateKeyError("Customer with this email already exists.", details={"email": data.get("email")})
    customer = Customer(**data)
    if not customer.status:
        customer.status = Customer.Status.ACTIVE
    return _save(customer)


def update_customer(customer, changes):
    changes = {field: value for field, value in changes.items() if field in CUSTOMER_UPDATE_FIELDS}
    if "email" in changes and _email_taken(changes["email"], exclude_id=customer.id):
        raise DuplicateKeyError("Another customer already uses this email.", details={"email": changes["email"]})
    for field, value in changes.items():
        setattr(customer, field, value)
    return _save(customer)


def approved_quote_customers(search=None):
    """One row per lower-cased email across approved and confirmed quotes."""
    quotes = Quote.objects.filter(status__in=Quote.APPROVAL_STATUSES)
    search = (search or "").strip()
    if search:
        quotes = quotes.filter(
            Q(customer_name__icontains=search) | Q(email__icontains=search) | Q(phone__icontains=search)
        )

    rows = (
        quotes.annotate(email_key=Lower("email"))
        .values("email_key")
        .annotate(
            total_quotes=Count("id"),
            total_spent=Sum("total_amount"),
            first_quote_at=Min("created_at"),
            last_event_date=Max("event_date"),
        )
        .order_by("-last_event_date", "email_key")
    )

    results = []
    for row in rows:
        latest = (
            Quote.objects.filter(status__in=Quote.APPROVAL_STATUSES, email__iexact=row["email_key"])
            .order_by("-created_at")
            .only("customer_name", "phone", "company")
            .first()
        )
        results.append(
            {
                "email": row["email_key"],
                "name": latest.customer_name if latest else "",
                "phone": latest.phone if latest else "",
                "company": latest.company if latest else "",
                "total_quotes": row["total_quotes"],
                "total_spent": row["total_spent"] or Decimal("0.00"),
                "first_quote_at": row["first_quote_at"],
                "last_event_date": row["last_event_date"],
            }
        )
    return results
