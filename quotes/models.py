import secrets
import string
import uuid
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.db.models import Sum
from django.utils import timezone

REFERENCE_ALPHABET = string.ascii_uppercase + string.digits
REFERENCE_SUFFIX_LENGTH = 5
NOTES_MAX_LENGTH = 1000
MAX_COUNT = 2_147_483_647


def generate_reference(now=None):
    """Human friendly quote reference, e.g. ``QTE-20250812-3F7A2``."""
    now = now or timezone.now()
    suffix = "".join(secrets.choice(REFERENCE_ALPHABET) for _ in range(REFERENCE_SUFFIX_LENGTH))
    return f"QTE-{now:%Y%m%d}-{suffix}"


def validate_future_event_date(value):
    if value is not None and value <= timezone.now():
        raise ValidationError("Event date must be in the future.", code="event_date_in_past")


class Quote(models.Model):
    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        APPROVED = "approved", "Approved"
        CONFIRMED = "confirmed", "Confirmed"
        REJECTED = "rejected", "Rejected"
        COMPLETED = "completed", "Completed"

    class EventType(models.TextChoices):
        WEDDING = "wedding", "Wedding"
        CORPORATE = "corporate", "Corporate"
        FESTIVAL = "festival", "Festival"
        PRIVATE = "private", "Private"
        OTHER = "other", "Other"

    class PaymentMethod(models.TextChoices):
        CASH = "cash", "Cash"
        EFT = "eft", "EFT"

    class PaymentStatus(models.TextChoices):
        PENDING = "pending", "Pending"
        PAID = "paid", "Paid"
        FAILED = "failed", "Failed"
        REFUNDED = "refunded", "Refunded"
        PARTIALLY_PAID = "partially_paid", "Partially Paid"

    APPROVAL_STATUSES = frozenset({Status.APPROVED, Status.CONFIRMED})

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    reference = models.CharField(max_length=32, unique=True, blank=True, editable=False)
    customer_name = models.CharField(max_length=100)
    company = models.CharField(max_length=150, blank=True)
    email = models.EmailField()
    phone = models.CharField(max_length=32)
    event_date = models.DateTimeField()
    event_type = models.CharField(max_length=16, choices=EventType, default=EventType.OTHER)
    event_type_other = models.CharField(max_length=100, blank=True)
    services = models.JSONField(default=list, blank=True)
    guest_count = models.PositiveIntegerField(default=1, validators=[MinValueValidator(1), MaxValueValidator(MAX_COUNT)])
    location = models.CharField(max_length=255)
    total_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal("0.00"),
        validators=[MinValueValidator(Decimal("0"))],
    )
    payment_method = models.CharField(max_length=8, choices=PaymentMethod)
    payment_status = models.CharField(max_length=16, choices=PaymentStatus, default=PaymentStatus.PENDING)
    status = models.CharField(max_length=16, choices=Status, default=Status.PENDING)
    notes = models.TextField(max_length=NOTES_MAX_LENGTH, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=["status", "created_at"], name="quote_status_created_idx"),
            models.Index(fields=["payment_status", "created_at"], name="quote_payment_created_idx"),
            models.Index(fields=["email"], name="quote_email_idx"),
            models.Index(fields=["event_date"], name="quote_event_date_idx"),
        ]

    def __str__(self):
        return f"{self.reference or self.id} ({self.customer_name})"

    def clean(self):
        super().clean()
        if self._state.adding:
            try:
                validate_future_event_date(self.event_date)
            except ValidationError as exc:
                raise ValidationError({"event_date": exc.messages}) from exc

    def save(self, *args, **kwargs):
        if self.email:
            self.email = self.email.strip().lower()
        if not self.reference:
            self.reference = generate_reference()
            update_fields = kwargs.get("update_fields")
            if update_fields is not None:
                kwargs["update_fields"] = {*update_fields, "reference"}
        super().save(*args, **kwargs)

    @property
    def is_approved(self):
        return self.status in self.APPROVAL_STATUSES

    def recalculate_total(self):
        total = self.items.aggregate(total=Sum("total"))["total"] or Decimal("0.00")
        self.total_amount = total
        return total


class QuoteItem(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    quote = models.ForeignKey(Quote, on_delete=models.CASCADE, related_name="items")
    position = models.PositiveIntegerField(default=0)
    name = models.CharField(max_length=255)
    quantity = models.PositiveIntegerField(validators=[MinValueValidator(1), MaxValueValidator(MAX_COUNT)])
    price = models.DecimalField(max_digits=12, decimal_places=2, validators=[MinValueValidator(Decimal("0"))])
    total = models.DecimalField(max_digits=12, decimal_places=2, validators=[MinValueValidator(Decimal("0"))])

    class Meta:
        ordering = ["position"]
        indexes = [
            models.Index(fields=["quote", "position"], name="quote_item_position_idx"),
        ]

    def save(self, *args, **kwargs):
        self.total = Decimal(self.quantity) * Decimal(self.price)
        super().save(*args, **kwargs)


class QuotePayment(models.Model):
    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        PROCESSING = "processing", "Processing"
        COMPLETED = "completed", "Completed"
        FAILED = "failed", "Failed"
        REFUNDED = "refunded", "Refunded"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    quote = models.OneToOneField(Quote, on_delete=models.CASCADE, related_name="payment")
    method = models.CharField(max_length=8, choices=Quote.PaymentMethod)
    status = models.CharField(max_length=16, choices=Status, default=Status.PENDING)
    amount = models.DecimalField(max_digits=12, decimal_places=2, validators=[MinValueValidator(Decimal("0"))])
    currency = models.CharField(max_length=3, default="ZAR")
    reference = models.CharField(max_length=64, blank=True)
    transaction_id = models.CharField(max_length=64, blank=True)
    receipt_url = models.URLField(blank=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
