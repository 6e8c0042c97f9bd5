"""Coercion rules applied to quote input before it reaches the database.

Line-item noise is coerced rather than rejected: a quantity that does not
parse becomes 1, a price that does not parse becomes 0. Missing items are the
only hard failure and are handled by the caller.
"""
from __future__ import annotations

import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from django.utils import timezone
from django.utils.dateparse import parse_date, parse_datetime

from quotes.models import MAX_COUNT, NOTES_MAX_LENGTH, Quote

MONEY_QUANT = Decimal("0.01")

EVENT_TYPE_SYNONYMS = {
    "wedding": Quote.EventType.WEDDING,
    "corporate": Quote.EventType.CORPORATE,
    "business": Quote.EventType.CORPORATE,
    "office": Quote.EventType.CORPORATE,
    "festival": Quote.EventType.FESTIVAL,
    "concert": Quote.EventType.FESTIVAL,
    "show": Quote.EventType.FESTIVAL,
    "private": Quote.EventType.PRIVATE,
    "party": Quote.EventType.PRIVATE,
    "birthday": Quote.EventType.PRIVATE,
    "other": Quote.EventType.OTHER,
}


def _to_money(value):
    value = Decimal(value)
    try:
        return value.quantize(MONEY_QUANT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        # Too many digits to quantize; model validation rejects it later.
        return value


def normalize_event_type(value) -> str:
    raw = str(value or "").strip().lower()
    return EVENT_TYPE_SYNONYMS.get(raw, Quote.EventType.OTHER).value


def coerce_quantity(value) -> int:
    """Whole count of at least 1. Values past ``MAX_COUNT`` are kept out of range so validation can reject them."""
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, TypeError, ValueError):
        return 1
    if not number.is_finite() or number < 1:
        return 1
    if number.adjusted() >= 18:
        return MAX_COUNT + 1
    return int(number)


def coerce_price(value) -> Decimal:
    try:
        price = Decimal(str(value).strip())
    except (InvalidOperation, TypeError, ValueError):
        return Decimal("0.00")
    if not price.is_finite():
        return Decimal("0.00")
    return _to_money(max(price, Decimal("0")))


def coerce_guest_count(value) -> int:
    if value in (None, ""):
        return 1
    return coerce_quantity(value)


def coerce_services(value) -> list[str]:
    if value in (None, ""):
        return []
    if isinstance(value, (list, tuple)):
        return [str(service).strip() for service in value if str(service).strip()]
    return [str(value).strip()]


def truncate_notes(value) -> str:
    return str(value or "").strip()[:NOTES_MAX_LENGTH]


def normalize_items(items) -> list[dict]:
    normalized = []
    for item in items or []:
        item = item or {}
        quantity = coerce_quantity(item.get("quantity"))
        price = coerce_price(item.get("price"))
        normalized.append(
            {
                "name": str(item.get("name") or "").strip()[:255],
                "quantity": quantity,
                "price": price,
                "total": _to_money(price * quantity),
            }
        )
    return normalized


def parse_event_date(value):
    """Return an aware datetime, or None when the value does not parse."""
    if value in (None, ""):
        return None
    if isinstance(value, datetime.datetime):
        parsed = value
    elif isinstance(value, datetime.date):
        parsed = datetime.datetime.combine(value, datetime.time.min)
    else:
        text = str(value).strip()
        try:
            parsed = parse_datetime(text)
            if parsed is None:
                day = parse_date(text)
                parsed = datetime.datetime.combine(day, datetime.time.min) if day else None
        except ValueError:
            return None
    if parsed is not None and timezone.is_naive(parsed):
        parsed = timezone.make_aware(parsed)
    return parsed
