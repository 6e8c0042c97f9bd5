"""Subjects and bodies of the quote lifecycle emails."""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from django.conf import settings
from django.template.loader import render_to_string
from django.utils import timezone


@dataclass(frozen=True)
class EmailContent:
    subject: str
    text_body: str
    html_body: str


def format_currency(value) -> str:
    amount = Decimal(value or 0)
    return f"R {amount:,.2f}"


def format_payment_method(method) -> str:
    return {"cash": "Cash", "eft": "EFT (Electronic Funds Transfer)"}.get(method or "", method or "-")


def _render(template_name, context) -> tuple[str, str]:
    text_body = render_to_string(f"quotes/emails/{template_name}.txt", context)
    html_body = render_to_string(f"quotes/emails/{template_name}.html", context)
    return text_body, html_body


def _quote_context(quote, **extra):
    frontend_url = settings.FRONTEND_URL.rstrip("/")
    items = [
        {
            "name": item.name or "-",
            "quantity": item.quantity,
            "price": format_currency(item.price),
            "total": format_currency(item.total),
        }
        for item in quote.items.all()
    ]
    return {
        "quote": quote,
        "reference": quote.reference or str(quote.id),
        "event_date": timezone.localtime(quote.event_date).strftime("%A, %d %B %Y"),
        "items": items,
        "total": format_currency(quote.total_amount),
        "payment_method": format_payment_method(quote.payment_method),
        "services": ", ".join(quote.services or []),
        "company_name": settings.COMPANY_NAME,
        "company_phone": settings.COMPANY_PHONE,
        "company_email": settings.COMPANY_EMAIL,
        "frontend_url": frontend_url,
        "quote_url": f"{frontend_url}/quote/{quote.id}",
        "admin_url": f"{frontend_url}/admin/quotes/{quote.id}",
        **extra,
    }


def quote_received_email(quote) -> EmailContent:
    text_body, html_body = _render("quote_received", _quote_context(quote))
    return EmailContent(f"Your Quote Request - {quote.reference}", text_body, html_body)


def admin_new_quote_email(quote) -> EmailContent:
    text_body, html_body = _render("admin_new_quote", _quote_context(quote))
    return EmailContent(f"New Quote Request - {quote.reference}", text_body, html_body)


def quote_confirmed_email(quote) -> EmailContent:
    text_body, html_body = _render("quote_confirmed", _quote_context(quote))
    return EmailContent(f"Your Quote Has Been Confirmed - {quote.reference}", text_body, html_body)


def admin_quote_approved_email(quote) -> EmailContent:
    text_body, html_body = _render("admin_quote_approved", _quote_context(quote))
    return EmailContent(f"Quote Approved - {quote.reference}", text_body, html_body)


def payment_confirmation_email(quote, payment) -> EmailContent:
    context = _quote_context(
        quote,
        payment=payment,
        amount=format_currency(payment.amount),
        paid_at=timezone.localtime(payment.paid_at or timezone.now()).strftime("%d %B %Y %H:%M"),
    )
    text_body, html_body = _render("payment_confirmation", context)
    return EmailContent(f"Payment Confirmation - {quote.reference}", text_body, html_body)
