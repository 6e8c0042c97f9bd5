"""PDF quotation rendering."""
from __future__ import annotations

import io
from decimal import Decimal

from django.conf import settings
from django.utils import timezone
from django.utils.html import escape
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from common.errors import RenderError
from quotes.emails import format_currency, format_payment_method


def _para(text, style):
    return Paragraph(escape(str(text)), style)


def document_filename(quote) -> str:
    return f"Quote-{quote.reference or quote.id}.pdf"


class QuoteDocumentGenerator:
    """Renders a quote into a PDF byte buffer."""

    def render(self, quote) -> bytes:
        try:
            return self._build(quote)
        except Exception as exc:
            raise RenderError(f"Could not render quote {quote.reference or quote.id}: {exc}") from exc

    def _build(self, quote) -> bytes:
        buffer = io.BytesIO()
        styles = getSampleStyleSheet()
        doc = SimpleDocTemplate(
            buffer,
            pagesize=A4,
            leftMargin=18 * mm,
            rightMargin=18 * mm,
            topMargin=18 * mm,
            bottomMargin=18 * mm,
            title=f"Quotation {quote.reference}",
        )

        story = [
            _para(settings.COMPANY_NAME, styles["Title"]),
            _para(settings.COMPANY_ADDRESS, styles["Normal"]),
            _para(settings.COMPANY_PHONE, styles["Normal"]),
            _para(settings.COMPANY_EMAIL, styles["Normal"]),
            Spacer(1, 8 * mm),
            _para("Quotation", styles["Heading1"]),
            _para(f"Reference: {quote.reference or quote.id}", styles["Normal"]),
            _para(f"Quote Date: {timezone.localtime(quote.created_at or timezone.now()):%d %B %Y %H:%M}", styles["Normal"]),
            _para(f"Event Date: {timezone.localtime(quote.event_date):%d %B %Y %H:%M}", styles["Normal"]),
            Spacer(1, 6 * mm),
            _para("Customer Details", styles["Heading2"]),
            _para(f"Name: {quote.customer_name}", styles["Normal"]),
            _para(f"Company: {quote.company or '-'}", styles["Normal"]),
            _para(f"Email: {quote.email}", styles["Normal"]),
            _para(f"Phone: {quote.phone}", styles["Normal"]),
            _para(f"Location: {quote.location}", styles["Normal"]),
            Spacer(1, 6 * mm),
            _para("Event Details", styles["Heading2"]),
            _para(f"Type: {self._event_type_label(quote)}", styles["Normal"]),
            _para(f"Guest Count: {quote.guest_count}", styles["Normal"]),
            _para(f"Services: {', '.join(quote.services or []) or '-'}", styles["Normal"]),
            Spacer(1, 6 * mm),
            _para("Selected Items", styles["Heading2"]),
            self._items_table(quote),
            Spacer(1, 6 * mm),
            _para("Payment Information", styles["Heading2"]),
            _para(f"Method: {format_payment_method(quote.payment_method)}", styles["Normal"]),
            _para(f"Payment Status: {(quote.payment_status or 'pending').upper()}", styles["Normal"]),
        ]

        if quote.notes:
            story += [Spacer(1, 6 * mm), _para("Notes", styles["Heading2"]), _para(quote.notes, styles["Normal"])]

        story += [
            Spacer(1, 10 * mm),
            _para(
                f"Thank you for choosing {settings.COMPANY_NAME}. We will contact you shortly to confirm details.",
                styles["Italic"],
            ),
            _para("This quotation is valid for 14 days unless otherwise stated.", styles["Italic"]),
        ]

        doc.build(story)
        return buffer.getvalue()

    def _event_type_label(self, quote):
        if quote.event_type == "other" and quote.event_type_other:
            return f"{quote.event_type} ({quote.event_type_other})"
        return quote.event_type

    def _items_table(self, quote):
        rows = [["Item", "Qty", "Price", "Total"]]
        for item in quote.items.all():
            rows.append([item.name or "-", str(item.quantity), format_currency(item.price), format_currency(item.total)])
        rows.append(["", "", "Subtotal", format_currency(quote.total_amount or Decimal("0"))])

        table = Table(rows, colWidths=[85 * mm, 20 * mm, 34 * mm, 34 * mm])
        table.setStyle(
            TableStyle(
                [
                    ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                    ("LINEBELOW", (0, 0), (-1, 0), 0.5, colors.grey),
                    ("LINEABOVE", (0, -1), (-1, -1), 0.5, colors.grey),
                    ("ALIGN", (1, 0), (-1, -1), "RIGHT"),
                    ("FONTNAME", (2, -1), (-1, -1), "Helvetica-Bold"),
                ]
            )
        )
        return table
