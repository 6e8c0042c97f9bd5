import logging

from django.conf import settings
from django.utils import timezone

from common.errors import DeliveryError
from common.notifications import get_notification_gateway
from contact.models import ContactMessage

logger = logging.getLogger(__name__)


def _notification_bodies(message):
    text_body = (
        f"From: {message.name} <{message.email}>\n"
        f"Phone: {message.phone or 'N/A'}\n\n"
        f"{message.message}\n\n"
        f"Sent at: {timezone.now().isoformat()}\n"
        f"Message ID: {message.id}\n"
    )
    return f"New Website Message from {message.name}", text_body


def submit_contact_message(data, *, meta=None, gateway=None):
    """Store the message, then try to notify ``CONTACT_TO``; delivery problems never fail the call."""
    message = ContactMessage.objects.create(meta=meta or {}, **data)

    recipients = settings.CONTACT_TO
    if not recipients:
        logger.warning("contact_notification_skipped_no_recipient")
        return message

    subject, text_body = _notification_bodies(message)
    gateway = gateway or get_notification_gateway()
    try:
        gateway.send(recipients, subject, text_body)
    except DeliveryError as exc:
        logger.warning("contact_notification_failed error=%s", exc, extra={"recipient": ",".join(recipients)})
    return message
