"""
Notification gateway.

Outbound email goes through a gateway object chosen once from settings and
handed to the services that need it:

- ``EmailNotificationGateway`` sends through Django's mail framework, so the
  transport is whatever ``EMAIL_BACKEND`` / ``EMAIL_HOST`` configure (SMTP in
  production, locmem under the test runner).
- ``LoggingNotificationGateway`` only logs what would have been sent. It is
  the default when no mail host is configured.

Callers treat ``DeliveryError`` as non-fatal; the gateway itself never
decides that.
"""
from __future__ import annotations

import functools
import logging
import uuid
from dataclasses import dataclass

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from django.core.mail import EmailMultiAlternatives, get_connection, make_msgid

from common.errors import DeliveryError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Attachment:
    filename: str
    content: bytes
    mimetype: str = "application/pdf"


@dataclass(frozen=True)
class DeliveryInfo:
    message_id: str
    recipients: tuple[str, ...]
    delivered: bool = True


def normalize_recipients(to) -> list[str]:
    if isinstance(to, str):
        parts = to.split(",")
    else:
        parts = list(to or [])
    return [part.strip() for part in parts if part and part.strip()]


class NotificationGateway:
    mode = "base"

    def send(self, to, subject, text_body, html_body=None, attachments=None) -> DeliveryInfo:
        raise NotImplementedError

    def verify(self) -> bool:
        return True


class EmailNotificationGateway(NotificationGateway):
    mode = "email"

    def __init__(self, *, from_email: str | None = None, connection=None):
        self.from_email = from_email or settings.DEFAULT_FROM_EMAIL
        self._connection = connection

    def _get_connection(self):
        return self._connection or get_connection(fail_silently=False)

    def send(self, to, subject, text_body, html_body=None, attachments=None) -> DeliveryInfo:
        recipients = normalize_recipients(to)
        if not recipients:
            raise DeliveryError("Email sending failed: no recipients given.")
        if not subject or not (text_body or html_body):
            raise DeliveryError("Email sending failed: a subject and a text or html body are required.")

        message_id = make_msgid(domain="eagleevents")
        message = EmailMultiAlternatives(
            subject=subject,
            body=text_body or "",
            from_email=self.from_email,
            to=recipients,
            headers={"Message-ID": message_id},
            connection=self._get_connection(),
        )
        if html_body:
            message.attach_alternative(html_body, "text/html")
        for attachment in attachments or []:
            message.attach(attachment.filename, attachment.content, attachment.mimetype)

        try:
            message.send(fail_silently=False)
        except Exception as exc:
            raise DeliveryError(f"Email sending failed: {exc}") from exc

        logger.info("email_sent subject=%s", subject, extra={"recipient": ",".join(recipients)})
        return DeliveryInfo(message_id=message_id, recipients=tuple(recipients))

    def verify(self) -> bool:
        try:
            connection = self._get_connection()
            connection.open()
            connection.close()
        except Exception:
            logger.exception("email_config_verification_failed")
            return False
        return True


class LoggingNotificationGateway(NotificationGateway):
    mode = "logging"

    def send(self, to, subject, text_body, html_body=None, attachments=None) -> DeliveryInfo:
        recipients = normalize_recipients(to)
        logger.info(
            "email_not_sent subject=%s attachments=%s",
            subject,
            len(attachments or []),
            extra={"recipient": ",".join(recipients)},
        )
        return DeliveryInfo(
            message_id=f"no-send-{uuid.uuid4().hex}",
            recipients=tuple(recipients),
            delivered=False,
        )

    def verify(self) -> bool:
        return False


NOTIFICATION_BACKENDS = {
    EmailNotificationGateway.mode: EmailNotificationGateway,
    LoggingNotificationGateway.mode: LoggingNotificationGateway,
}


def build_notification_gateway(backend: str | None = None) -> NotificationGateway:
    backend = (backend or getattr(settings, "NOTIFICATION_BACKEND", "logging")).strip().lower()
    gateway_class = NOTIFICATION_BACKENDS.get(backend)
    if gateway_class is None:
        raise ImproperlyConfigured(
            f"NOTIFICATION_BACKEND must be one of: {', '.join(sorted(NOTIFICATION_BACKENDS))}."
        )
    if gateway_class is LoggingNotificationGateway:
        logger.warning("notification_gateway_logging_only: emails will NOT be delivered")
    else:
        logger.info("notification_gateway_selected mode=%s", backend)
    return gateway_class()


@functools.lru_cache(maxsize=1)
def get_notification_gateway() -> NotificationGateway:
    return build_notification_gateway()


def admin_recipients() -> list[str]:
    return list(getattr(settings, "ADMIN_EMAILS", []) or [])
