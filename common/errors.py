from __future__ import annotations

from typing import Any


class DomainError(Exception):
    """Base class for errors raised by the service layer.

    Each subclass carries a stable ``code`` and the HTTP status the API layer
    renders it with, so views never have to translate them by hand.
    """

    code = "domain_error"
    status_code = 400
    default_message = "Request failed."

    def __init__(self, message: str | None = None, *, details: Any = None):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)


class ValidationError(DomainError):
    code = "validation_error"
    status_code = 400
    default_message = "Validation failed."


class EmptyItemsError(ValidationError):
    code = "empty_items"
    default_message = "At least one item is required for a quote."


class InvalidStatusError(ValidationError):
    code = "invalid_status"
    default_message = "Invalid status value."


class NotFoundError(DomainError):
    code = "not_found"
    status_code = 404
    default_message = "Record was not found."


class DuplicateKeyError(DomainError):
    code = "duplicate_key"
    status_code = 409
    default_message = "A record with the same unique value already exists."


class PersistenceError(DomainError):
    code = "persistence_error"
    status_code = 500
    default_message = "The record could not be saved."


class RenderError(DomainError):
    code = "render_error"
    status_code = 500
    default_message = "Document generation failed."


class DeliveryError(DomainError):
    code = "delivery_error"
    status_code = 502
    default_message = "Notification delivery failed."
