from __future__ import annotations

from typing import Any


class BookingError(Exception):
    """Base for errors that surface as typed HTTP error responses."""

    code = "BOOKING_ERROR"
    status_code = 400

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = dict(details or {})

    def to_dict(self) -> dict[str, Any]:
        return {"error": {"code": self.code, "message": self.message, "details": self.details}}


class NotFoundError(BookingError):
    code = "NOT_FOUND"
    status_code = 404


class ValidationError(BookingError):
    code = "VALIDATION_ERROR"
    status_code = 422

    def __init__(self, message: str, field_errors: dict[str, str] | None = None) -> None:
        super().__init__(message, {"fields": dict(field_errors or {})})
        self.field_errors = dict(field_errors or {})


class ConflictError(BookingError):
    code = "CONFLICT"
    status_code = 409


class AlreadyPaidError(ConflictError):
    code = "ALREADY_PAID"


class PaymentVerificationError(BookingError):
    """Raised when a tracker cannot be verified as paid for the booking."""

    code = "PAYMENT_NOT_VERIFIED"
    status_code = 400


class ForbiddenError(BookingError):
    code = "FORBIDDEN"
    status_code = 403


class WebhookSignatureError(BookingError):
    code = "INVALID_SIGNATURE"
    status_code = 403


class GatewayError(BookingError):
    """Raised when the payment provider fails (timeouts, network errors, bad payloads)."""

    code = "GATEWAY_ERROR"
    status_code = 502


class InternalError(BookingError):
    code = "INTERNAL_ERROR"
    status_code = 500


class StaleBookingError(RuntimeError):
    """Raised by a store when a conditional update finds the row changed."""


class DuplicateReferenceError(RuntimeError):
    """Raised by a store when a reference number is already taken."""
