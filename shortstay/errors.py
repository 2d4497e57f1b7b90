"""Error taxonomy for the booking flow.

Every error carries a machine ``code`` and the HTTP status the API layer
answers with.  Whether an error aborts a saga run or is only recorded as a
``False`` result flag is decided by the step table in
:mod:`shortstay.saga.booking`, not by the error class itself, with one
exception: :class:`ProviderAuthError` is always fatal.
"""

from __future__ import annotations

from typing import Any, Optional


class ShortStayError(Exception):
    """Base class for every error raised by this package."""

    code = "INTERNAL_ERROR"
    http_status = 500
    title = "Internal server error"

    def __init__(self, message: str = "", details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message or self.title)
        self.message = message or self.title
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "success": False,
            "error": self.title,
            "code": self.code,
            "message": self.message,
        }
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(ShortStayError):
    code = "VALIDATION_ERROR"
    http_status = 400
    title = "Invalid request"


class PaymentVerificationError(ShortStayError):
    code = "PAYMENT_VERIFICATION_FAILED"
    http_status = 400
    title = "Payment verification failed"


class ProviderError(ShortStayError):
    """An upstream provider call failed or answered non-2xx."""

    code = "PROVIDER_ERROR"
    http_status = 502
    title = "Upstream provider request failed"

    def __init__(
        self,
        message: str = "",
        status_code: Optional[int] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, details)
        self.status_code = status_code


class ProviderAuthError(ProviderError):
    code = "PROVIDER_AUTH_FAILED"
    title = "Upstream authentication failed"


class ProviderRequestError(ProviderError):
    code = "PROVIDER_REQUEST_FAILED"


class ContactCreationError(ProviderError):
    code = "CONTACT_CREATION_FAILED"
    title = "Failed to create guest contact"


class BookingCreationError(ProviderError):
    code = "BOOKING_CREATION_FAILED"
    title = "Failed to create booking"


class StatusUpdateError(ProviderError):
    code = "STATUS_UPDATE_FAILED"
    title = "Failed to update booking status"


class InvoicePostingError(ProviderError):
    code = "INVOICE_POSTING_FAILED"
    title = "Failed to post booking invoice"


class PaymentRecordingError(ProviderError):
    code = "PAYMENT_RECORDING_FAILED"
    title = "Payment processing failed"


class NotificationError(ShortStayError):
    code = "NOTIFICATION_FAILED"
    http_status = 502
    title = "Booking notification failed"
