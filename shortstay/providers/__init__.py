"""Booking and payment provider abstractions and implementations."""

from .base import (
    Booking,
    BookingPayload,
    BookingProvider,
    Contact,
    Invoice,
    PaymentIntentResult,
    PaymentProvider,
    PaymentRecord,
    PaymentVerification,
    RefundResult,
    RoomStay,
    RoomStayStatus,
)

__all__ = [
    "Booking",
    "BookingPayload",
    "BookingProvider",
    "Contact",
    "Invoice",
    "PaymentIntentResult",
    "PaymentProvider",
    "PaymentRecord",
    "PaymentVerification",
    "RefundResult",
    "RoomStay",
    "RoomStayStatus",
]
