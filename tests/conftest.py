"""Shared fakes for booking saga, availability and API tests."""

from __future__ import annotations

import os
import sys
from decimal import Decimal
from typing import Any

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from shortstay.providers.base import (  # noqa: E402
    Booking,
    BookingProvider,
    Contact,
    Invoice,
    PaymentIntentResult,
    PaymentProvider,
    PaymentVerification,
    RefundResult,
    RoomStay,
)
from shortstay.services.notifier import NotificationResult  # noqa: E402


class FakeBookingProvider(BookingProvider):
    """In-memory booking provider that records every call.

    Set ``fail[method_name] = SomeError(...)`` to make a method raise.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, tuple]] = []
        self.fail: dict[str, Exception] = {}
        self.contact = Contact(id=501)
        self.booking = Booking(
            id=9001,
            booking_reference="BK-9001",
            room_stays=[RoomStay(id=77)],
            raw={"id": 9001, "bookingReference": "BK-9001", "roomStays": [{"id": 77}]},
        )
        self.room_stays = [RoomStay(id=77)]
        self.invoices = [Invoice(id=1, status="DRAFT"), Invoice(id=2, status="POSTED")]
        self.payments: list[dict[str, Any]] = []
        self.availability: dict[str, Any] = {}
        self.buildings: list[dict[str, Any]] = []

    def _record(self, name: str, *args: Any) -> None:
        self.calls.append((name, args))
        exc = self.fail.get(name)
        if exc is not None:
            raise exc

    @property
    def call_names(self) -> list[str]:
        return [name for name, _ in self.calls]

    def args_of(self, name: str) -> list[tuple]:
        return [args for n, args in self.calls if n == name]

    async def create_contact(self, guest):
        self._record("create_contact", guest)
        return self.contact

    async def create_booking(self, payload):
        self._record("create_booking", payload)
        return self.booking

    async def get_booking(self, booking_id):
        self._record("get_booking", booking_id)
        return self.booking

    async def get_room_stays(self, booking_id):
        self._record("get_room_stays", booking_id)
        return list(self.room_stays)

    async def update_room_stay_status(self, booking_id, room_stay_id, status):
        self._record("update_room_stay_status", booking_id, room_stay_id, status)

    async def get_booking_invoices(self, booking_id):
        self._record("get_booking_invoices", booking_id)
        return list(self.invoices)

    async def post_invoice(self, invoice_id):
        self._record("post_invoice", invoice_id)

    async def create_payment(self, booking_id, record):
        self._record("create_payment", booking_id, record)

    async def get_booking_payments(self, booking_id):
        self._record("get_booking_payments", booking_id)
        return list(self.payments)

    async def search_availability(self, start_date, end_date, guests, rate_code):
        self._record("search_availability", start_date, end_date, guests, rate_code)
        result = self.availability.get(rate_code, [])
        if isinstance(result, Exception):
            raise result
        return result

    async def get_buildings(self):
        self._record("get_buildings")
        return list(self.buildings)


class FakePaymentProvider(PaymentProvider):
    def __init__(self) -> None:
        self.calls: list[tuple[str, tuple]] = []
        self.verification = PaymentVerification(
            success=True, status="succeeded", amount=Decimal("500.00"), currency="SEK"
        )
        self.intent = PaymentIntentResult(
            success=True, client_secret="pi_123_secret_abc", payment_intent_id="pi_123"
        )

    async def create_payment_intent(self, amount, currency="SEK", metadata=None):
        self.calls.append(("create_payment_intent", (amount, currency, metadata)))
        return self.intent

    async def verify_payment(self, payment_intent_id):
        self.calls.append(("verify_payment", (payment_intent_id,)))
        return self.verification

    async def refund_payment(self, payment_intent_id, amount=None):
        self.calls.append(("refund_payment", (payment_intent_id, amount)))
        return RefundResult(success=True, refund_id="re_1", amount=amount or Decimal("0"))


class FakeNotifier:
    def __init__(self, result: NotificationResult | None = None) -> None:
        self.result = result or NotificationResult(success=True, status_code=200)
        self.sent: list[Any] = []

    async def send(self, summary):
        self.sent.append(summary)
        return self.result


def booking_body(**overrides: Any) -> dict[str, Any]:
    body: dict[str, Any] = {
        "guestDetails": {
            "firstName": "Astrid",
            "lastName": "Lindqvist",
            "email": "astrid@example.com",
            "phone": "+46701234567",
        },
        "stayDetails": {"startDate": "2026-07-01", "endDate": "2026-07-05", "guests": 2},
        "unitDetails": {
            "rateId": 12,
            "inventoryTypeId": 34,
            "buildingName": "Harbour House",
            "unitName": "Studio",
        },
    }
    body.update(overrides)
    return body


def card_body(amount: Any = "500.00", card_number: str | None = "4111111111111111") -> dict[str, Any]:
    payment: dict[str, Any] = {"amount": amount, "currency": "SEK"}
    if card_number is not None:
        payment["cardNumber"] = card_number
    return booking_body(paymentDetails=payment)


def rail_body(amount: Any = "500.00", intent_id: str | None = "pi_123", currency: str = "SEK") -> dict[str, Any]:
    body = booking_body(paymentDetails={"amount": amount, "currency": currency})
    if intent_id is not None:
        body["stripePaymentIntentId"] = intent_id
    return body


@pytest.fixture
def bookings() -> FakeBookingProvider:
    return FakeBookingProvider()


@pytest.fixture
def payments() -> FakePaymentProvider:
    return FakePaymentProvider()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()
