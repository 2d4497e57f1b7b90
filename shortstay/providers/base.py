"""Abstract base classes for the booking and payment providers.

Defines the narrow interface the saga depends on.  Provider-owned JSON
shapes stay inside the concrete clients; only the dataclasses below cross
the boundary.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from shortstay.models.booking import GuestDetails


class RoomStayStatus(str, Enum):
    """Room stay progression.  Creation always yields ``ENQUIRY``."""

    ENQUIRY = "ENQUIRY"
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"


@dataclass
class Contact:
    id: int | str
    finance_account_id: Optional[int | str] = None


@dataclass
class RoomStay:
    id: int | str
    status: str = RoomStayStatus.ENQUIRY.value
    start_date: Optional[str] = None
    end_date: Optional[str] = None


@dataclass
class Booking:
    id: int | str
    booking_reference: Optional[str] = None
    room_stays: list[RoomStay] = field(default_factory=list)
    raw: dict[str, Any] = field(default_factory=dict, repr=False)


@dataclass
class Invoice:
    id: int | str
    status: str = ""

    @property
    def is_posted(self) -> bool:
        return self.status.upper() == "POSTED"


@dataclass
class PaymentRecord:
    """A payment recorded against a booking.

    ``reference`` is unique per attempt: the Stripe payment-intent id on the
    payment-rail path, a locally generated reference on the card path.
    """

    amount: Decimal
    reference: str
    currency: str = "SEK"
    card_type: str = "VISA_CREDIT"
    last_four: str = ""
    payment_type: str = "CARD_PAYMENT"


@dataclass
class BookingPayload:
    """Everything the provider needs to create a booking with one room stay."""

    contact_id: int | str
    finance_account_id: int | str
    start_date: date
    end_date: date
    adults: int
    rate_id: int | str
    inventory_type_id: int | str
    children: int = 0
    infants: int = 0
    billing_frequency_id: int = 1
    booking_type_id: int = 1
    channel_id: int = 1
    inventory_type: str = "UNIT_TYPE"
    notes: str = ""


# ── Payment provider results ────────────────────────────────────────


@dataclass
class PaymentIntentResult:
    success: bool
    client_secret: str = ""
    payment_intent_id: str = ""
    error: str = ""


@dataclass
class PaymentVerification:
    success: bool
    status: str = ""
    amount: Decimal = Decimal("0")
    currency: str = ""
    payment_method: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)
    error: str = ""


@dataclass
class RefundResult:
    success: bool
    refund_id: str = ""
    amount: Decimal = Decimal("0")
    status: str = ""
    error: str = ""


class BookingProvider(ABC):
    """Abstract booking backend (system of record for bookings)."""

    @abstractmethod
    async def create_contact(self, guest: GuestDetails) -> Contact:
        """Create (or let the provider reuse) a contact for the guest."""

    @abstractmethod
    async def create_booking(self, payload: BookingPayload) -> Booking:
        """Create a booking whose single room stay starts in ``ENQUIRY``."""

    @abstractmethod
    async def get_booking(self, booking_id: int | str) -> Booking:
        """Fetch a booking, including its room stays."""

    @abstractmethod
    async def get_room_stays(self, booking_id: int | str) -> list[RoomStay]:
        """Look up the room stays of a booking directly."""

    @abstractmethod
    async def update_room_stay_status(
        self, booking_id: int | str, room_stay_id: int | str, status: RoomStayStatus
    ) -> None:
        """Transition one room stay to ``status``."""

    @abstractmethod
    async def get_booking_invoices(self, booking_id: int | str) -> list[Invoice]:
        """Return the invoices attached to a booking (possibly none)."""

    @abstractmethod
    async def post_invoice(self, invoice_id: int | str) -> None:
        """Post a single invoice."""

    @abstractmethod
    async def create_payment(self, booking_id: int | str, record: PaymentRecord) -> None:
        """Record a payment against a booking."""

    @abstractmethod
    async def get_booking_payments(self, booking_id: int | str) -> list[dict[str, Any]]:
        """Return the payments recorded against a booking."""

    @abstractmethod
    async def search_availability(
        self, start_date: date, end_date: date, guests: int, rate_code: str
    ) -> list[dict[str, Any]]:
        """Return the provider's availability content for one rate code."""

    @abstractmethod
    async def get_buildings(self) -> list[dict[str, Any]]:
        """Return the provider's building list."""


class PaymentProvider(ABC):
    """Abstract payment rail.

    Implementations never raise for provider failures; every method returns
    a result whose ``success`` flag the caller branches on.
    """

    @abstractmethod
    async def create_payment_intent(
        self, amount: Decimal, currency: str, metadata: Optional[dict[str, Any]] = None
    ) -> PaymentIntentResult:
        """Create a payment intent for ``amount`` in major units."""

    @abstractmethod
    async def verify_payment(self, payment_intent_id: str) -> PaymentVerification:
        """Retrieve a payment intent and report its status and amount."""

    @abstractmethod
    async def refund_payment(
        self, payment_intent_id: str, amount: Optional[Decimal] = None
    ) -> RefundResult:
        """Refund all of a payment intent, or ``amount`` of it."""
