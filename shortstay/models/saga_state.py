"""Pydantic model tracking one saga run's partial state."""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel

from .booking import SagaDebug


class SagaState(BaseModel):
    """Mutable state for a single orchestration run.

    Fields are populated progressively as steps complete, so that a fatal
    step can report exactly which side effects already happened.
    """

    # Payment
    payment_reference: Optional[str] = None
    payment_amount: Optional[Decimal] = None
    payment_currency: Optional[str] = None
    payment_captured: bool = False  # money has moved

    # Booking provider entities
    contact_id: Optional[int | str] = None
    booking_id: Optional[int | str] = None
    booking_reference: Optional[str] = None
    room_stay_id: Optional[int | str] = None

    # Soft-step flags
    invoice_posted: bool = False
    webhook_sent: bool = False

    def debug(self) -> SagaDebug:
        return SagaDebug(
            contact_created=self.contact_id is not None,
            contact_id=self.contact_id,
            booking_created=self.booking_id is not None,
            booking_id=self.booking_id,
            invoice_posted=self.invoice_posted,
        )
