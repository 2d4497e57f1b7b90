"""Pydantic models for booking requests and responses.

Field names are snake_case in Python and camelCase on the wire, matching the
JSON the web frontend sends and expects back.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_serializer, model_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_api(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class GuestDetails(CamelModel):
    """The counterparty of a booking."""

    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    email: str = Field(min_length=3)
    phone: Optional[str] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class StayDetails(CamelModel):
    start_date: date
    end_date: date
    # The frontend sends a single "guests" count; treat it as adults.
    adults: int = Field(
        default=1,
        ge=1,
        validation_alias=AliasChoices("adults", "guests", "numberOfAdults"),
    )
    children: int = Field(default=0, ge=0)
    infants: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def _end_after_start(self) -> "StayDetails":
        if self.end_date <= self.start_date:
            raise ValueError("endDate must be after startDate")
        return self

    @property
    def nights(self) -> int:
        return (self.end_date - self.start_date).days


class UnitSelection(CamelModel):
    """Opaque ids produced by availability search, plus display metadata."""

    rate_id: int | str
    inventory_type_id: int | str
    building_name: Optional[str] = None
    unit_name: Optional[str] = None

    @property
    def description(self) -> str:
        parts = [p for p in (self.building_name, self.unit_name) if p]
        return " - ".join(parts) if parts else f"Unit type {self.inventory_type_id}"


class PaymentInput(CamelModel):
    """Payment details.

    The amount is checked by the saga rather than by the model so that a
    missing or non-positive amount surfaces as a saga validation failure.
    """

    amount: Optional[Decimal] = None
    currency: Optional[str] = None
    card_number: Optional[str] = None
    expiry_month: Optional[int] = None
    expiry_year: Optional[int] = None
    cardholder_name: Optional[str] = None


class BookingRequest(CamelModel):
    """Body of ``POST /booking/create``."""

    guest_details: GuestDetails
    stay_details: StayDetails
    unit_details: UnitSelection


class BookingWithPaymentRequest(BookingRequest):
    """Body of ``POST /booking/create-with-payment``."""

    payment_details: Optional[PaymentInput] = None
    stripe_payment_intent_id: Optional[str] = None


class OrchestrationResult(CamelModel):
    """Result returned after a successful saga run."""

    booking_id: int | str
    booking_reference: Optional[str] = None
    status: str
    guest_name: str
    check_in: date
    check_out: date
    contact_id: int | str
    payment_reference: Optional[str] = None
    payment_amount: Optional[Decimal] = None
    payment_currency: Optional[str] = None
    invoice_posted: Optional[bool] = None
    webhook_sent: Optional[bool] = None

    @field_serializer("payment_amount")
    def _amount_as_number(self, value: Optional[Decimal]) -> Optional[float]:
        return float(value) if value is not None else None

    def to_api(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class SagaDebug(CamelModel):
    contact_created: bool = False
    contact_id: Optional[int | str] = None
    booking_created: bool = False
    booking_id: Optional[int | str] = None
    invoice_posted: bool = False


class SagaFailure(CamelModel):
    """Structured failure carrying enough partial state for manual follow-up."""

    success: bool = False
    error: str
    code: str
    message: str
    warning: Optional[str] = None
    payment_reference: Optional[str] = None
    failed_step: Optional[str] = None
    details: Optional[dict] = None
    http_status: int = Field(default=500, exclude=True)
    debug: SagaDebug = Field(default_factory=SagaDebug)

    def to_api(self) -> dict:
        payload = self.model_dump(mode="json", by_alias=True, exclude_none=True)
        payload["debug"] = self.debug.to_api()
        return payload
