"""Data models for the booking API."""

from .availability import AvailabilitySearchResult, Building, RateOffer, UnitTypeAvailability
from .booking import (
    BookingRequest,
    BookingWithPaymentRequest,
    GuestDetails,
    OrchestrationResult,
    PaymentInput,
    SagaDebug,
    SagaFailure,
    StayDetails,
    UnitSelection,
)
from .saga_state import SagaState

__all__ = [
    "AvailabilitySearchResult",
    "BookingRequest",
    "BookingWithPaymentRequest",
    "Building",
    "GuestDetails",
    "OrchestrationResult",
    "PaymentInput",
    "RateOffer",
    "SagaDebug",
    "SagaFailure",
    "SagaState",
    "StayDetails",
    "UnitSelection",
    "UnitTypeAvailability",
]
