"""Frontend-facing shapes for availability search and buildings."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any, Optional

from pydantic import Field, field_serializer

from .booking import CamelModel


class RateOffer(CamelModel):
    rate_id: int | str
    rate_code: Optional[str] = None
    rate_name: Optional[str] = None
    currency: Optional[str] = None
    currency_symbol: Optional[str] = None
    total_price: Optional[Decimal] = None
    avg_nightly_rate: Optional[Decimal] = None
    nights: Optional[int] = None
    description: Optional[str] = None
    booking_terms: Optional[Any] = None

    @field_serializer("total_price", "avg_nightly_rate")
    def _price_as_number(self, value: Optional[Decimal]) -> Optional[float]:
        return float(value) if value is not None else None


class UnitTypeAvailability(CamelModel):
    building_id: Optional[int | str] = None
    building_name: Optional[str] = None
    inventory_type: str = "UNIT_TYPE"
    inventory_type_id: int | str
    inventory_type_name: Optional[str] = None
    rates: list[RateOffer] = Field(default_factory=list)


class SearchParams(CamelModel):
    start_date: date
    end_date: date
    guests: int = 1


class AvailabilitySearchResult(CamelModel):
    success: bool = True
    data: list[UnitTypeAvailability] = Field(default_factory=list)
    search_params: SearchParams
    failed_rate_codes: list[str] = Field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.data)

    def to_api(self) -> dict:
        payload = super().to_api()
        payload["total"] = self.total
        return payload


class Building(CamelModel):
    id: int | str
    name: Optional[str] = None
    address: str = ""
    city: Optional[str] = None
    post_code: Optional[str] = None
