"""Availability search across the published rate codes.

The booking provider only returns offers for one rate code per query, so a
search fans out one query per configured code and merges the results into a
per-building, per-unit-type list.  A failing rate code never aborts the
others; it is reported in ``failedRateCodes``.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from shortstay.config import settings
from shortstay.errors import ProviderRequestError, ShortStayError, ValidationError
from shortstay.models.availability import (
    AvailabilitySearchResult,
    Building,
    RateOffer,
    SearchParams,
    UnitTypeAvailability,
)
from shortstay.providers.base import BookingProvider

log = logging.getLogger("shortstay.services.availability")

MAX_GUESTS = 10


class AvailabilitySearch:
    """Fan-out availability query with merge and de-duplication."""

    def __init__(self, provider: BookingProvider, rate_codes: Optional[list[str]] = None) -> None:
        self._provider = provider
        self._rate_codes = list(rate_codes if rate_codes is not None else settings.rate_codes)

    async def search(self, start_date: date, end_date: date, guests: int = 1) -> AvailabilitySearchResult:
        if end_date <= start_date:
            raise ValidationError("endDate must be after startDate")
        if not 1 <= guests <= MAX_GUESTS:
            raise ValidationError(f"Guests must be between 1 and {MAX_GUESTS}")

        log.info(
            "Searching availability %s..%s for %d guest(s) across %s",
            start_date, end_date, guests, ", ".join(self._rate_codes),
        )

        results = await asyncio.gather(
            *(
                self._provider.search_availability(start_date, end_date, guests, code)
                for code in self._rate_codes
            ),
            return_exceptions=True,
        )

        merged: dict[tuple[Any, Any], UnitTypeAvailability] = {}
        failed: list[str] = []
        errors: list[BaseException] = []

        for code, result in zip(self._rate_codes, results):
            if isinstance(result, BaseException):
                log.warning("Availability query for rate code %s failed: %s", code, result)
                failed.append(code)
                errors.append(result)
                continue
            for item in result:
                _merge_property(merged, item, code)

        if self._rate_codes and len(failed) == len(self._rate_codes):
            first = errors[0]
            if isinstance(first, ShortStayError):
                raise first
            raise ProviderRequestError(f"Availability search failed: {first}")

        return AvailabilitySearchResult(
            data=list(merged.values()),
            search_params=SearchParams(start_date=start_date, end_date=end_date, guests=guests),
            failed_rate_codes=failed,
        )

    async def buildings(self) -> list[Building]:
        raw = await self._provider.get_buildings()
        return [_to_building(b) for b in raw if b.get("id") is not None]


def _merge_property(
    merged: dict[tuple[Any, Any], UnitTypeAvailability], item: dict[str, Any], rate_code: str
) -> None:
    inventory_type_id = item.get("inventoryTypeId")
    if inventory_type_id is None:
        return

    key = (item.get("buildingId"), inventory_type_id)
    unit = merged.get(key)
    if unit is None:
        unit = UnitTypeAvailability(
            building_id=item.get("buildingId"),
            building_name=item.get("buildingName"),
            inventory_type=item.get("inventoryType") or "UNIT_TYPE",
            inventory_type_id=inventory_type_id,
            inventory_type_name=item.get("inventoryTypeName"),
        )
        merged[key] = unit

    seen = {r.rate_id for r in unit.rates}
    for rate in item.get("rateAvailabilities") or []:
        rate_id = rate.get("rateId")
        if rate_id is None or rate_id in seen:
            continue
        seen.add(rate_id)
        unit.rates.append(_to_offer(rate, rate_code))


def _to_offer(rate: dict[str, Any], rate_code: str) -> RateOffer:
    return RateOffer(
        rate_id=rate["rateId"],
        rate_code=rate.get("rateCode") or rate_code,
        rate_name=rate.get("shortName") or rate.get("description"),
        currency=rate.get("currencyCode"),
        currency_symbol=rate.get("currencySymbol"),
        total_price=_decimal(rate.get("totals")),
        avg_nightly_rate=_decimal(rate.get("avgRate")),
        nights=rate.get("nights"),
        description=rate.get("webDescription") or rate.get("description"),
        booking_terms=rate.get("bookingTerms"),
    )


def _to_building(raw: dict[str, Any]) -> Building:
    address = raw.get("addressLine1") or ""
    if raw.get("addressLine2"):
        address = f"{address}, {raw['addressLine2']}"
    return Building(
        id=raw["id"],
        name=raw.get("buildingName"),
        address=address,
        city=raw.get("city"),
        post_code=raw.get("postCode"),
    )


def _decimal(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    # "totals" is sometimes an object with a gross figure
    if isinstance(value, dict):
        value = value.get("gross", value.get("total"))
        if value is None:
            return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
