"""Webhook notification sink for completed bookings.

Posts a fixed-shape JSON summary to the configured webhook URL.  Delivery is
best effort: ``send`` never raises, it returns a result whose ``success``
flag the saga turns into ``webhookSent``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional

import httpx
from pydantic import field_serializer

from shortstay.config import settings
from shortstay.models.booking import CamelModel

log = logging.getLogger("shortstay.services.notifier")


class BookingSummary(CamelModel):
    """Payload delivered to the booking webhook."""

    guest_name: str
    email: str
    phone: Optional[str] = None
    check_in: date
    check_out: date
    nights: int
    guests: int
    property_name: str
    total_fee: Decimal
    currency: str
    booking_id: int | str
    booking_reference: Optional[str] = None
    payment_reference: Optional[str] = None

    @field_serializer("total_fee")
    def _fee_as_number(self, value: Decimal) -> float:
        return float(value)


@dataclass
class NotificationResult:
    success: bool
    status_code: Optional[int] = None
    error: str = ""


class WebhookNotifier:
    """POSTs booking summaries to a webhook with a bounded timeout."""

    def __init__(
        self,
        url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._url = url if url is not None else settings.webhook_url
        self._timeout = timeout or settings.webhook_timeout
        self._transport = transport

    async def send(self, summary: BookingSummary) -> NotificationResult:
        if not self._url:
            return NotificationResult(success=False, error="Webhook URL not configured")

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                resp = await client.post(self._url, json=summary.to_api())
                resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            log.warning(
                "Webhook for booking %s returned %s",
                summary.booking_id,
                exc.response.status_code,
            )
            return NotificationResult(
                success=False,
                status_code=exc.response.status_code,
                error=f"Webhook returned status {exc.response.status_code}",
            )
        except httpx.HTTPError as exc:
            log.warning("Webhook for booking %s failed: %s", summary.booking_id, exc)
            return NotificationResult(success=False, error=str(exc) or exc.__class__.__name__)

        log.info("Webhook sent for booking %s", summary.booking_id)
        return NotificationResult(success=True, status_code=resp.status_code)
