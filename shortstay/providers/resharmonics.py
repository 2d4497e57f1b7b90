"""ResHarmonics booking provider implementation.

Authenticates with OAuth2 client credentials (Basic auth carrying the client
id/secret) and talks to the v3 REST API over httpx.  The provider's JSON
shapes are a versioned external contract and stay inside this module; the
rest of the package only sees the dataclasses from :mod:`.base`.

Every call consumes exactly one bearer token from the shared
:class:`~shortstay.providers.token_cache.TokenCache` and carries a bounded
timeout.  Nothing is retried here; retry/abort policy belongs to the saga.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Optional

import httpx

from shortstay.config import settings
from shortstay.errors import (
    BookingCreationError,
    ContactCreationError,
    InvoicePostingError,
    PaymentRecordingError,
    ProviderAuthError,
    ProviderError,
    ProviderRequestError,
    StatusUpdateError,
)
from shortstay.models.booking import GuestDetails
from shortstay.redact import redact_pii

from .base import (
    Booking,
    BookingPayload,
    BookingProvider,
    Contact,
    Invoice,
    PaymentRecord,
    RoomStay,
    RoomStayStatus,
)
from .token_cache import TokenCache

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v3"


class ResHarmonicsClient(BookingProvider):
    """BookingProvider backed by the ResHarmonics v3 API."""

    def __init__(
        self,
        base_url: str | None = None,
        auth_url: str | None = None,
        client_id: str | None = None,
        client_secret: str | None = None,
        scope: str | None = None,
        timeout: float | None = None,
        token_cache: TokenCache | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = (base_url or settings.rh_base_url).rstrip("/")
        self._auth_url = auth_url or settings.rh_auth_url
        self._client_id = client_id if client_id is not None else settings.rh_client_id
        self._client_secret = (
            client_secret if client_secret is not None else settings.rh_client_secret
        )
        self._scope = scope or settings.rh_scope
        self._timeout = timeout or settings.request_timeout
        self._transport = transport
        self._tokens = token_cache or TokenCache(
            self._authenticate, margin=settings.token_refresh_margin
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    async def _authenticate(self) -> tuple[str, float]:
        """Fetch a fresh token with the client-credentials grant."""
        if not self._client_id or not self._client_secret:
            raise ProviderAuthError("ResHarmonics client credentials are not configured")

        try:
            async with self._client() as client:
                resp = await client.post(
                    self._auth_url,
                    data={"grant_type": "client_credentials", "scope": self._scope},
                    auth=(self._client_id, self._client_secret),
                    headers={"Accept": "application/json"},
                )
        except httpx.HTTPError as exc:
            raise ProviderAuthError(f"Token request failed: {exc}") from exc

        if resp.is_error:
            raise ProviderAuthError(
                f"Token request returned {resp.status_code}",
                status_code=resp.status_code,
            )

        try:
            data = resp.json()
        except ValueError as exc:
            raise ProviderAuthError("Token response was not valid JSON") from exc
        token = data.get("access_token") if isinstance(data, dict) else None
        if not token:
            raise ProviderAuthError("Token response did not contain an access_token")
        return token, float(data.get("expires_in", 3600))

    async def _request(
        self,
        method: str,
        path: str,
        *,
        error: type[ProviderError] = ProviderRequestError,
        json: Any = None,
        params: Optional[dict[str, Any]] = None,
    ) -> Any:
        """Send one authenticated request; raise ``error`` on failure."""
        token = await self._tokens.get()
        url = f"{self._base_url}{API_PREFIX}{path}"

        try:
            async with self._client() as client:
                resp = await client.request(
                    method,
                    url,
                    json=json,
                    params=params,
                    headers={
                        "Authorization": f"Bearer {token}",
                        "Accept": "application/json",
                    },
                )
        except httpx.HTTPError as exc:
            raise error(f"{method} {path} failed: {exc}") from exc

        if resp.status_code == 401:
            # Force re-authentication on the next call
            self._tokens.invalidate()

        if resp.is_error:
            raise error(
                f"{method} {path} returned {resp.status_code}: {_error_message(resp)}",
                status_code=resp.status_code,
            )

        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as exc:
            raise error(
                f"{method} {path} returned a non-JSON body: {resp.text[:200]!r}",
                status_code=resp.status_code,
            ) from exc

    # ------------------------------------------------------------------
    # BookingProvider interface
    # ------------------------------------------------------------------

    async def create_contact(self, guest: GuestDetails) -> Contact:
        payload = {
            "firstName": guest.first_name,
            "lastName": guest.last_name,
            "primaryEmailAddress": guest.email,
            "primaryTelephoneNumber": guest.phone,
            "contactEmailAddresses": [
                {"email": guest.email, "primary": True, "type": "PERSONAL"}
            ],
            "contactTelephoneNumbers": (
                [{"number": guest.phone, "primary": True, "type": "MOBILE"}]
                if guest.phone
                else []
            ),
            "contactType": "GUEST",
            "contactAddresses": [],
        }
        logger.info("Creating contact for %s", redact_pii(guest.email))

        data = await self._request("POST", "/contacts", json=payload, error=ContactCreationError)
        if not isinstance(data, dict) or data.get("id") is None:
            raise ContactCreationError("Contact response did not contain an id")

        finance = data.get("financeAccount") or {}
        return Contact(
            id=data["id"],
            finance_account_id=data.get("financeAccountId") or finance.get("id"),
        )

    async def create_booking(self, payload: BookingPayload) -> Booking:
        body = {
            "bookingContactId": payload.contact_id,
            "billingContactId": payload.contact_id,
            "bookingFinanceAccountId": payload.finance_account_id,
            "billingFinanceAccountId": payload.finance_account_id,
            "billingFrequencyId": payload.billing_frequency_id,
            "bookingTypeId": payload.booking_type_id,
            "channelId": payload.channel_id,
            "notes": payload.notes,
            "roomStays": [
                {
                    "startDate": payload.start_date.isoformat(),
                    "endDate": payload.end_date.isoformat(),
                    "numberOfAdults": payload.adults,
                    "numberOfChildren": payload.children,
                    "numberOfInfants": payload.infants,
                    "rateId": payload.rate_id,
                    "inventoryType": payload.inventory_type,
                    "inventoryTypeId": payload.inventory_type_id,
                }
            ],
        }

        data = await self._request("POST", "/bookings", json=body, error=BookingCreationError)
        if not isinstance(data, dict) or data.get("id") is None:
            raise BookingCreationError("Booking response did not contain an id")

        booking = _parse_booking(data)
        logger.info("Created booking %s (%s)", booking.id, booking.booking_reference)
        return booking

    async def get_booking(self, booking_id: int | str) -> Booking:
        data = await self._request("GET", f"/bookings/{booking_id}")
        booking = _parse_booking(data if isinstance(data, dict) else {"id": booking_id})

        if not booking.room_stays:
            # The provider does not always embed room stays
            try:
                booking.room_stays = await self.get_room_stays(booking_id)
            except ProviderRequestError:
                logger.warning("Room stay lookup failed for booking %s", booking_id)
            else:
                booking.raw["roomStays"] = [
                    {"id": s.id, "status": s.status, "startDate": s.start_date, "endDate": s.end_date}
                    for s in booking.room_stays
                ]
        return booking

    async def get_room_stays(self, booking_id: int | str) -> list[RoomStay]:
        data = await self._request("GET", "/roomStays", params={"bookingId": booking_id})
        return [_parse_room_stay(item) for item in _content(data)]

    async def update_room_stay_status(
        self, booking_id: int | str, room_stay_id: int | str, status: RoomStayStatus
    ) -> None:
        status = RoomStayStatus(status)
        body = {"statusUpdates": [{"roomStayId": room_stay_id, "status": status.value}]}
        await self._request(
            "PUT", f"/bookings/{booking_id}/status", json=body, error=StatusUpdateError
        )
        logger.info("Room stay %s of booking %s -> %s", room_stay_id, booking_id, status.value)

    async def get_booking_invoices(self, booking_id: int | str) -> list[Invoice]:
        data = await self._request(
            "GET", f"/bookings/{booking_id}/invoices", error=InvoicePostingError
        )
        return [
            Invoice(id=item["id"], status=str(item.get("status") or ""))
            for item in _content(data)
            if item.get("id") is not None
        ]

    async def post_invoice(self, invoice_id: int | str) -> None:
        await self._request("POST", f"/invoices/{invoice_id}/post", error=InvoicePostingError)

    async def create_payment(self, booking_id: int | str, record: PaymentRecord) -> None:
        body = {
            "paymentReference": record.reference,
            "paymentType": record.payment_type,
            "amount": float(record.amount),
            "currency": record.currency,
            "lastFour": record.last_four,
            "cardType": record.card_type,
        }
        await self._request(
            "POST", f"/bookings/{booking_id}/payments", json=body, error=PaymentRecordingError
        )

    async def get_booking_payments(self, booking_id: int | str) -> list[dict[str, Any]]:
        data = await self._request("GET", f"/bookings/{booking_id}/payments")
        return _content(data)

    async def search_availability(
        self, start_date: date, end_date: date, guests: int, rate_code: str
    ) -> list[dict[str, Any]]:
        params = {
            "dateFrom": start_date.isoformat(),
            "dateTo": end_date.isoformat(),
            "guests": guests,
            "inventoryType": "UNIT_TYPE",
            "rateCode": rate_code,
        }
        data = await self._request("GET", "/availability", params=params)
        return _content(data)

    async def get_buildings(self) -> list[dict[str, Any]]:
        data = await self._request("GET", "/buildings")
        return _content(data)


# ── Response parsing ─────────────────────────────────────────────────


def _content(data: Any) -> list[dict[str, Any]]:
    """Unwrap a paged ``{"content": [...]}`` response or a bare list."""
    if data is None:
        return []
    if isinstance(data, list):
        return data
    if not isinstance(data, dict):
        return []
    return list(data.get("content") or [])


def _parse_room_stay(item: dict[str, Any]) -> RoomStay:
    return RoomStay(
        id=item["id"],
        status=str(item.get("status") or item.get("roomStayStatus") or RoomStayStatus.ENQUIRY.value),
        start_date=item.get("startDate"),
        end_date=item.get("endDate"),
    )


def _parse_booking(data: dict[str, Any]) -> Booking:
    stays = [_parse_room_stay(s) for s in data.get("roomStays") or [] if s.get("id") is not None]
    return Booking(
        id=data["id"],
        booking_reference=data.get("bookingReference"),
        room_stays=stays,
        raw=dict(data),
    )


def _error_message(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:200]
    if isinstance(body, dict):
        return str(body.get("message") or body.get("error") or body)[:200]
    return str(body)[:200]
