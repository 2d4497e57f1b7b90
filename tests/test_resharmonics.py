"""Tests for the ResHarmonics client over httpx.MockTransport."""

import base64
import json
from datetime import date
from decimal import Decimal
from urllib.parse import parse_qs

import httpx
import pytest

from shortstay.errors import (
    BookingCreationError,
    ContactCreationError,
    InvoicePostingError,
    PaymentRecordingError,
    ProviderAuthError,
    ProviderRequestError,
    StatusUpdateError,
)
from shortstay.models.booking import GuestDetails
from shortstay.providers.base import BookingPayload, PaymentRecord, RoomStayStatus
from shortstay.providers.resharmonics import ResHarmonicsClient

AUTH_URL = "https://auth.example.com/oauth2/token"
BASE_URL = "https://api.example.com"


class FakeResHarmonics:
    """Routes requests by (method, path); records everything it receives."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.token_calls = 0
        self.routes: dict[tuple[str, str], httpx.Response] = {}
        self.token_response = httpx.Response(200, json={"access_token": "tok-1", "expires_in": 3600})

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if str(request.url) == AUTH_URL:
            self.token_calls += 1
            return self.token_response
        key = (request.method, request.url.path)
        if key in self.routes:
            return self.routes[key]
        return httpx.Response(404, json={"message": "not found"})

    def api(self, method: str, path: str, response: httpx.Response) -> None:
        self.routes[(method, f"/api/v3{path}")] = response

    def last(self, method: str, path: str) -> httpx.Request:
        for request in reversed(self.requests):
            if request.method == method and request.url.path == f"/api/v3{path}":
                return request
        raise AssertionError(f"no {method} {path} request")


@pytest.fixture
def server():
    return FakeResHarmonics()


@pytest.fixture
def client(server):
    return ResHarmonicsClient(
        base_url=BASE_URL,
        auth_url=AUTH_URL,
        client_id="client-id",
        client_secret="client-secret",
        scope="api/read api/write",
        timeout=5,
        transport=httpx.MockTransport(server),
    )


def _guest():
    return GuestDetails(first_name="Astrid", last_name="Lindqvist", email="astrid@example.com", phone="+46701234567")


def _payload():
    return BookingPayload(
        contact_id=501,
        finance_account_id=880,
        start_date=date(2026, 7, 1),
        end_date=date(2026, 7, 5),
        adults=2,
        rate_id=12,
        inventory_type_id=34,
        notes="Web booking",
    )


# ── Authentication ─────────────────────────────────────────────────


class TestAuthentication:
    @pytest.mark.asyncio
    async def test_client_credentials_grant(self, client, server):
        server.api("GET", "/buildings", httpx.Response(200, json=[]))
        await client.get_buildings()

        token_request = server.requests[0]
        expected = base64.b64encode(b"client-id:client-secret").decode()
        assert token_request.headers["Authorization"] == f"Basic {expected}"
        form = parse_qs(token_request.content.decode())
        assert form == {"grant_type": ["client_credentials"], "scope": ["api/read api/write"]}

        api_request = server.last("GET", "/buildings")
        assert api_request.headers["Authorization"] == "Bearer tok-1"

    @pytest.mark.asyncio
    async def test_token_reused_across_calls(self, client, server):
        server.api("GET", "/buildings", httpx.Response(200, json=[]))
        await client.get_buildings()
        await client.get_buildings()
        await client.get_buildings()

        assert server.token_calls == 1

    @pytest.mark.asyncio
    async def test_auth_failure(self, client, server):
        server.token_response = httpx.Response(401, json={"error": "invalid_client"})

        with pytest.raises(ProviderAuthError) as exc_info:
            await client.get_buildings()
        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_non_json_token_response(self, client, server):
        server.token_response = httpx.Response(200, text="<html>maintenance</html>")

        with pytest.raises(ProviderAuthError):
            await client.get_buildings()

    @pytest.mark.asyncio
    async def test_missing_credentials(self, server):
        client = ResHarmonicsClient(
            base_url=BASE_URL,
            auth_url=AUTH_URL,
            client_id="",
            client_secret="",
            transport=httpx.MockTransport(server),
        )
        with pytest.raises(ProviderAuthError):
            await client.get_buildings()
        assert server.requests == []

    @pytest.mark.asyncio
    async def test_401_invalidates_token(self, client, server):
        server.api("GET", "/buildings", httpx.Response(401, json={"message": "expired"}))

        with pytest.raises(ProviderRequestError):
            await client.get_buildings()

        server.api("GET", "/buildings", httpx.Response(200, json=[]))
        await client.get_buildings()
        assert server.token_calls == 2


# ── Contacts and bookings ──────────────────────────────────────────


class TestContactsAndBookings:
    @pytest.mark.asyncio
    async def test_create_contact(self, client, server):
        server.api("POST", "/contacts", httpx.Response(201, json={"id": 501, "financeAccount": {"id": 880}}))
        contact = await client.create_contact(_guest())

        assert contact.id == 501
        assert contact.finance_account_id == 880

        body = json.loads(server.last("POST", "/contacts").content)
        assert body["firstName"] == "Astrid"
        assert body["primaryEmailAddress"] == "astrid@example.com"
        assert body["contactTelephoneNumbers"][0]["number"] == "+46701234567"

    @pytest.mark.asyncio
    async def test_create_contact_without_finance_account(self, client, server):
        server.api("POST", "/contacts", httpx.Response(201, json={"id": 501}))
        contact = await client.create_contact(_guest())

        assert contact.finance_account_id is None

    @pytest.mark.asyncio
    async def test_create_contact_error(self, client, server):
        server.api("POST", "/contacts", httpx.Response(400, json={"message": "email invalid"}))

        with pytest.raises(ContactCreationError) as exc_info:
            await client.create_contact(_guest())
        assert exc_info.value.status_code == 400
        assert "email invalid" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_transport_error_maps_to_step_error(self, server):
        def broken(request):
            if str(request.url) == AUTH_URL:
                return server(request)
            raise httpx.ConnectError("connection refused", request=request)

        client = ResHarmonicsClient(
            base_url=BASE_URL,
            auth_url=AUTH_URL,
            client_id="client-id",
            client_secret="client-secret",
            transport=httpx.MockTransport(broken),
        )
        with pytest.raises(BookingCreationError):
            await client.create_booking(_payload())

    @pytest.mark.asyncio
    async def test_create_booking(self, client, server):
        server.api(
            "POST",
            "/bookings",
            httpx.Response(201, json={"id": 9001, "bookingReference": "BK-9001", "roomStays": [{"id": 77, "status": "ENQUIRY"}]}),
        )
        booking = await client.create_booking(_payload())

        assert booking.id == 9001
        assert booking.booking_reference == "BK-9001"
        assert [s.id for s in booking.room_stays] == [77]

        body = json.loads(server.last("POST", "/bookings").content)
        assert body["bookingContactId"] == 501
        assert body["bookingFinanceAccountId"] == 880
        stay = body["roomStays"][0]
        assert stay["startDate"] == "2026-07-01"
        assert stay["numberOfAdults"] == 2
        assert stay["rateId"] == 12
        assert stay["inventoryTypeId"] == 34
        assert stay["inventoryType"] == "UNIT_TYPE"

    @pytest.mark.asyncio
    async def test_create_booking_missing_id(self, client, server):
        server.api("POST", "/bookings", httpx.Response(200, json={}))

        with pytest.raises(BookingCreationError):
            await client.create_booking(_payload())

    @pytest.mark.asyncio
    async def test_get_booking_falls_back_to_room_stays(self, client, server):
        server.api("GET", "/bookings/9001", httpx.Response(200, json={"id": 9001, "bookingReference": "BK-9001"}))
        server.api("GET", "/roomStays", httpx.Response(200, json={"content": [{"id": 77, "status": "PENDING"}]}))

        booking = await client.get_booking(9001)

        assert [s.id for s in booking.room_stays] == [77]
        assert booking.room_stays[0].status == "PENDING"
        assert booking.raw["roomStays"][0]["id"] == 77
        assert server.last("GET", "/roomStays").url.params["bookingId"] == "9001"

    @pytest.mark.asyncio
    async def test_get_booking_tolerates_room_stay_lookup_failure(self, client, server):
        server.api("GET", "/bookings/9001", httpx.Response(200, json={"id": 9001}))
        server.api("GET", "/roomStays", httpx.Response(500))

        booking = await client.get_booking(9001)
        assert booking.room_stays == []


# ── Status, invoices, payments ─────────────────────────────────────


class TestStatusInvoicesPayments:
    @pytest.mark.asyncio
    async def test_update_room_stay_status(self, client, server):
        server.api("PUT", "/bookings/9001/status", httpx.Response(204))
        await client.update_room_stay_status(9001, 77, RoomStayStatus.PENDING)

        body = json.loads(server.last("PUT", "/bookings/9001/status").content)
        assert body == {"statusUpdates": [{"roomStayId": 77, "status": "PENDING"}]}

    @pytest.mark.asyncio
    async def test_update_room_stay_status_error(self, client, server):
        server.api("PUT", "/bookings/9001/status", httpx.Response(409, json={"message": "invalid transition"}))

        with pytest.raises(StatusUpdateError):
            await client.update_room_stay_status(9001, 77, RoomStayStatus.CONFIRMED)

    @pytest.mark.asyncio
    async def test_invoices(self, client, server):
        server.api(
            "GET",
            "/bookings/9001/invoices",
            httpx.Response(200, json={"content": [{"id": 1, "status": "DRAFT"}, {"id": 2, "status": "POSTED"}]}),
        )
        invoices = await client.get_booking_invoices(9001)

        assert [(i.id, i.is_posted) for i in invoices] == [(1, False), (2, True)]

    @pytest.mark.asyncio
    async def test_post_invoice_error(self, client, server):
        server.api("POST", "/invoices/1/post", httpx.Response(500))

        with pytest.raises(InvoicePostingError):
            await client.post_invoice(1)

    @pytest.mark.asyncio
    async def test_plain_text_reply_maps_to_step_error(self, client, server):
        server.api("POST", "/invoices/1/post", httpx.Response(200, text="OK"))

        with pytest.raises(InvoicePostingError) as exc_info:
            await client.post_invoice(1)
        assert "non-JSON" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_non_object_json_reply(self, client, server):
        server.api("GET", "/buildings", httpx.Response(200, json="OK"))
        server.api("POST", "/contacts", httpx.Response(201, json=[{"id": 501}]))

        assert await client.get_buildings() == []
        with pytest.raises(ContactCreationError):
            await client.create_contact(_guest())

    @pytest.mark.asyncio
    async def test_create_payment(self, client, server):
        server.api("POST", "/bookings/9001/payments", httpx.Response(201, json={"id": 3}))
        record = PaymentRecord(amount=Decimal("500.00"), reference="pi_123", currency="SEK")
        await client.create_payment(9001, record)

        body = json.loads(server.last("POST", "/bookings/9001/payments").content)
        assert body["paymentReference"] == "pi_123"
        assert body["amount"] == 500.0
        assert body["paymentType"] == "CARD_PAYMENT"
        assert body["cardType"] == "VISA_CREDIT"

    @pytest.mark.asyncio
    async def test_create_payment_error(self, client, server):
        server.api("POST", "/bookings/9001/payments", httpx.Response(422))

        with pytest.raises(PaymentRecordingError):
            await client.create_payment(9001, PaymentRecord(amount=Decimal("1"), reference="x"))


# ── Availability ───────────────────────────────────────────────────


class TestAvailability:
    @pytest.mark.asyncio
    async def test_search_params(self, client, server):
        server.api("GET", "/availability", httpx.Response(200, json={"content": [{"buildingId": 1}]}))
        content = await client.search_availability(date(2026, 7, 1), date(2026, 7, 5), 2, "FLEX")

        assert content == [{"buildingId": 1}]
        params = server.last("GET", "/availability").url.params
        assert params["dateFrom"] == "2026-07-01"
        assert params["dateTo"] == "2026-07-05"
        assert params["guests"] == "2"
        assert params["rateCode"] == "FLEX"
        assert params["inventoryType"] == "UNIT_TYPE"
