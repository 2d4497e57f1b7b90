"""FastAPI application — REST endpoints for the short-stay booking flow.

Endpoints:

  GET  /api/health                        Health check
  GET  /api/availability/search           Rate offers across published rate codes
  GET  /api/availability/buildings        Building list
  GET  /api/booking/health                Booking route listing
  POST /api/booking/create                Booking left as an enquiry (no payment)
  POST /api/booking/create-with-payment   Booking with a Stripe or card payment
  GET  /api/booking/{id}                  Booking details
  GET  /api/booking/{id}/payments         Payments recorded on a booking
  POST /api/payment/create-intent         Create a Stripe payment intent
  POST /api/payment/verify                Verify a Stripe payment intent

The booking-with-payment flow:
  1. Frontend calls POST /api/payment/create-intent and confirms the card with Stripe
  2. Frontend posts the booking with the resulting stripePaymentIntentId
  3. BookingSaga verifies the payment, then books, invoices and confirms
"""

from __future__ import annotations

# Load .env into os.environ early so every settings consumer sees it
from dotenv import load_dotenv
load_dotenv()

import dataclasses
import json
import logging
import re
import time
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

# Configure root logger early so all app loggers have a handler and are
# visible when run via `uvicorn shortstay.app:app`.
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(name)-20s %(levelname)-7s %(message)s",
)

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from shortstay import __version__
from shortstay.config import settings
from shortstay.errors import ShortStayError, ValidationError
from shortstay.models.booking import SagaFailure
from shortstay.providers.base import BookingProvider, PaymentProvider
from shortstay.providers.resharmonics import ResHarmonicsClient
from shortstay.providers.stripe_payments import StripePaymentProvider
from shortstay.saga.booking import BookingSaga
from shortstay.services.availability import AvailabilitySearch
from shortstay.services.notifier import WebhookNotifier

log = logging.getLogger("shortstay.app")

_START_TIME = time.time()
_BOOKING_ID = re.compile(r"^\d+$")


def create_app(
    booking_provider: Optional[BookingProvider] = None,
    payment_provider: Optional[PaymentProvider] = None,
    notifier: Optional[WebhookNotifier] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Providers default to the live ResHarmonics/Stripe clients; tests pass
    fakes in their place.
    """
    app = FastAPI(
        title="Short Stay Booking API",
        description="Availability search and booking with payment for short-stay properties",
        version=__version__,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_origin_regex=settings.cors_origin_regex or None,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    bookings = booking_provider or ResHarmonicsClient()
    payments = payment_provider or StripePaymentProvider()
    saga = BookingSaga(bookings, payments, notifier or WebhookNotifier())
    availability = AvailabilitySearch(bookings)

    app.state.booking_provider = bookings
    app.state.payment_provider = payments
    app.state.saga = saga

    # ── Error handling ─────────────────────────────────────────

    @app.exception_handler(ShortStayError)
    async def shortstay_error_handler(request: Request, exc: ShortStayError) -> JSONResponse:
        log.warning("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(exc.to_dict(), status_code=exc.http_status)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        log.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
        message = str(exc) if settings.debug else "Internal server error"
        return JSONResponse(
            {"success": False, "error": "Something went wrong!", "message": message},
            status_code=500,
        )

    # ── Health check ───────────────────────────────────────────

    @app.get("/")
    async def root() -> JSONResponse:
        return JSONResponse({
            "message": "Short Stay Booking API",
            "version": __version__,
            "endpoints": [
                "GET /api/health",
                "GET /api/availability/search",
                "GET /api/availability/buildings",
                "POST /api/booking/create",
                "POST /api/booking/create-with-payment",
                "GET /api/booking/:bookingId",
                "POST /api/payment/create-intent",
                "POST /api/payment/verify",
            ],
        })

    @app.get("/api/health")
    async def health() -> JSONResponse:
        """Lightweight health check — reports which credentials are present."""
        return JSONResponse({
            "status": "OK",
            "timestamp": datetime.now(tz=timezone.utc).isoformat(),
            "version": __version__,
            "uptime": round(time.time() - _START_TIME, 1),
            "hasCredentials": {
                "clientId": bool(settings.rh_client_id),
                "clientSecret": bool(settings.rh_client_secret),
                "authUrl": bool(settings.rh_auth_url),
                "baseUrl": bool(settings.rh_base_url),
                "stripe": bool(settings.stripe_secret_key),
                "webhook": bool(settings.webhook_url),
            },
        })

    # ── Availability ───────────────────────────────────────────

    @app.get("/api/availability/search")
    async def search_availability(
        startDate: str = "", endDate: str = "", guests: str = "1"
    ) -> JSONResponse:
        start = _parse_date(startDate, "startDate")
        end = _parse_date(endDate, "endDate")
        try:
            guest_count = int(guests or 1)
        except ValueError:
            raise ValidationError("Guests must be between 1 and 10")

        result = await availability.search(start, end, guest_count)
        return JSONResponse(result.to_api())

    @app.get("/api/availability/buildings")
    async def list_buildings() -> JSONResponse:
        buildings = await availability.buildings()
        return JSONResponse({
            "success": True,
            "data": [b.to_api() for b in buildings],
            "total": len(buildings),
        })

    # ── Booking ────────────────────────────────────────────────

    @app.get("/api/booking/health")
    async def booking_health() -> JSONResponse:
        return JSONResponse({
            "status": "OK",
            "message": "Booking routes are working",
            "routes": [
                "POST /create - Booking enquiry without payment",
                "POST /create-with-payment - Booking with payment",
                "GET /:bookingId - Get booking details (numeric ID only)",
                "GET /:bookingId/payments - Get booking payments",
            ],
        })

    @app.post("/api/booking/create")
    async def create_booking(request: Request) -> JSONResponse:
        body = await _read_json(request)
        return _saga_response(await saga.create_enquiry(body))

    @app.post("/api/booking/create-with-payment")
    async def create_booking_with_payment(request: Request) -> JSONResponse:
        body = await _read_json(request)
        return _saga_response(await saga.create_with_payment(body))

    @app.get("/api/booking/{booking_id}/payments")
    async def get_booking_payments(booking_id: str) -> JSONResponse:
        _validate_booking_id(booking_id)
        payments_data = await bookings.get_booking_payments(booking_id)
        return JSONResponse({"success": True, "data": payments_data})

    @app.get("/api/booking/{booking_id}")
    async def get_booking(booking_id: str) -> JSONResponse:
        _validate_booking_id(booking_id)
        booking = await bookings.get_booking(booking_id)
        return JSONResponse({"success": True, "data": booking.raw})

    # ── Payment ────────────────────────────────────────────────

    @app.post("/api/payment/create-intent")
    async def create_payment_intent(request: Request) -> JSONResponse:
        body = await _read_json(request)
        amount = _parse_amount(body.get("amount"))
        details = body.get("bookingDetails") or {}

        result = await payments.create_payment_intent(
            amount,
            body.get("currency") or settings.default_currency,
            {
                "guestName": details.get("guestName"),
                "checkIn": details.get("checkIn"),
                "checkOut": details.get("checkOut"),
                "propertyId": details.get("propertyId"),
            },
        )
        return _result_response(result)

    @app.post("/api/payment/verify")
    async def verify_payment(request: Request) -> JSONResponse:
        body = await _read_json(request)
        intent_id = body.get("paymentIntentId")
        if not intent_id:
            raise ValidationError("Payment intent ID required")
        return _result_response(await payments.verify_payment(intent_id))

    return app


# ── Helpers ──────────────────────────────────────────────────────


async def _read_json(request: Request) -> dict[str, Any]:
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise ValidationError("Request body must be valid JSON")
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return body


def _parse_date(value: str, name: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise ValidationError(f"Valid {name} required (YYYY-MM-DD)")


def _parse_amount(value: Any) -> Decimal:
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError("Invalid amount")
    if not amount.is_finite() or amount <= 0:
        raise ValidationError("Invalid amount")
    return amount


def _validate_booking_id(booking_id: str) -> None:
    if not _BOOKING_ID.match(booking_id):
        raise ValidationError("Booking ID must be a number")


def _saga_response(outcome: Any) -> JSONResponse:
    if isinstance(outcome, SagaFailure):
        return JSONResponse(outcome.to_api(), status_code=outcome.http_status)
    return JSONResponse({"success": True, "data": outcome.to_api()})


def _result_response(result: Any) -> JSONResponse:
    """Serialize a provider result dataclass with camelCase keys."""
    payload = {}
    for key, value in dataclasses.asdict(result).items():
        if value in ("", None) and key != "success":
            continue
        head, *rest = key.split("_")
        camel = head + "".join(part.title() for part in rest)
        payload[camel] = float(value) if isinstance(value, Decimal) else value
    return JSONResponse(payload, status_code=200 if result.success else 502)


# ── Module-level app instance for uvicorn ──────────────────────

app = create_app()


if __name__ == "__main__":
    import uvicorn

    for warning in settings.validate_startup():
        log.warning(warning)

    log_config = uvicorn.config.LOGGING_CONFIG
    log_config["formatters"]["default"]["fmt"] = (
        "%(asctime)s %(name)-12s %(levelname)-8s %(message)s"
    )

    uvicorn.run(
        "shortstay.app:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_config=log_config,
    )
