"""Booking orchestration saga — drives one booking through both providers.

Three policies share one state-machine skeleton:

  enquiry      ValidateInput → EnsureContact → CreateBooking
  card         ValidateInput → EnsureContact → CreateBooking → AdvanceToPending
               → PostInvoices → RecordPayment → ConfirmRoomStay
  payment rail ValidateInput → VerifyPayment → EnsureContact → CreateBooking
               → AdvanceToPending → PostInvoices → RecordPayment
               → ConfirmRoomStay → Notify

Before money moves every step is fatal.  Once a charge exists (a verified
payment intent, or a recorded card payment) later steps are tolerated and
only reported through result flags, and every failure response carries the
payment reference so support can reconcile by hand.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping, Optional, Union

import pydantic

from shortstay.config import settings
from shortstay.errors import (
    NotificationError,
    PaymentVerificationError,
    ProviderRequestError,
    ShortStayError,
    StatusUpdateError,
    ValidationError,
)
from shortstay.models.booking import (
    BookingRequest,
    BookingWithPaymentRequest,
    OrchestrationResult,
    SagaFailure,
)
from shortstay.models.saga_state import SagaState
from shortstay.providers.base import (
    Booking,
    BookingPayload,
    BookingProvider,
    PaymentProvider,
    PaymentRecord,
    RoomStayStatus,
)
from shortstay.redact import redact_pii
from shortstay.services.notifier import BookingSummary, WebhookNotifier

from .cards import classify_card, generate_payment_reference, last_four
from .steps import RunOutcome, SagaStep, StepPolicy, StepResult, run_steps

log = logging.getLogger("shortstay.saga.booking")

AMOUNT_TOLERANCE = Decimal("0.01")

SagaOutcome = Union[OrchestrationResult, SagaFailure]


class SagaMode(str, Enum):
    ENQUIRY = "enquiry"
    CARD = "card"
    PAYMENT_RAIL = "payment_rail"


@dataclass
class SagaRun:
    """Everything one orchestration run reads and writes."""

    mode: SagaMode
    body: Any
    run_id: str = field(default_factory=lambda: secrets.token_hex(4))
    request: Optional[BookingWithPaymentRequest] = None
    booking: Optional[Booking] = None
    finance_account_id: Optional[int | str] = None
    state: SagaState = field(default_factory=SagaState)
    outcome: Optional[RunOutcome] = None


class BookingSaga:
    """Orchestrates contact, booking, invoice and payment calls for one request."""

    def __init__(
        self,
        booking_provider: BookingProvider,
        payment_provider: Optional[PaymentProvider] = None,
        notifier: Optional[WebhookNotifier] = None,
    ) -> None:
        self._bookings = booking_provider
        self._payments = payment_provider
        self._notifier = notifier

    # ── Public API ────────────────────────────────────────────

    async def create_enquiry(self, body: Mapping[str, Any] | BookingRequest) -> SagaOutcome:
        """Create a booking left in ``ENQUIRY`` with no payment."""
        return await self._run(SagaRun(SagaMode.ENQUIRY, body))

    async def create_with_card(self, body: Mapping[str, Any] | BookingRequest) -> SagaOutcome:
        """Legacy path: book, then record a locally captured card payment."""
        return await self._run(SagaRun(SagaMode.CARD, body))

    async def create_with_payment_intent(
        self, body: Mapping[str, Any] | BookingRequest
    ) -> SagaOutcome:
        """Payment-rail path: verify a Stripe payment intent, then book."""
        return await self._run(SagaRun(SagaMode.PAYMENT_RAIL, body))

    async def create_with_payment(self, body: Mapping[str, Any] | BookingRequest) -> SagaOutcome:
        """Pick the payment path from the request body.

        A ``stripePaymentIntentId`` selects the payment rail; otherwise a card
        number selects the legacy card path.  With neither, the payment-rail
        validation rejects the request.
        """
        if _get(body, "stripe_payment_intent_id", "stripePaymentIntentId"):
            return await self.create_with_payment_intent(body)
        payment = _get(body, "payment_details", "paymentDetails")
        if payment and _get(payment, "card_number", "cardNumber"):
            return await self.create_with_card(body)
        return await self.create_with_payment_intent(body)

    # ── Step tables ───────────────────────────────────────────

    def _steps(self, mode: SagaMode) -> list[SagaStep[SagaRun]]:
        fatal, tolerate = StepPolicy.FATAL, StepPolicy.TOLERATE

        if mode is SagaMode.ENQUIRY:
            return [
                SagaStep("validate_input", self._validate_enquiry, fatal),
                SagaStep("ensure_contact", self._ensure_contact, fatal),
                SagaStep("create_booking", self._create_booking, fatal),
            ]

        if mode is SagaMode.CARD:
            # No money moves until record_payment, so everything before it aborts
            return [
                SagaStep("validate_input", self._validate_card, fatal),
                SagaStep("ensure_contact", self._ensure_contact, fatal),
                SagaStep("create_booking", self._create_booking, fatal),
                SagaStep("advance_to_pending", self._advance_to_pending, fatal),
                SagaStep("post_invoices", self._post_invoices, fatal),
                SagaStep("record_payment", self._record_card_payment, fatal),
                SagaStep("confirm_room_stay", self._confirm_room_stay, tolerate),
            ]

        # Money has moved once verify_payment succeeds
        return [
            SagaStep("validate_input", self._validate_payment_rail, fatal),
            SagaStep("verify_payment", self._verify_payment, fatal),
            SagaStep("ensure_contact", self._ensure_contact, fatal),
            SagaStep("create_booking", self._create_booking, fatal),
            SagaStep("advance_to_pending", self._advance_to_pending, tolerate),
            SagaStep("post_invoices", self._post_invoices, tolerate),
            SagaStep("record_payment", self._record_verified_payment, tolerate),
            SagaStep("confirm_room_stay", self._confirm_room_stay, tolerate),
            SagaStep("notify", self._notify, tolerate),
        ]

    # ── Runner ────────────────────────────────────────────────

    async def _run(self, run: SagaRun) -> SagaOutcome:
        log.info("[%s] Starting %s booking saga", run.run_id, run.mode.value)
        run.outcome = await run_steps(self._steps(run.mode), run, run.run_id)

        failed = run.outcome.failed
        if failed is not None:
            return self._failure(run, failed)

        for result in run.outcome.tolerated:
            log.warning(
                "[%s] Booking %s completed with tolerated failure in %s",
                run.run_id, run.state.booking_id, result.step,
            )
        return self._respond(run)

    def _respond(self, run: SagaRun) -> OrchestrationResult:
        req, state = run.request, run.state
        if req is None:
            raise ShortStayError("Booking saga finished without a parsed request")

        result = OrchestrationResult(
            booking_id=state.booking_id,
            booking_reference=state.booking_reference,
            status="enquiry" if run.mode is SagaMode.ENQUIRY else "confirmed",
            guest_name=req.guest_details.full_name,
            check_in=req.stay_details.start_date,
            check_out=req.stay_details.end_date,
            contact_id=state.contact_id,
        )
        if run.mode is not SagaMode.ENQUIRY:
            result.payment_reference = state.payment_reference
            result.payment_amount = state.payment_amount
            result.payment_currency = state.payment_currency
            result.invoice_posted = state.invoice_posted
        if run.mode is SagaMode.PAYMENT_RAIL:
            result.webhook_sent = state.webhook_sent

        log.info(
            "[%s] Booking %s (%s) completed as %s",
            run.run_id, state.booking_id, state.booking_reference, result.status,
        )
        return result

    def _failure(self, run: SagaRun, failed: StepResult) -> SagaFailure:
        state = run.state
        error = failed.error or ShortStayError(f"Booking saga failed at {failed.step}")
        log.warning(
            "[%s] Booking saga stopped at %s after: %s",
            run.run_id, failed.step, ", ".join(run.outcome.completed_steps) or "nothing",
        )

        failure = SagaFailure(
            error=error.title,
            code=error.code,
            message=error.message,
            failed_step=failed.step,
            details=error.details or None,
            http_status=error.http_status,
            debug=state.debug(),
        )

        if state.payment_captured and state.payment_reference:
            failure.payment_reference = state.payment_reference
            failure.warning = (
                f"Your payment (reference {state.payment_reference}) was taken but the "
                "booking could not be completed. Do not pay again; contact support "
                f"quoting {state.payment_reference}."
            )
            log.error(
                "[%s] Payment %s captured but saga failed at %s — manual reconciliation needed",
                run.run_id, state.payment_reference, failure.failed_step,
            )
        return failure

    # ── Step 1: ValidateInput ─────────────────────────────────

    def _parse(self, run: SagaRun) -> BookingWithPaymentRequest:
        body = run.body
        if isinstance(body, BookingRequest):
            body = body.model_dump(by_alias=True)
        if not isinstance(body, Mapping):
            raise ValidationError("Request body must be a JSON object")
        try:
            return BookingWithPaymentRequest.model_validate(body)
        except pydantic.ValidationError as exc:
            raise ValidationError(
                "Guest, stay and unit details are required",
                details={"errors": exc.errors(include_url=False, include_context=False, include_input=False)},
            ) from exc

    async def _validate_enquiry(self, run: SagaRun) -> None:
        run.request = self._parse(run)

    def _validate_amount(self, run: SagaRun) -> None:
        req = run.request
        payment = req.payment_details if req else None
        if payment is None or payment.amount is None or payment.amount <= 0:
            raise ValidationError("Payment amount must be a positive number")
        run.state.payment_amount = payment.amount
        run.state.payment_currency = (payment.currency or settings.default_currency).upper()

    async def _validate_card(self, run: SagaRun) -> None:
        run.request = self._parse(run)
        self._validate_amount(run)
        card_number = run.request.payment_details.card_number or ""
        if not last_four(card_number):
            raise ValidationError("Card number and amount must be provided")

    async def _validate_payment_rail(self, run: SagaRun) -> None:
        run.request = self._parse(run)
        self._validate_amount(run)
        if not run.request.stripe_payment_intent_id:
            raise ValidationError("stripePaymentIntentId is required for payment bookings")
        if self._payments is None:
            raise ValidationError("Payment verification is not available")

    # ── Step 2: VerifyPayment ─────────────────────────────────

    async def _verify_payment(self, run: SagaRun) -> None:
        state = run.state
        intent_id = run.request.stripe_payment_intent_id
        verification = await self._payments.verify_payment(intent_id)

        if not verification.success:
            raise PaymentVerificationError(
                f"Could not verify payment {intent_id}: {verification.error}",
                details={"paymentIntentId": intent_id},
            )
        if verification.status != "succeeded":
            raise PaymentVerificationError(
                f"Payment {intent_id} is not complete (status: {verification.status})",
                details={"paymentIntentId": intent_id, "status": verification.status},
            )

        # From here on the guest has been charged
        state.payment_reference = intent_id
        state.payment_captured = True

        if verification.currency.upper() != state.payment_currency:
            raise PaymentVerificationError(
                f"Payment currency {verification.currency} does not match "
                f"booking currency {state.payment_currency}",
                details={"paymentIntentId": intent_id},
            )
        if abs(verification.amount - state.payment_amount) > AMOUNT_TOLERANCE:
            raise PaymentVerificationError(
                f"Payment amount {verification.amount} does not match "
                f"booking amount {state.payment_amount}",
                details={"paymentIntentId": intent_id},
            )
        log.info(
            "[%s] Payment %s verified: %s %s",
            run.run_id, intent_id, verification.amount, verification.currency,
        )

    # ── Steps 3–4: EnsureContact, CreateBooking ───────────────

    async def _ensure_contact(self, run: SagaRun) -> None:
        guest = run.request.guest_details
        contact = await self._bookings.create_contact(guest)
        run.state.contact_id = contact.id
        run.finance_account_id = (
            contact.finance_account_id if contact.finance_account_id is not None else contact.id
        )
        log.info("[%s] Contact %s ready for %s", run.run_id, contact.id, redact_pii(guest.email))

    async def _create_booking(self, run: SagaRun) -> None:
        req, state = run.request, run.state
        stay, unit = req.stay_details, req.unit_details

        notes = f"Web booking for {req.guest_details.full_name}"
        if run.mode is SagaMode.PAYMENT_RAIL:
            notes = f"Web booking with payment for {req.guest_details.full_name} ({state.payment_reference})"
        elif run.mode is SagaMode.CARD:
            notes = f"Web booking with payment for {req.guest_details.full_name}"

        booking = await self._bookings.create_booking(
            BookingPayload(
                contact_id=state.contact_id,
                finance_account_id=run.finance_account_id,
                start_date=stay.start_date,
                end_date=stay.end_date,
                adults=stay.adults,
                children=stay.children,
                infants=stay.infants,
                rate_id=unit.rate_id,
                inventory_type_id=unit.inventory_type_id,
                billing_frequency_id=settings.rh_billing_frequency_id,
                booking_type_id=settings.rh_booking_type_id,
                channel_id=settings.rh_channel_id,
                notes=notes,
            )
        )
        run.booking = booking
        state.booking_id = booking.id
        state.booking_reference = booking.booking_reference

    # ── Steps 5, 8: room stay status ──────────────────────────

    async def _resolve_room_stay(self, run: SagaRun) -> int | str:
        if run.state.room_stay_id is not None:
            return run.state.room_stay_id

        stays = run.booking.room_stays if run.booking else []
        if not stays:
            try:
                stays = await self._bookings.get_room_stays(run.state.booking_id)
            except ProviderRequestError as exc:
                raise StatusUpdateError(
                    f"Could not look up room stays for booking {run.state.booking_id}: {exc.message}"
                ) from exc
        if not stays:
            raise StatusUpdateError(f"Booking {run.state.booking_id} has no room stays")

        run.state.room_stay_id = stays[0].id
        return stays[0].id

    async def _set_status(self, run: SagaRun, status: RoomStayStatus) -> None:
        room_stay_id = await self._resolve_room_stay(run)
        await self._bookings.update_room_stay_status(run.state.booking_id, room_stay_id, status)

    async def _advance_to_pending(self, run: SagaRun) -> None:
        await self._set_status(run, RoomStayStatus.PENDING)

    async def _confirm_room_stay(self, run: SagaRun) -> None:
        await self._set_status(run, RoomStayStatus.CONFIRMED)

    # ── Step 6: PostInvoices ──────────────────────────────────

    async def _post_invoices(self, run: SagaRun) -> None:
        booking_id = run.state.booking_id
        invoices = await self._bookings.get_booking_invoices(booking_id)
        pending = [inv for inv in invoices if not inv.is_posted]
        for invoice in pending:
            await self._bookings.post_invoice(invoice.id)
        run.state.invoice_posted = True
        log.info(
            "[%s] Posted %d of %d invoice(s) for booking %s",
            run.run_id, len(pending), len(invoices), booking_id,
        )

    # ── Step 7: RecordPayment ─────────────────────────────────

    async def _record_verified_payment(self, run: SagaRun) -> None:
        state = run.state
        await self._bookings.create_payment(
            state.booking_id,
            PaymentRecord(
                amount=state.payment_amount,
                currency=state.payment_currency,
                reference=state.payment_reference,
            ),
        )

    async def _record_card_payment(self, run: SagaRun) -> None:
        state = run.state
        card_number = run.request.payment_details.card_number
        record = PaymentRecord(
            amount=state.payment_amount,
            currency=state.payment_currency,
            reference=generate_payment_reference(),
            card_type=classify_card(card_number),
            last_four=last_four(card_number),
        )
        log.info(
            "[%s] Recording %s payment %s of %s %s",
            run.run_id, record.card_type, record.reference, record.amount, record.currency,
        )
        await self._bookings.create_payment(state.booking_id, record)
        state.payment_reference = record.reference
        state.payment_captured = True

    # ── Step 9: Notify ────────────────────────────────────────

    async def _notify(self, run: SagaRun) -> None:
        if self._notifier is None:
            raise NotificationError("No booking notifier configured")

        req, state = run.request, run.state
        summary = BookingSummary(
            guest_name=req.guest_details.full_name,
            email=req.guest_details.email,
            phone=req.guest_details.phone,
            check_in=req.stay_details.start_date,
            check_out=req.stay_details.end_date,
            nights=req.stay_details.nights,
            guests=req.stay_details.adults + req.stay_details.children + req.stay_details.infants,
            property_name=req.unit_details.description,
            total_fee=state.payment_amount,
            currency=state.payment_currency,
            booking_id=state.booking_id,
            booking_reference=state.booking_reference,
            payment_reference=state.payment_reference,
        )
        result = await self._notifier.send(summary)
        if not result.success:
            raise NotificationError(result.error or "Webhook delivery failed")
        state.webhook_sent = True


def _get(obj: Any, attr: str, key: str) -> Any:
    """Read ``attr`` from a model or ``key`` from a raw JSON mapping."""
    if isinstance(obj, Mapping):
        return obj.get(key)
    return getattr(obj, attr, None)
