"""Stripe payment provider implementation.

Wraps payment-intent creation, verification and refunds.  Amounts cross
this boundary in major units (``Decimal``) and are sent to Stripe in minor
units.  The synchronous Stripe SDK runs in the default thread pool so the
event loop is never blocked.
"""

from __future__ import annotations

import asyncio
import logging
from decimal import ROUND_HALF_UP, Decimal
from functools import partial
from typing import Any, Optional

import stripe

from shortstay.config import settings

from .base import PaymentIntentResult, PaymentProvider, PaymentVerification, RefundResult

logger = logging.getLogger(__name__)

PAYMENT_SOURCE = "short-stay-booking"


def to_minor_units(amount: Decimal) -> int:
    """Convert a major-unit amount to Stripe's integer minor units."""
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(amount: Optional[int]) -> Decimal:
    return Decimal(int(amount or 0)) / 100


class StripePaymentProvider(PaymentProvider):
    """PaymentProvider backed by Stripe PaymentIntents."""

    def __init__(self, api_key: str | None = None, timeout: float | None = None) -> None:
        self._api_key = api_key if api_key is not None else settings.stripe_secret_key
        self._timeout = timeout or settings.request_timeout

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _run_in_executor(self, func, *args, **kwargs) -> Any:
        """Run a synchronous Stripe SDK call in the default thread pool.

        Raises ``stripe.APIConnectionError`` when the call outlives the
        configured timeout.
        """
        loop = asyncio.get_running_loop()
        try:
            return await asyncio.wait_for(
                loop.run_in_executor(None, partial(func, *args, **kwargs)),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError as exc:
            raise stripe.APIConnectionError(
                f"Stripe request timed out after {self._timeout:.0f}s"
            ) from exc

    def _require_key(self) -> Optional[str]:
        if not self._api_key:
            return "Stripe secret key is not configured"
        return None

    # ------------------------------------------------------------------
    # PaymentProvider interface
    # ------------------------------------------------------------------

    async def create_payment_intent(
        self,
        amount: Decimal,
        currency: str = "SEK",
        metadata: Optional[dict[str, Any]] = None,
    ) -> PaymentIntentResult:
        missing = self._require_key()
        if missing:
            return PaymentIntentResult(success=False, error=missing)

        meta = {k: str(v) for k, v in (metadata or {}).items() if v is not None}
        meta["source"] = PAYMENT_SOURCE

        try:
            intent = await self._run_in_executor(
                stripe.PaymentIntent.create,
                amount=to_minor_units(amount),
                currency=currency.lower(),
                automatic_payment_methods={"enabled": True},
                metadata=meta,
                api_key=self._api_key,
            )
        except stripe.StripeError as exc:
            logger.error("Stripe payment intent creation failed: %s", exc)
            return PaymentIntentResult(success=False, error=_stripe_message(exc))

        logger.info("Created payment intent %s", intent.id)
        return PaymentIntentResult(
            success=True,
            client_secret=intent.client_secret,
            payment_intent_id=intent.id,
        )

    async def verify_payment(self, payment_intent_id: str) -> PaymentVerification:
        missing = self._require_key()
        if missing:
            return PaymentVerification(success=False, error=missing)

        try:
            intent = await self._run_in_executor(
                stripe.PaymentIntent.retrieve, payment_intent_id, api_key=self._api_key
            )
        except stripe.StripeError as exc:
            logger.error("Payment verification failed for %s: %s", payment_intent_id, exc)
            return PaymentVerification(success=False, error=_stripe_message(exc))

        return PaymentVerification(
            success=True,
            status=intent.status,
            amount=from_minor_units(intent.amount),
            currency=(intent.currency or "").upper(),
            payment_method=intent.payment_method,
            metadata=dict(intent.metadata or {}),
        )

    async def refund_payment(
        self, payment_intent_id: str, amount: Optional[Decimal] = None
    ) -> RefundResult:
        missing = self._require_key()
        if missing:
            return RefundResult(success=False, error=missing)

        params: dict[str, Any] = {"payment_intent": payment_intent_id}
        if amount:
            params["amount"] = to_minor_units(amount)

        try:
            refund = await self._run_in_executor(
                stripe.Refund.create, api_key=self._api_key, **params
            )
        except stripe.StripeError as exc:
            logger.error("Refund failed for %s: %s", payment_intent_id, exc)
            return RefundResult(success=False, error=_stripe_message(exc))

        logger.info("Refund %s created for %s", refund.id, payment_intent_id)
        return RefundResult(
            success=True,
            refund_id=refund.id,
            amount=from_minor_units(refund.amount),
            status=refund.status,
        )


def _stripe_message(exc: stripe.StripeError) -> str:
    return getattr(exc, "user_message", None) or str(exc) or exc.__class__.__name__
