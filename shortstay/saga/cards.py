"""Card helpers for the legacy local card-capture path."""

from __future__ import annotations

import secrets
import string
import time

VISA_ELECTRON_PREFIXES = {"4026", "4508", "4844", "4913", "4917"}
MASTERCARD_PREFIXES = {"51", "52", "53", "54", "55"}
AMEX_PREFIXES = {"34", "37"}
DINERS_PREFIXES = {"30", "36", "38"}
MAESTRO_PREFIXES = {"50"} | {str(n) for n in range(56, 70)}

_REFERENCE_ALPHABET = string.ascii_uppercase + string.digits


def normalize_pan(card_number: str) -> str:
    return "".join(ch for ch in card_number if ch.isdigit())


def classify_card(card_number: str) -> str:
    """Return the card network for a PAN, as the booking provider names it.

    Anything unrecognised falls back to ``VISA_CREDIT``.
    """
    pan = normalize_pan(card_number)
    first_two = pan[:2]

    if pan.startswith("4"):
        if pan[:4] in VISA_ELECTRON_PREFIXES:
            return "VISA_ELECTRON"
        return "VISA_CREDIT"
    if first_two in MASTERCARD_PREFIXES:
        return "MASTERCARD"
    if first_two in AMEX_PREFIXES:
        return "AMERICAN_EXPRESS"
    if first_two in DINERS_PREFIXES:
        return "DINERS_CLUB"
    if first_two in MAESTRO_PREFIXES:
        return "MAESTRO"
    if first_two == "35":
        return "JCB"
    return "VISA_CREDIT"


def last_four(card_number: str) -> str:
    return normalize_pan(card_number)[-4:]


def generate_payment_reference() -> str:
    """Local reference for a card payment, e.g. ``PAY-1718000000000-K3J9Q2XZA``."""
    suffix = "".join(secrets.choice(_REFERENCE_ALPHABET) for _ in range(9))
    return f"PAY-{int(time.time() * 1000)}-{suffix}"
