from __future__ import annotations

import re

from core.errors import ValidationError
from core.payments.types import PaymentRequest

MIN_AMOUNT_MINOR = 1
MAX_AMOUNT_MINOR = 150_000
ACCOUNT_REFERENCE_MAX_LENGTH = 12
TRANSACTION_DESCRIPTION_MAX_LENGTH = 13

_NON_DIGITS = re.compile(r"\D")
_CANONICAL_PHONE = re.compile(r"^254[17]\d{8}$")


def normalize_phone_number(raw: str) -> str:
    cleaned = _NON_DIGITS.sub("", str(raw or ""))

    if cleaned.startswith("0"):
        cleaned = "254" + cleaned[1:]
    elif len(cleaned) == 9 and cleaned[:1] in {"7", "1"}:
        cleaned = "254" + cleaned
    elif not cleaned.startswith("254"):
        cleaned = "254" + cleaned

    if not _CANONICAL_PHONE.match(cleaned):
        raise ValidationError(
            "Please enter a valid Kenyan phone number (254712345678, 0712345678 or 712345678)",
            details={"phone_number": raw},
        )
    return cleaned


def validate_amount(amount_minor: int) -> int:
    if isinstance(amount_minor, bool) or not isinstance(amount_minor, int):
        raise ValidationError("Amount must be a whole number of shillings", details={"amount": amount_minor})
    if amount_minor < MIN_AMOUNT_MINOR or amount_minor > MAX_AMOUNT_MINOR:
        raise ValidationError(
            "Amount must be between KES 1 and KES 150,000",
            details={"amount": amount_minor, "min": MIN_AMOUNT_MINOR, "max": MAX_AMOUNT_MINOR},
        )
    return amount_minor


def validate_payment_request(request: PaymentRequest) -> str:
    """Check a request before any provider call and return the normalized phone number."""
    missing = [
        name
        for name, value in (
            ("phone_number", request.phone_number),
            ("amount", request.amount_minor),
            ("account_reference", request.account_reference),
        )
        if value in (None, "")
    ]
    if missing:
        raise ValidationError("Missing required payment information", details={"missing": missing})

    validate_amount(request.amount_minor)
    return normalize_phone_number(request.phone_number)


def truncate_reference(account_reference: str) -> str:
    return str(account_reference)[:ACCOUNT_REFERENCE_MAX_LENGTH]


def truncate_description(transaction_description: str) -> str:
    return str(transaction_description)[:TRANSACTION_DESCRIPTION_MAX_LENGTH]
