from __future__ import annotations

from typing import Any

from core.errors import UnknownProviderError
from core.payments.types import PaymentSessionStatus, ResultOutcome

SUCCESS_CODE = "0"
CANCELLED_BY_USER_CODE = "1032"
SUBSCRIBER_UNREACHABLE_CODE = "1037"
WRONG_PIN_CODE = "2001"
INSUFFICIENT_FUNDS_CODE = "1"

RESULT_CODE_TAXONOMY: dict[str, tuple[PaymentSessionStatus, str]] = {
    SUCCESS_CODE: (PaymentSessionStatus.SUCCESS, "The service request is processed successfully"),
    CANCELLED_BY_USER_CODE: (PaymentSessionStatus.CANCELLED, "Request cancelled by user"),
    SUBSCRIBER_UNREACHABLE_CODE: (PaymentSessionStatus.TIMEOUT, "DS timeout user cannot be reached"),
    WRONG_PIN_CODE: (PaymentSessionStatus.FAILED, "Wrong PIN entered"),
    INSUFFICIENT_FUNDS_CODE: (PaymentSessionStatus.FAILED, "Insufficient funds in your M-Pesa account"),
    "1001": (PaymentSessionStatus.FAILED, "Unable to lock subscriber"),
    "1019": (PaymentSessionStatus.FAILED, "Transaction expired"),
    "1025": (PaymentSessionStatus.FAILED, "Unable to load subscriber"),
    "1036": (PaymentSessionStatus.FAILED, "Transaction expired"),
}

# Messages shown when the push request itself is refused with a non-zero ResponseCode.
PUSH_RESPONSE_MESSAGES: dict[str, str] = {
    INSUFFICIENT_FUNDS_CODE: "Insufficient funds in your M-Pesa account",
    WRONG_PIN_CODE: "Wrong PIN entered or PIN locked",
    CANCELLED_BY_USER_CODE: "Transaction was cancelled",
}


def normalize_result_code(code: Any) -> str | None:
    if code is None:
        return None
    value = str(code).strip()
    return value or None


def classify_result_code(code: Any, description: str | None = None) -> ResultOutcome:
    normalized = normalize_result_code(code)
    if normalized is None:
        return ResultOutcome(
            status=PaymentSessionStatus.PENDING,
            message=description or "Payment is still being processed",
            result_code=None,
        )

    known = RESULT_CODE_TAXONOMY.get(normalized)
    if known is not None:
        status, default_message = known
        return ResultOutcome(status=status, message=description or default_message, result_code=normalized)

    return ResultOutcome(
        status=PaymentSessionStatus.FAILED,
        message=description or f"Unknown error occurred (Code: {normalized})",
        result_code=normalized,
        known=False,
    )


def raise_for_result_code(code: Any, description: str | None = None) -> ResultOutcome:
    outcome = classify_result_code(code, description)
    if not outcome.known:
        raise UnknownProviderError(
            outcome.message,
            result_code=outcome.result_code or "",
            provider_message=description,
        )
    return outcome
