from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class PaymentSessionStatus(str, Enum):
    IDLE = "idle"
    PROCESSING = "processing"
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"
    TIMEOUT = "timeout"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {
        PaymentSessionStatus.SUCCESS,
        PaymentSessionStatus.FAILED,
        PaymentSessionStatus.CANCELLED,
        PaymentSessionStatus.TIMEOUT,
    }
)

FAILURE_STATUSES = frozenset(
    {
        PaymentSessionStatus.FAILED,
        PaymentSessionStatus.CANCELLED,
        PaymentSessionStatus.TIMEOUT,
    }
)


@dataclass(frozen=True)
class PaymentRequest:
    phone_number: str
    amount_minor: int
    account_reference: str
    transaction_description: str


@dataclass(frozen=True)
class AccessToken:
    value: str
    expires_in: int
    issued_at: float

    def is_expired(self, now: float, *, leeway: float = 60.0) -> bool:
        return now >= self.issued_at + self.expires_in - leeway


@dataclass(frozen=True)
class StkPushAcknowledgement:
    merchant_request_id: str | None
    checkout_request_id: str | None
    response_code: str
    response_description: str | None
    customer_message: str | None
    raw: dict[str, Any] = field(default_factory=dict)

    @property
    def accepted(self) -> bool:
        return self.response_code == "0" and bool(self.checkout_request_id)


@dataclass(frozen=True)
class StkQueryResult:
    result_code: str | None
    result_desc: str | None
    response_description: str | None
    merchant_request_id: str | None = None
    checkout_request_id: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class TransactionDetails:
    amount: Any = None
    mpesa_receipt_number: str | None = None
    phone_number: Any = None
    transaction_date: Any = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "amount": self.amount,
            "mpesa_receipt_number": self.mpesa_receipt_number,
            "phone_number": self.phone_number,
            "transaction_date": self.transaction_date,
        }


@dataclass(frozen=True)
class WebhookEnvelope:
    merchant_request_id: str | None
    checkout_request_id: str
    result_code: str
    result_desc: str | None
    items: dict[str, Any] = field(default_factory=dict)

    @property
    def is_success(self) -> bool:
        return self.result_code == "0"


@dataclass(frozen=True)
class ResultOutcome:
    status: PaymentSessionStatus
    message: str
    result_code: str | None
    known: bool = True


@dataclass(frozen=True)
class PaymentStatusSnapshot:
    session_id: str
    status: PaymentSessionStatus
    message: str
    result_code: str | None = None
    checkout_request_id: str | None = None
    merchant_request_id: str | None = None
    resolved_by: str | None = None
    details: TransactionDetails | None = None
    created_at: int | None = None

    @property
    def is_payment_in_progress(self) -> bool:
        return self.status in {PaymentSessionStatus.PROCESSING, PaymentSessionStatus.PENDING}

    @property
    def is_payment_complete(self) -> bool:
        return self.status == PaymentSessionStatus.SUCCESS

    @property
    def is_payment_failed(self) -> bool:
        return self.status in FAILURE_STATUSES

    def as_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "status": self.status.value,
            "message": self.message,
            "result_code": self.result_code,
            "checkout_request_id": self.checkout_request_id,
            "merchant_request_id": self.merchant_request_id,
            "resolved_by": self.resolved_by,
            "details": self.details.as_dict() if self.details else None,
            "created_at": self.created_at,
            "is_payment_in_progress": self.is_payment_in_progress,
            "is_payment_complete": self.is_payment_complete,
            "is_payment_failed": self.is_payment_failed,
        }
