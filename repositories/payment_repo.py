from __future__ import annotations

from pymongo.errors import DuplicateKeyError

from core.database import db
from core.payments.types import TERMINAL_STATUSES
from schemas.payment_schema import PaymentOutcomeCreate, PaymentOutcomeOut

_PAYMENT_INDEXES_READY = False
_TERMINAL_VALUES = sorted(status.value for status in TERMINAL_STATUSES)


async def _ensure_payment_indexes() -> None:
    global _PAYMENT_INDEXES_READY
    if _PAYMENT_INDEXES_READY:
        return
    await db.payment_outcomes.create_index(
        "checkout_request_id",
        name="idx_payment_outcome_checkout_unique",
        unique=True,
    )
    await db.payment_outcomes.create_index("session_id", name="idx_payment_outcome_session_id", sparse=True)
    _PAYMENT_INDEXES_READY = True


async def record_payment_outcome(payload: PaymentOutcomeCreate) -> bool:
    """Store an outcome unless a terminal one is already recorded for the checkout.

    Returns ``False`` when the write was a no-op. The filter only matches a
    missing or non-terminal record, so an existing terminal record turns the
    upsert into an insert that collides on the unique checkout index.
    """
    await _ensure_payment_indexes()
    document = payload.model_dump()
    created_at = document.pop("created_at")
    try:
        await db.payment_outcomes.update_one(
            {
                "checkout_request_id": payload.checkout_request_id,
                "status": {"$nin": _TERMINAL_VALUES},
            },
            {"$set": document, "$setOnInsert": {"created_at": created_at}},
            upsert=True,
        )
    except DuplicateKeyError:
        return False
    return True


async def get_payment_outcome(checkout_request_id: str) -> PaymentOutcomeOut | None:
    await _ensure_payment_indexes()
    row = await db.payment_outcomes.find_one({"checkout_request_id": checkout_request_id})
    if row is None:
        return None
    return PaymentOutcomeOut(**row)
