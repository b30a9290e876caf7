from __future__ import annotations

import pytest

from core.payments.session import PENDING_MESSAGE, PaymentSession
from core.payments.types import PaymentSessionStatus, StkPushAcknowledgement, TransactionDetails


def _ack(checkout_request_id: str | None = "ws_CO_1", response_code: str = "0") -> StkPushAcknowledgement:
    return StkPushAcknowledgement(
        merchant_request_id="mr-1",
        checkout_request_id=checkout_request_id,
        response_code=response_code,
        response_description="Success. Request accepted for processing",
        customer_message="Success. Request accepted for processing",
    )


def _pending_session() -> PaymentSession:
    session = PaymentSession()
    session.begin_processing()
    session.mark_pending(_ack())
    return session


def test_session_walks_to_pending():
    session = PaymentSession()
    assert session.status == PaymentSessionStatus.IDLE

    session.begin_processing()
    assert session.status == PaymentSessionStatus.PROCESSING
    assert session.snapshot().is_payment_in_progress is True

    session.mark_pending(_ack())
    snapshot = session.snapshot()
    assert snapshot.status == PaymentSessionStatus.PENDING
    assert snapshot.message == PENDING_MESSAGE
    assert snapshot.checkout_request_id == "ws_CO_1"


def test_pending_requires_checkout_request_id():
    session = PaymentSession()
    session.begin_processing()

    with pytest.raises(ValueError):
        session.mark_pending(_ack(checkout_request_id=None))


def test_processing_can_only_start_once():
    session = PaymentSession()
    session.begin_processing()

    with pytest.raises(RuntimeError):
        session.begin_processing()


def test_idle_session_cannot_be_resolved():
    with pytest.raises(RuntimeError):
        PaymentSession().resolve(PaymentSessionStatus.SUCCESS, "done", source="webhook")


def test_resolve_rejects_non_terminal_status():
    with pytest.raises(ValueError):
        _pending_session().resolve(PaymentSessionStatus.PENDING, "still waiting", source="poller")


def test_failed_initiation_moves_processing_to_failed():
    session = PaymentSession()
    session.begin_processing()

    assert session.fail_initiation("Payment failed. Please try again.") is True

    snapshot = session.snapshot()
    assert snapshot.status == PaymentSessionStatus.FAILED
    assert snapshot.is_payment_failed is True
    assert snapshot.resolved_by == "initiation"


@pytest.mark.parametrize(
    ("first", "second"),
    [
        ((PaymentSessionStatus.SUCCESS, "webhook"), (PaymentSessionStatus.CANCELLED, "poller")),
        ((PaymentSessionStatus.CANCELLED, "poller"), (PaymentSessionStatus.SUCCESS, "webhook")),
    ],
)
def test_first_terminal_write_wins(first, second):
    session = _pending_session()

    assert session.resolve(first[0], "first", source=first[1]) is True
    assert session.resolve(second[0], "second", source=second[1]) is False

    snapshot = session.snapshot()
    assert snapshot.status == first[0]
    assert snapshot.message == "first"
    assert snapshot.resolved_by == first[1]


def test_duplicate_resolution_is_a_no_op():
    session = _pending_session()
    details = TransactionDetails(amount=100, mpesa_receipt_number="ABC123")

    assert session.resolve(PaymentSessionStatus.SUCCESS, "paid", result_code="0", details=details, source="webhook")
    before = session.snapshot()
    assert session.resolve(PaymentSessionStatus.SUCCESS, "paid", result_code="0", details=details, source="webhook") is False

    assert session.snapshot() == before

