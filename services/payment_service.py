from __future__ import annotations

import logging
import time
from typing import Any

from core.errors import PaymentError, ValidationError, payments_not_configured, resource_not_found
from core.payments import PaymentManager, PaymentRequest, PaymentSession, PaymentSessionStatus, StatusPoller
from core.payments.callback import extract_transaction_details
from core.payments.result_codes import PUSH_RESPONSE_MESSAGES, SUCCESS_CODE, classify_result_code
from core.payments.types import PaymentStatusSnapshot, WebhookEnvelope
from core.payments.validation import validate_payment_request
from repositories.payment_repo import get_payment_outcome, record_payment_outcome
from schemas.payment_schema import PaymentOutcomeCreate, PaymentOutcomeOut

logger = logging.getLogger(__name__)

CALLBACK_ACK = {"ResultCode": 0, "ResultDesc": "Callback processed successfully"}
CALLBACK_RECEIVED_ACK = {"ResultCode": 0, "ResultDesc": "Callback received"}

WEBHOOK_SUCCESS_MESSAGE = "Payment completed successfully! Your loan will be disbursed shortly."
INITIATION_FAILED_MESSAGE = "Payment failed. Please try again."
QUERY_MESSAGES = {
    PaymentSessionStatus.SUCCESS: "Payment completed successfully",
    PaymentSessionStatus.CANCELLED: "Payment was cancelled by user",
    PaymentSessionStatus.TIMEOUT: "Payment request timed out",
}


def _epoch() -> int:
    return int(time.time())


def _get_payment_manager() -> PaymentManager:
    try:
        return PaymentManager.get_instance()
    except RuntimeError as err:
        raise payments_not_configured(details=str(err)) from err


def build_payment_request(
    *,
    phone_number: str,
    amount: int,
    account_reference: str,
    transaction_desc: str | None = None,
) -> PaymentRequest:
    return PaymentRequest(
        phone_number=str(phone_number),
        amount_minor=amount,
        account_reference=str(account_reference),
        transaction_description=transaction_desc or f"Payment for {account_reference}",
    )


def _outcome_from_snapshot(snapshot: PaymentStatusSnapshot, *, source: str) -> PaymentOutcomeCreate:
    details = snapshot.details.as_dict() if snapshot.details else {}
    return PaymentOutcomeCreate(
        checkout_request_id=snapshot.checkout_request_id or "",
        merchant_request_id=snapshot.merchant_request_id,
        session_id=snapshot.session_id,
        status=snapshot.status.value,
        result_code=snapshot.result_code,
        result_desc=snapshot.message,
        source=source,
        created_at=_epoch(),
        updated_at=_epoch(),
        **details,
    )


async def persist_session_outcome(snapshot: PaymentStatusSnapshot) -> None:
    stored = await record_payment_outcome(_outcome_from_snapshot(snapshot, source=snapshot.resolved_by or "poller"))
    if not stored:
        logger.info("payment_outcome_already_recorded checkout_request_id=%s", snapshot.checkout_request_id)


def _initiation_failure_message(err: PaymentError) -> str:
    if isinstance(err, ValidationError):
        return err.message
    return INITIATION_FAILED_MESSAGE


async def initiate_payment(payment: PaymentRequest) -> dict[str, Any]:
    """Start a new payment session and begin reconciling it.

    Validation failures are raised before a session exists. Provider errors
    leave the session ``failed`` and are re-raised with the session attached
    to ``details`` so the caller can still observe it.
    """
    validate_payment_request(payment)
    manager = _get_payment_manager()
    session = manager.new_session()
    session.begin_processing()
    logger.info(
        "payment_initiation_started session_id=%s amount=%s reference=%s",
        session.session_id,
        payment.amount_minor,
        payment.account_reference,
    )

    try:
        acknowledgement = await manager.provider.initiate_push_payment(payment)
    except PaymentError as err:
        logger.warning(
            "payment_initiation_failed session_id=%s error=%s provider_message=%s",
            session.session_id,
            err.message,
            err.provider_message,
        )
        session.fail_initiation(_initiation_failure_message(err))
        existing = err.detail.get("details")
        err.detail["details"] = {
            **(existing if isinstance(existing, dict) else {}),
            "session": session.snapshot().as_dict(),
        }
        raise

    if not acknowledgement.accepted:
        message = PUSH_RESPONSE_MESSAGES.get(
            acknowledgement.response_code,
            acknowledgement.response_description or "STK Push failed",
        )
        session.fail_initiation(message, result_code=acknowledgement.response_code or None)
        return {
            "success": False,
            "message": message,
            "data": {"response_code": acknowledgement.response_code},
            "session": session.snapshot().as_dict(),
        }

    session.mark_pending(acknowledgement)
    poller = StatusPoller(
        provider=manager.provider,
        session=session,
        schedule=manager.schedule,
        on_resolved=persist_session_outcome,
    )
    manager.track_pending(session, poller)
    poller.start()

    return {
        "success": True,
        "message": "STK Push sent successfully",
        "data": {
            "merchant_request_id": acknowledgement.merchant_request_id,
            "checkout_request_id": acknowledgement.checkout_request_id,
            "customer_message": acknowledgement.customer_message,
            "response_code": acknowledgement.response_code,
            "response_description": acknowledgement.response_description,
        },
        "session": session.snapshot().as_dict(),
    }


async def retry_payment(payment: PaymentRequest, *, previous_session_id: str | None = None) -> dict[str, Any]:
    if previous_session_id:
        discarded = _get_payment_manager().discard(previous_session_id)
        if discarded is not None:
            logger.info(
                "payment_session_discarded session_id=%s status=%s",
                previous_session_id,
                discarded.status.value,
            )
    return await initiate_payment(payment)


def _get_session_or_404(session_id: str) -> PaymentSession:
    session = _get_payment_manager().get_session(session_id)
    if session is None:
        raise resource_not_found("PaymentSession", session_id)
    return session


def get_payment_status(session_id: str) -> PaymentStatusSnapshot:
    return _get_session_or_404(session_id).snapshot()


def abandon_payment(session_id: str) -> PaymentStatusSnapshot:
    session = _get_session_or_404(session_id)
    _get_payment_manager().discard(session_id)
    return session.snapshot()


async def get_recorded_outcome(checkout_request_id: str) -> PaymentOutcomeOut:
    outcome = await get_payment_outcome(checkout_request_id)
    if outcome is None:
        raise resource_not_found("PaymentOutcome", checkout_request_id)
    return outcome


async def query_payment_status(checkout_request_id: str) -> dict[str, Any]:
    result = await _get_payment_manager().provider.query_push_payment_status(checkout_request_id)
    outcome = classify_result_code(result.result_code, result.result_desc or result.response_description)
    return {
        "merchant_request_id": result.merchant_request_id,
        "checkout_request_id": result.checkout_request_id,
        "result_code": result.result_code,
        "result_description": result.result_desc,
        "status": outcome.status.value,
        "message": QUERY_MESSAGES.get(outcome.status, outcome.message),
    }


async def _apply_callback(envelope: WebhookEnvelope) -> None:
    outcome = classify_result_code(envelope.result_code, envelope.result_desc)
    if outcome.status == PaymentSessionStatus.PENDING:
        logger.warning("stk_callback_without_result checkout_request_id=%s", envelope.checkout_request_id)
        return

    details = extract_transaction_details(envelope) if envelope.is_success else None
    session = _get_payment_manager().find_by_checkout_id(envelope.checkout_request_id)
    if session is None:
        logger.info("stk_callback_unknown_session checkout_request_id=%s", envelope.checkout_request_id)
        detail_values = details.as_dict() if details else {}
        payload = PaymentOutcomeCreate(
            checkout_request_id=envelope.checkout_request_id,
            merchant_request_id=envelope.merchant_request_id,
            status=outcome.status.value,
            result_code=envelope.result_code,
            result_desc=envelope.result_desc,
            source="webhook",
            created_at=_epoch(),
            updated_at=_epoch(),
            **detail_values,
        )
    else:
        message = WEBHOOK_SUCCESS_MESSAGE if envelope.result_code == SUCCESS_CODE else outcome.message
        session.resolve(
            outcome.status,
            message,
            result_code=envelope.result_code,
            details=details,
            source="webhook",
        )
        # Each delivery stores the settled outcome; the repository ignores repeats.
        snapshot = session.snapshot()
        payload = _outcome_from_snapshot(snapshot, source=snapshot.resolved_by or "webhook")

    stored = await record_payment_outcome(payload)
    if not stored:
        logger.info("payment_outcome_already_recorded checkout_request_id=%s", envelope.checkout_request_id)


async def process_stk_callback(payload: Any) -> dict[str, Any]:
    """Handle one callback delivery. Never raises; the provider always gets an acknowledgement."""
    try:
        envelope = _get_payment_manager().provider.parse_callback(payload)
    except ValidationError as err:
        logger.warning("stk_callback_malformed error=%s", err)
        return CALLBACK_RECEIVED_ACK
    except Exception:
        logger.exception("stk_callback_unreadable")
        return CALLBACK_RECEIVED_ACK

    logger.info(
        "stk_callback_received checkout_request_id=%s result_code=%s",
        envelope.checkout_request_id,
        envelope.result_code,
    )
    try:
        await _apply_callback(envelope)
    except Exception:
        logger.exception("stk_callback_processing_failed checkout_request_id=%s", envelope.checkout_request_id)
        return CALLBACK_RECEIVED_ACK
    return CALLBACK_ACK
