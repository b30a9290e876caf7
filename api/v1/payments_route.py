from __future__ import annotations

import json
import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from core.response_envelope import document_response
from schemas.payment_schema import (
    PaymentIn,
    PaymentResponseOut,
    PaymentStatusOut,
    RetryPaymentIn,
    StkQueryIn,
    StkQueryOut,
)
from services.payment_service import (
    CALLBACK_RECEIVED_ACK,
    abandon_payment,
    build_payment_request,
    get_payment_status,
    get_recorded_outcome,
    initiate_payment,
    process_stk_callback,
    query_payment_status,
    retry_payment,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["Payments"])


def _payment_request(payload: PaymentIn):
    return build_payment_request(
        phone_number=payload.phone_number,
        amount=payload.amount,
        account_reference=payload.account_reference,
        transaction_desc=payload.transaction_desc,
    )


@router.post("/stk-push")
@document_response(
    message="Payment initiated",
    status_code=201,
    response_codes={422: "Invalid phone number or amount", 503: "M-Pesa unavailable"},
)
async def create_stk_push(payload: PaymentIn):
    return PaymentResponseOut(**await initiate_payment(_payment_request(payload)))


@router.post("/sessions/{session_id}/retry")
@document_response(message="Payment re-initiated", status_code=201)
async def retry_stk_push(session_id: str, payload: RetryPaymentIn):
    result = await retry_payment(
        _payment_request(payload),
        previous_session_id=payload.previous_session_id or session_id,
    )
    return PaymentResponseOut(**result)


@router.get("/sessions/{session_id}")
@document_response(message="Payment status fetched", response_codes={404: "Unknown session"})
async def fetch_payment_status(session_id: str):
    return PaymentStatusOut(**get_payment_status(session_id).as_dict())


@router.delete("/sessions/{session_id}")
@document_response(message="Payment session abandoned", response_codes={404: "Unknown session"})
async def delete_payment_session(session_id: str):
    return PaymentStatusOut(**abandon_payment(session_id).as_dict())


@router.post("/stk-query")
@document_response(message="Payment status queried")
async def stk_query(payload: StkQueryIn):
    return StkQueryOut(**await query_payment_status(payload.checkout_request_id))


@router.get("/outcomes/{checkout_request_id}")
@document_response(message="Payment outcome fetched", response_codes={404: "No outcome recorded"})
async def fetch_payment_outcome(checkout_request_id: str):
    return await get_recorded_outcome(checkout_request_id)


@router.post("/callback", include_in_schema=False)
async def stk_callback(request: Request):
    """
    Receive STK Push results from Safaricom.

    Always answers ``{"ResultCode": 0}`` with HTTP 200 so the provider does
    not keep redelivering, even when the body cannot be read.
    """
    body = await request.body()
    try:
        payload = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as err:
        logger.warning("stk_callback_unreadable error=%s", err)
        return JSONResponse(status_code=200, content=CALLBACK_RECEIVED_ACK)
    return JSONResponse(status_code=200, content=await process_stk_callback(payload))
