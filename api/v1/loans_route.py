from __future__ import annotations

from fastapi import APIRouter
from pydantic import BaseModel

from core.response_envelope import document_response
from schemas.loan_schema import LoanApplicationIn, LoanQuoteOut
from services.loan_service import fee_payment_request, quote_loan
from services.payment_service import initiate_payment

router = APIRouter(prefix="/loans", tags=["Loans"])


class VerificationFeeIn(BaseModel):
    application: LoanApplicationIn
    quote: LoanQuoteOut


@router.post("/quote")
@document_response(
    message="Loan quote generated",
    success_example={
        "tracking_id": "LON-C123456L7654321",
        "loan_type": "personal",
        "qualified_amount": 15000,
        "verification_fee": 105,
        "interest_rate": 10,
        "repayment_period": 2,
    },
)
async def create_quote(payload: LoanApplicationIn):
    return quote_loan(payload)


@router.post("/verification-fee")
@document_response(message="Verification fee payment initiated", status_code=201)
async def pay_verification_fee(payload: VerificationFeeIn):
    return await initiate_payment(fee_payment_request(payload.application, payload.quote))
