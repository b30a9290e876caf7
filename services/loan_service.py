from __future__ import annotations

import random
import time

from core.loan_rules import (
    DEFAULT_QUALIFIED_AMOUNT,
    INTEREST_RATE_PERCENT,
    QUALIFIED_AMOUNT_BY_LOAN_TYPE,
    REPAYMENT_PERIOD_MONTHS,
    VERIFICATION_FEE_DESCRIPTION,
    VERIFICATION_FEE_RATE,
)
from core.payments.types import PaymentRequest
from schemas.loan_schema import LoanApplicationIn, LoanQuoteOut


def _tracking_id() -> str:
    digits = f"{random.randint(0, 999_999):06d}"
    millis = str(int(time.time() * 1000))[-7:]
    return f"LON-C{digits}L{millis}"


def verification_fee_for(qualified_amount: int) -> int:
    # round half up, matching the amounts shown on the landing page
    return int(qualified_amount * VERIFICATION_FEE_RATE + 0.5)


def qualified_amount_for(application: LoanApplicationIn) -> int:
    if application.loan_type is None:
        return DEFAULT_QUALIFIED_AMOUNT
    return QUALIFIED_AMOUNT_BY_LOAN_TYPE.get(application.loan_type, DEFAULT_QUALIFIED_AMOUNT)


def quote_loan(application: LoanApplicationIn) -> LoanQuoteOut:
    qualified_amount = qualified_amount_for(application)
    return LoanQuoteOut(
        tracking_id=_tracking_id(),
        loan_type=application.loan_type,
        qualified_amount=qualified_amount,
        verification_fee=verification_fee_for(qualified_amount),
        interest_rate=INTEREST_RATE_PERCENT,
        repayment_period=REPAYMENT_PERIOD_MONTHS,
    )


def fee_payment_request(application: LoanApplicationIn, quote: LoanQuoteOut) -> PaymentRequest:
    """The fee is priced from the application; only the quote's tracking id is used."""
    phone = application.mpesa_phone.strip()
    if len(phone) == 9:
        phone = f"0{phone}"
    return PaymentRequest(
        phone_number=phone,
        amount_minor=verification_fee_for(qualified_amount_for(application)),
        account_reference=quote.tracking_id[:12],
        transaction_description=VERIFICATION_FEE_DESCRIPTION,
    )
