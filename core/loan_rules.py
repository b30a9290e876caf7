from __future__ import annotations

from schemas.imports import LoanType

QUALIFIED_AMOUNT_BY_LOAN_TYPE: dict[LoanType, int] = {
    LoanType.PERSONAL: 15_000,
    LoanType.BUSINESS: 35_000,
    LoanType.EMERGENCY: 10_000,
    LoanType.EDUCATION: 25_000,
    LoanType.MEDICAL: 20_000,
    LoanType.HOME_IMPROVEMENT: 30_000,
    LoanType.AGRICULTURE: 40_000,
    LoanType.MOTORCYCLE: 22_200,
}

DEFAULT_QUALIFIED_AMOUNT: int = 15_000
VERIFICATION_FEE_RATE: float = 0.007
INTEREST_RATE_PERCENT: int = 10
REPAYMENT_PERIOD_MONTHS: int = 2
VERIFICATION_FEE_DESCRIPTION: str = "Verification Fee"
