from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from schemas.imports import LoanType


class LoanApplicationIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    full_name: str = Field(alias="fullName", min_length=2)
    mpesa_phone: str = Field(alias="mpesaPhone", min_length=9, max_length=13)
    national_id: str = Field(alias="nationalId", min_length=5, max_length=10)
    loan_type: LoanType | None = Field(default=None, alias="loanType")


class LoanQuoteOut(BaseModel):
    tracking_id: str
    loan_type: LoanType | None = None
    qualified_amount: int
    verification_fee: int
    interest_rate: int
    repayment_period: int
