from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from schemas.imports import ObjectId


class PaymentIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    phone_number: str = Field(alias="phoneNumber", min_length=1)
    amount: int = Field(alias="amount")
    account_reference: str = Field(alias="accountReference", min_length=1)
    transaction_desc: str | None = Field(default=None, alias="transactionDesc")


class RetryPaymentIn(PaymentIn):
    previous_session_id: str | None = Field(default=None, alias="previousSessionId")


class StkQueryIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    checkout_request_id: str = Field(alias="checkoutRequestId", min_length=1)


class PaymentStatusOut(BaseModel):
    session_id: str
    status: str
    message: str
    result_code: str | None = None
    checkout_request_id: str | None = None
    merchant_request_id: str | None = None
    resolved_by: str | None = None
    details: dict[str, Any] | None = None
    created_at: int | None = None
    is_payment_in_progress: bool
    is_payment_complete: bool
    is_payment_failed: bool


class PaymentResponseOut(BaseModel):
    success: bool
    message: str
    data: dict[str, Any] | None = None
    session: PaymentStatusOut


class StkQueryOut(BaseModel):
    merchant_request_id: str | None = None
    checkout_request_id: str | None = None
    result_code: str | None = None
    result_description: str | None = None
    status: str
    message: str


class PaymentOutcomeCreate(BaseModel):
    checkout_request_id: str
    merchant_request_id: str | None = None
    session_id: str | None = None
    status: str
    result_code: str | None = None
    result_desc: str | None = None
    amount: Any = None
    mpesa_receipt_number: str | None = None
    phone_number: Any = None
    transaction_date: Any = None
    source: str
    created_at: int
    updated_at: int


class PaymentOutcomeOut(PaymentOutcomeCreate):
    id: str | None = Field(default=None, alias="_id")

    @model_validator(mode="before")
    @classmethod
    def convert_objectid(cls, values):
        if isinstance(values, dict) and "_id" in values and isinstance(values["_id"], ObjectId):
            values["_id"] = str(values["_id"])
        return values
