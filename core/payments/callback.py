from __future__ import annotations

from typing import Any

from core.errors import ValidationError
from core.payments.result_codes import normalize_result_code
from core.payments.types import TransactionDetails, WebhookEnvelope

_DETAIL_ITEM_NAMES = {
    "Amount": "amount",
    "MpesaReceiptNumber": "mpesa_receipt_number",
    "PhoneNumber": "phone_number",
    "TransactionDate": "transaction_date",
}


def parse_stk_callback(payload: Any) -> WebhookEnvelope:
    """Read the ``Body.stkCallback`` document Safaricom posts to the callback URL."""
    body = payload.get("Body") if isinstance(payload, dict) else None
    stk_callback = body.get("stkCallback") if isinstance(body, dict) else None
    if not isinstance(stk_callback, dict):
        raise ValidationError("Callback payload is missing Body.stkCallback")

    checkout_request_id = stk_callback.get("CheckoutRequestID")
    result_code = normalize_result_code(stk_callback.get("ResultCode"))
    if not checkout_request_id or result_code is None:
        raise ValidationError(
            "Callback payload is missing CheckoutRequestID or ResultCode",
            details={"keys": sorted(stk_callback.keys())},
        )

    items: dict[str, Any] = {}
    metadata = stk_callback.get("CallbackMetadata")
    raw_items = metadata.get("Item") if isinstance(metadata, dict) else None
    if not isinstance(raw_items, list):
        raw_items = []
    for item in raw_items:
        if isinstance(item, dict) and item.get("Name"):
            items[str(item["Name"])] = item.get("Value")

    return WebhookEnvelope(
        merchant_request_id=stk_callback.get("MerchantRequestID"),
        checkout_request_id=str(checkout_request_id),
        result_code=result_code,
        result_desc=stk_callback.get("ResultDesc"),
        items=items,
    )


def extract_transaction_details(envelope: WebhookEnvelope) -> TransactionDetails:
    values = {field_name: envelope.items.get(item_name) for item_name, field_name in _DETAIL_ITEM_NAMES.items()}
    receipt = values["mpesa_receipt_number"]
    values["mpesa_receipt_number"] = str(receipt) if receipt is not None else None
    return TransactionDetails(**values)
