from __future__ import annotations

from typing import Any, Protocol

from core.payments.callback import parse_stk_callback
from core.payments.types import (
    AccessToken,
    PaymentRequest,
    StkPushAcknowledgement,
    StkQueryResult,
    WebhookEnvelope,
)


class PushPaymentProvider(Protocol):
    provider_name: str

    async def get_access_token(self) -> AccessToken:
        ...

    async def initiate_push_payment(self, request: PaymentRequest) -> StkPushAcknowledgement:
        ...

    async def query_push_payment_status(self, checkout_request_id: str) -> StkQueryResult:
        ...

    def parse_callback(self, payload: Any) -> WebhookEnvelope:
        # Daraja and the test provider share the Body.stkCallback shape.
        return parse_stk_callback(payload)
