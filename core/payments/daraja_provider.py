from __future__ import annotations

import base64
import logging
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Callable

import requests
from fastapi.concurrency import run_in_threadpool

from core.errors import (
    AuthError,
    BadRequestError,
    ProviderUnavailableError,
    TransportError,
    ValidationError,
)
from core.payments.provider import PushPaymentProvider
from core.payments.result_codes import normalize_result_code
from core.payments.types import (
    AccessToken,
    PaymentRequest,
    StkPushAcknowledgement,
    StkQueryResult,
)
from core.payments.validation import (
    truncate_description,
    truncate_reference,
    validate_payment_request,
)

logger = logging.getLogger(__name__)

TOKEN_TIMEOUT_SECONDS = 30
PUSH_TIMEOUT_SECONDS = 60
QUERY_TIMEOUT_SECONDS = 30
TRANSACTION_TYPE = "CustomerPayBillOnline"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _json_or_none(response: requests.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


class DarajaPaymentProvider(PushPaymentProvider):
    """Safaricom Daraja client for Lipa na M-Pesa Online (STK Push)."""

    provider_name = "mpesa"

    _EP_AUTH = "/oauth/v1/generate"
    _EP_STK_PUSH = "/mpesa/stkpush/v1/processrequest"
    _EP_STK_QUERY = "/mpesa/stkpushquery/v1/query"

    def __init__(
        self,
        *,
        base_url: str,
        consumer_key: str,
        consumer_secret: str,
        business_short_code: str,
        passkey: str,
        callback_url: str,
        cache_token: bool = True,
        session: requests.Session | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if not consumer_key or not consumer_secret:
            raise RuntimeError("Missing M-Pesa credentials. Set MPESA_CONSUMER_KEY and MPESA_CONSUMER_SECRET.")

        self._base_url = base_url.rstrip("/")
        self._consumer_key = consumer_key
        self._consumer_secret = consumer_secret
        self._business_short_code = business_short_code
        self._passkey = passkey
        self._callback_url = callback_url
        self._cache_token = cache_token
        self._session = session or requests.Session()
        self._clock = clock
        self._token: AccessToken | None = None
        self._token_lock = Lock()

    def _generate_password(self) -> tuple[str, str]:
        timestamp = self._clock().strftime("%Y%m%d%H%M%S")
        raw = f"{self._business_short_code}{self._passkey}{timestamp}"
        return timestamp, base64.b64encode(raw.encode("utf-8")).decode("ascii")

    def _fetch_access_token(self) -> AccessToken:
        credentials = f"{self._consumer_key}:{self._consumer_secret}".encode("utf-8")
        try:
            response = self._session.get(
                f"{self._base_url}{self._EP_AUTH}",
                params={"grant_type": "client_credentials"},
                headers={
                    "Authorization": f"Basic {base64.b64encode(credentials).decode('ascii')}",
                    "Content-Type": "application/json",
                },
                timeout=TOKEN_TIMEOUT_SECONDS,
            )
        except requests.RequestException as err:
            logger.warning("mpesa_token_request_failed error=%s", err)
            raise AuthError("Failed to get access token", provider_message=str(err)) from err

        data = _json_or_none(response)
        if response.status_code >= 400 or not isinstance(data, dict) or not data.get("access_token"):
            provider_message = None
            if isinstance(data, dict):
                provider_message = data.get("error_description") or data.get("errorMessage")
            logger.warning(
                "mpesa_token_rejected status=%s provider_message=%s",
                response.status_code,
                provider_message,
            )
            raise AuthError("Failed to get access token", provider_message=provider_message)

        try:
            expires_in = int(data.get("expires_in") or 0)
        except (TypeError, ValueError):
            expires_in = 0
        return AccessToken(
            value=str(data["access_token"]),
            expires_in=expires_in,
            issued_at=self._clock().timestamp(),
        )

    def _access_token(self) -> AccessToken:
        if not self._cache_token:
            return self._fetch_access_token()

        with self._token_lock:
            now = self._clock().timestamp()
            if self._token is None or self._token.is_expired(now):
                self._token = self._fetch_access_token()
            return self._token

    def _invalidate_token(self) -> None:
        with self._token_lock:
            self._token = None

    def _post(self, path: str, body: dict[str, Any], *, timeout: int, context: str) -> dict[str, Any]:
        token = self._access_token()
        try:
            response = self._session.post(
                f"{self._base_url}{path}",
                json=body,
                headers={
                    "Authorization": f"Bearer {token.value}",
                    "Content-Type": "application/json",
                },
                timeout=timeout,
            )
        except requests.Timeout as err:
            logger.warning("mpesa_request_timeout context=%s error=%s", context, err)
            raise TransportError("Request to M-Pesa timed out", provider_message=str(err)) from err
        except requests.RequestException as err:
            logger.warning("mpesa_request_failed context=%s error=%s", context, err)
            raise TransportError("Unable to reach M-Pesa", provider_message=str(err)) from err

        data = _json_or_none(response)
        provider_message = data.get("errorMessage") if isinstance(data, dict) else None
        status_code = response.status_code

        if status_code >= 400:
            logger.warning(
                "mpesa_request_rejected context=%s status=%s provider_message=%s",
                context,
                status_code,
                provider_message or response.text,
            )
        if status_code == 400:
            raise BadRequestError("Invalid request: bad request parameters", provider_message=provider_message)
        if status_code == 401:
            self._invalidate_token()
            raise AuthError("Unauthorized: invalid credentials or expired token", provider_message=provider_message)
        if status_code >= 500:
            raise ProviderUnavailableError(
                "Safaricom server error. Please try again later.",
                provider_message=provider_message,
            )
        if status_code >= 400:
            raise TransportError(f"M-Pesa request failed with HTTP {status_code}", provider_message=provider_message)
        if not isinstance(data, dict):
            raise TransportError("Unexpected response from M-Pesa", provider_message=response.text[:200])
        return data

    def _push(self, request: PaymentRequest, phone_number: str) -> StkPushAcknowledgement:
        timestamp, password = self._generate_password()
        body = {
            "BusinessShortCode": int(self._business_short_code),
            "Password": password,
            "Timestamp": timestamp,
            "TransactionType": TRANSACTION_TYPE,
            "Amount": int(request.amount_minor),
            "PartyA": int(phone_number),
            "PartyB": int(self._business_short_code),
            "PhoneNumber": int(phone_number),
            "CallBackURL": self._callback_url,
            "AccountReference": truncate_reference(request.account_reference),
            "TransactionDesc": truncate_description(request.transaction_description),
        }
        logger.info(
            "stk_push_request phone=%s amount=%s reference=%s",
            phone_number,
            body["Amount"],
            body["AccountReference"],
        )

        data = self._post(self._EP_STK_PUSH, body, timeout=PUSH_TIMEOUT_SECONDS, context="stk_push")
        acknowledgement = StkPushAcknowledgement(
            merchant_request_id=data.get("MerchantRequestID"),
            checkout_request_id=data.get("CheckoutRequestID"),
            response_code=normalize_result_code(data.get("ResponseCode")) or "",
            response_description=data.get("ResponseDescription"),
            customer_message=data.get("CustomerMessage"),
            raw=data,
        )
        logger.info(
            "stk_push_response checkout_request_id=%s response_code=%s",
            acknowledgement.checkout_request_id,
            acknowledgement.response_code,
        )
        return acknowledgement

    def _query(self, checkout_request_id: str) -> StkQueryResult:
        timestamp, password = self._generate_password()
        body = {
            "BusinessShortCode": int(self._business_short_code),
            "Password": password,
            "Timestamp": timestamp,
            "CheckoutRequestID": checkout_request_id,
        }
        data = self._post(self._EP_STK_QUERY, body, timeout=QUERY_TIMEOUT_SECONDS, context="stk_query")
        return StkQueryResult(
            result_code=normalize_result_code(data.get("ResultCode")),
            result_desc=data.get("ResultDesc"),
            response_description=data.get("ResponseDescription"),
            merchant_request_id=data.get("MerchantRequestID"),
            checkout_request_id=data.get("CheckoutRequestID") or checkout_request_id,
            raw=data,
        )

    async def get_access_token(self) -> AccessToken:
        return await run_in_threadpool(self._access_token)

    async def initiate_push_payment(self, request: PaymentRequest) -> StkPushAcknowledgement:
        phone_number = validate_payment_request(request)
        return await run_in_threadpool(self._push, request, phone_number)

    async def query_push_payment_status(self, checkout_request_id: str) -> StkQueryResult:
        if not checkout_request_id or not str(checkout_request_id).strip():
            raise ValidationError("checkoutRequestId is required")
        return await run_in_threadpool(self._query, str(checkout_request_id).strip())
