from __future__ import annotations

import base64
from datetime import datetime, timezone

import pytest
import requests

from core.errors import AuthError, BadRequestError, ProviderUnavailableError, TransportError, ValidationError
from core.payments.daraja_provider import DarajaPaymentProvider
from core.payments.types import PaymentRequest

PASSKEY = "bfb279f9aa9bdbcf158e97dd71a467cd2e0c893059b10f78e6b72ada1ed2c919"
FIXED_NOW = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)


class _Response:
    def __init__(self, status_code: int = 200, payload=None, text: str = "") -> None:
        self.status_code = status_code
        self._payload = payload
        self.text = text

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class _Session:
    def __init__(self) -> None:
        self.gets: list[dict] = []
        self.posts: list[dict] = []
        self.post_responses: list = []
        self.token_response = _Response(200, {"access_token": "token-1", "expires_in": "3599"})

    def get(self, url, **kwargs):
        self.gets.append({"url": url, **kwargs})
        return self.token_response

    def post(self, url, **kwargs):
        self.posts.append({"url": url, **kwargs})
        response = self.post_responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def _accepted(checkout_request_id: str = "ws_CO_1") -> _Response:
    return _Response(
        200,
        {
            "MerchantRequestID": "29115-34620561-1",
            "CheckoutRequestID": checkout_request_id,
            "ResponseCode": "0",
            "ResponseDescription": "Success. Request accepted for processing",
            "CustomerMessage": "Success. Request accepted for processing",
        },
    )


def _provider(session: _Session, *, cache_token: bool = True) -> DarajaPaymentProvider:
    return DarajaPaymentProvider(
        base_url="https://sandbox.safaricom.co.ke/",
        consumer_key="key",
        consumer_secret="secret",
        business_short_code="174379",
        passkey=PASSKEY,
        callback_url="https://example.com/v1/payments/callback",
        cache_token=cache_token,
        session=session,  # type: ignore[arg-type]
        clock=lambda: FIXED_NOW,
    )


def _request(**overrides) -> PaymentRequest:
    values = {
        "phone_number": "0712345678",
        "amount_minor": 105,
        "account_reference": "LOAN123",
        "transaction_description": "Fee",
    }
    values.update(overrides)
    return PaymentRequest(**values)


def test_missing_credentials_fail_construction():
    with pytest.raises(RuntimeError):
        DarajaPaymentProvider(
            base_url="https://sandbox.safaricom.co.ke",
            consumer_key="",
            consumer_secret="secret",
            business_short_code="174379",
            passkey=PASSKEY,
            callback_url="https://example.com/callback",
        )


@pytest.mark.asyncio
async def test_push_sends_signed_request_body():
    session = _Session()
    session.post_responses.append(_accepted())

    ack = await _provider(session).initiate_push_payment(_request())

    assert ack.accepted is True
    assert ack.checkout_request_id == "ws_CO_1"

    token_call = session.gets[0]
    assert token_call["url"] == "https://sandbox.safaricom.co.ke/oauth/v1/generate"
    assert token_call["params"] == {"grant_type": "client_credentials"}
    assert token_call["headers"]["Authorization"] == "Basic " + base64.b64encode(b"key:secret").decode()

    push_call = session.posts[0]
    assert push_call["url"] == "https://sandbox.safaricom.co.ke/mpesa/stkpush/v1/processrequest"
    assert push_call["headers"]["Authorization"] == "Bearer token-1"
    body = push_call["json"]
    expected_password = base64.b64encode(f"174379{PASSKEY}20240102030405".encode()).decode()
    assert body["Timestamp"] == "20240102030405"
    assert body["Password"] == expected_password
    assert body["TransactionType"] == "CustomerPayBillOnline"
    assert body["BusinessShortCode"] == 174379
    assert body["PartyB"] == 174379
    assert body["PartyA"] == 254712345678
    assert body["PhoneNumber"] == 254712345678
    assert body["Amount"] == 105
    assert body["CallBackURL"] == "https://example.com/v1/payments/callback"


@pytest.mark.asyncio
async def test_long_reference_and_description_are_truncated_silently():
    session = _Session()
    session.post_responses.append(_accepted())

    await _provider(session).initiate_push_payment(
        _request(account_reference="ABCDEFGHIJKLMNOPQRST", transaction_description="Loan verification fee")
    )

    body = session.posts[0]["json"]
    assert body["AccountReference"] == "ABCDEFGHIJKL"
    assert body["TransactionDesc"] == "Loan verifica"


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", [0, 150_001])
async def test_invalid_amount_never_reaches_the_network(amount: int):
    session = _Session()

    with pytest.raises(ValidationError):
        await _provider(session).initiate_push_payment(_request(amount_minor=amount))

    assert session.gets == []
    assert session.posts == []


@pytest.mark.asyncio
async def test_access_token_is_reused_until_expiry():
    session = _Session()
    session.post_responses.extend([_accepted("ws_CO_1"), _accepted("ws_CO_2")])
    provider = _provider(session)

    await provider.initiate_push_payment(_request())
    await provider.initiate_push_payment(_request())

    assert len(session.gets) == 1


@pytest.mark.asyncio
async def test_token_cache_can_be_disabled():
    session = _Session()
    session.post_responses.extend([_accepted("ws_CO_1"), _accepted("ws_CO_2")])
    provider = _provider(session, cache_token=False)

    await provider.initiate_push_payment(_request())
    await provider.initiate_push_payment(_request())

    assert len(session.gets) == 2


@pytest.mark.asyncio
async def test_token_failure_raises_auth_error():
    session = _Session()
    session.token_response = _Response(400, {"errorMessage": "Invalid credentials"})

    with pytest.raises(AuthError) as exc_info:
        await _provider(session).get_access_token()

    assert exc_info.value.message == "Failed to get access token"
    assert exc_info.value.provider_message == "Invalid credentials"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("response", "error_type", "status_code"),
    [
        (_Response(400, {"errorMessage": "Bad Request - Invalid PhoneNumber"}), BadRequestError, 502),
        (_Response(401, {"errorMessage": "Invalid Access Token"}), AuthError, 502),
        (_Response(500, {"errorMessage": "Internal Server Error"}), ProviderUnavailableError, 503),
        (_Response(503, None, text="<html>down</html>"), ProviderUnavailableError, 503),
        (_Response(404, None, text="not found"), TransportError, 504),
        (requests.Timeout("read timed out"), TransportError, 504),
        (requests.ConnectionError("connection refused"), TransportError, 504),
    ],
)
async def test_push_failures_map_to_error_taxonomy(response, error_type, status_code):
    session = _Session()
    session.post_responses.append(response)

    with pytest.raises(error_type) as exc_info:
        await _provider(session).initiate_push_payment(_request())

    assert exc_info.value.status_code == status_code


@pytest.mark.asyncio
async def test_provider_error_text_is_kept_separately_from_message():
    session = _Session()
    session.post_responses.append(_Response(400, {"errorMessage": "Bad Request - Invalid PhoneNumber"}))

    with pytest.raises(BadRequestError) as exc_info:
        await _provider(session).initiate_push_payment(_request())

    assert exc_info.value.message == "Invalid request: bad request parameters"
    assert exc_info.value.provider_message == "Bad Request - Invalid PhoneNumber"


@pytest.mark.asyncio
async def test_unauthorized_response_drops_cached_token():
    session = _Session()
    session.post_responses.extend([_Response(401, {"errorMessage": "Invalid Access Token"}), _accepted()])
    provider = _provider(session)

    with pytest.raises(AuthError):
        await provider.initiate_push_payment(_request())
    await provider.initiate_push_payment(_request())

    assert len(session.gets) == 2


@pytest.mark.asyncio
async def test_query_returns_result_code_and_description():
    session = _Session()
    session.post_responses.append(
        _Response(
            200,
            {
                "ResponseCode": "0",
                "ResponseDescription": "The service request has been accepted successfully",
                "MerchantRequestID": "22205-34066-1",
                "CheckoutRequestID": "ws_CO_1",
                "ResultCode": "1032",
                "ResultDesc": "Request cancelled by user",
            },
        )
    )

    result = await _provider(session).query_push_payment_status("ws_CO_1")

    assert result.result_code == "1032"
    assert result.result_desc == "Request cancelled by user"
    query_call = session.posts[0]
    assert query_call["url"].endswith("/mpesa/stkpushquery/v1/query")
    assert query_call["json"]["CheckoutRequestID"] == "ws_CO_1"
    assert query_call["json"]["Timestamp"] == "20240102030405"


@pytest.mark.asyncio
async def test_query_without_checkout_id_is_rejected():
    session = _Session()

    with pytest.raises(ValidationError):
        await _provider(session).query_push_payment_status("  ")

    assert session.posts == []
