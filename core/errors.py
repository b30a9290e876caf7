from __future__ import annotations

from enum import Enum
from typing import Any

from fastapi import HTTPException, status


class ErrorCode(str, Enum):
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    PAYMENT_PROVIDER_ERROR = "PAYMENT_PROVIDER_ERROR"
    PAYMENT_PROVIDER_AUTH_FAILED = "PAYMENT_PROVIDER_AUTH_FAILED"
    PAYMENT_PROVIDER_BAD_REQUEST = "PAYMENT_PROVIDER_BAD_REQUEST"
    PAYMENT_PROVIDER_UNAVAILABLE = "PAYMENT_PROVIDER_UNAVAILABLE"
    PAYMENT_PROVIDER_TRANSPORT = "PAYMENT_PROVIDER_TRANSPORT"
    PAYMENT_NOT_CONFIGURED = "PAYMENT_NOT_CONFIGURED"


class AppException(HTTPException):
    def __init__(
        self,
        *,
        status_code: int,
        code: ErrorCode,
        message: str,
        details: Any | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        detail = {
            "message": message,
            "code": code.value,
            "details": details,
        }
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.code = code
        self.message = message


class PaymentError(AppException):
    """Base class for failures raised by the payment core.

    ``provider_message`` keeps the provider's raw error text for server-side
    logging; ``message`` is what callers may show to a user.
    """

    status_code_default = status.HTTP_502_BAD_GATEWAY
    code_default = ErrorCode.PAYMENT_PROVIDER_ERROR

    def __init__(
        self,
        message: str,
        *,
        provider_message: str | None = None,
        details: Any | None = None,
    ) -> None:
        super().__init__(
            status_code=self.status_code_default,
            code=self.code_default,
            message=message,
            details=details,
        )
        self.provider_message = provider_message

    def __str__(self) -> str:
        if self.provider_message:
            return f"{self.message}: {self.provider_message}"
        return self.message


class ValidationError(PaymentError):
    status_code_default = status.HTTP_422_UNPROCESSABLE_ENTITY
    code_default = ErrorCode.VALIDATION_FAILED


class AuthError(PaymentError):
    code_default = ErrorCode.PAYMENT_PROVIDER_AUTH_FAILED


class BadRequestError(PaymentError):
    code_default = ErrorCode.PAYMENT_PROVIDER_BAD_REQUEST


class ProviderUnavailableError(PaymentError):
    status_code_default = status.HTTP_503_SERVICE_UNAVAILABLE
    code_default = ErrorCode.PAYMENT_PROVIDER_UNAVAILABLE


class TransportError(PaymentError):
    status_code_default = status.HTTP_504_GATEWAY_TIMEOUT
    code_default = ErrorCode.PAYMENT_PROVIDER_TRANSPORT


class UnknownProviderError(PaymentError):
    def __init__(self, message: str, *, result_code: str, provider_message: str | None = None) -> None:
        super().__init__(message, provider_message=provider_message, details={"result_code": result_code})
        self.result_code = result_code


def payments_not_configured(details: Any | None = None) -> AppException:
    return AppException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        code=ErrorCode.PAYMENT_NOT_CONFIGURED,
        message="M-Pesa service is temporarily unavailable. Please try again later.",
        details=details,
    )


def resource_not_found(resource: str, resource_id: str | None = None) -> AppException:
    details = {"resource": resource}
    if resource_id:
        details["resource_id"] = resource_id
    return AppException(
        status_code=status.HTTP_404_NOT_FOUND,
        code=ErrorCode.RESOURCE_NOT_FOUND,
        message=f"{resource} not found",
        details=details,
    )
