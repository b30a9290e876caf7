from __future__ import annotations

import inspect
from dataclasses import dataclass
from functools import wraps
from typing import Any, Callable

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from fastapi.routing import APIRoute
from starlette.responses import Response

_RESPONSE_DOC_ATTR = "__response_doc_config__"


@dataclass(frozen=True)
class ResponseDocConfig:
    message: str
    status_code: int
    description: str
    success_example: Any | None = None
    response_codes: dict[int, str] | None = None


def success_payload(data: Any, message: str = "Success", *, request_id: str | None = None) -> dict[str, Any]:
    payload: dict[str, Any] = {"success": True, "message": message, "data": data}
    if request_id:
        payload["requestId"] = request_id
    return payload


def error_payload(message: str, data: Any = None, *, request_id: str | None = None) -> dict[str, Any]:
    payload: dict[str, Any] = {"success": False, "message": message, "data": data}
    if request_id:
        payload["requestId"] = request_id
    return payload


def error_response(
    *,
    status_code: int,
    message: str,
    data: Any = None,
    headers: dict[str, str] | None = None,
    request_id: str | None = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        headers=headers,
        content=jsonable_encoder(error_payload(message=message, data=data, request_id=request_id)),
    )


def _parse_http_exception_detail(detail: Any) -> tuple[str, dict[str, Any]]:
    if isinstance(detail, dict) and isinstance(detail.get("message"), str) and detail["message"].strip():
        return detail["message"], {
            "code": detail.get("code", "HTTP_EXCEPTION"),
            "details": detail.get("details"),
        }
    if isinstance(detail, str) and detail.strip():
        return detail, {"code": "HTTP_EXCEPTION", "details": None}
    return "Request failed", {"code": "HTTP_EXCEPTION", "details": detail}


def _request_id(args: tuple[Any, ...], kwargs: dict[str, Any]) -> str | None:
    for value in (*kwargs.values(), *args):
        if isinstance(value, Request):
            return getattr(value.state, "request_id", None)
    return None


def http_exception_response(exc: HTTPException, request: Request | None = None) -> JSONResponse:
    message, data = _parse_http_exception_detail(exc.detail)
    return error_response(
        status_code=exc.status_code,
        message=message,
        data=data,
        request_id=getattr(request.state, "request_id", None) if request is not None else None,
        headers=exc.headers,
    )


def document_response(
    *,
    message: str = "Success",
    status_code: int = status.HTTP_200_OK,
    description: str = "Successful response",
    success_example: Any | None = None,
    response_codes: dict[int, str] | None = None,
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Wrap a route's return value in the success envelope and record its OpenAPI docs."""

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        config = ResponseDocConfig(
            message=message,
            status_code=status_code,
            description=description,
            success_example=success_example,
            response_codes=response_codes,
        )

        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Response:
            result = func(*args, **kwargs)
            if inspect.isawaitable(result):
                result = await result
            if isinstance(result, Response):
                return result

            return JSONResponse(
                status_code=status_code,
                content=jsonable_encoder(
                    success_payload(data=result, message=message, request_id=_request_id(args, kwargs))
                ),
            )

        setattr(wrapper, _RESPONSE_DOC_ATTR, config)
        return wrapper

    return decorator


def apply_response_documentation(app: FastAPI) -> None:
    updated = False

    for route in app.routes:
        if not isinstance(route, APIRoute):
            continue

        config = getattr(route.endpoint, _RESPONSE_DOC_ATTR, None)
        if not isinstance(config, ResponseDocConfig):
            continue

        route.status_code = config.status_code
        responses = dict(route.responses or {})

        entry = dict(responses.get(config.status_code, {}))
        entry.setdefault("description", config.description)
        entry.setdefault(
            "content",
            {"application/json": {"example": success_payload(data=config.success_example, message=config.message)}},
        )
        responses[config.status_code] = entry

        for code, code_description in (config.response_codes or {}).items():
            responses.setdefault(code, {"description": code_description})

        route.responses = responses
        updated = True

    if updated:
        app.openapi_schema = None
