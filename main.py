from __future__ import annotations

import logging
import time
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from core.database import client
from core.logging_config import configure_logging, request_id_ctx
from core.payments.manager import PaymentManager
from core.response_envelope import (
    apply_response_documentation,
    document_response,
    error_response,
    http_exception_response,
)
from core.settings import get_settings
from core.validation_errors import format_validation_error_details

settings = get_settings()
configure_logging(level=settings.log_level, json_logs=settings.log_json or settings.is_production)
logger = logging.getLogger(__name__)


class RequestIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        token = request_id_ctx.set(request_id)
        try:
            response = await call_next(request)
        finally:
            request_id_ctx.reset(token)
        response.headers["X-Request-ID"] = request_id
        return response


class RequestTimingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start_time = time.time()
        response = await call_next(request)
        response.headers["X-Process-Time"] = str(time.time() - start_time)
        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        manager = PaymentManager.configure_from_settings()
        logger.info("payments_configured provider=%s", manager.provider.provider_name)
    except RuntimeError as err:
        # Payment routes answer 503 until provider credentials are configured.
        logger.error("payments_not_configured error=%s", err)
        manager = None

    try:
        yield
    finally:
        if manager is not None:
            await manager.shutdown()


app = FastAPI(lifespan=lifespan, title="Loan Verification Fee Payments API")
app.add_middleware(RequestIdMiddleware)
app.add_middleware(RequestTimingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_origins) if settings.cors_origins else ["http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(HTTPException)
async def custom_http_exception_handler(request: Request, exc: HTTPException):
    return http_exception_response(exc=exc, request=request)


@app.exception_handler(RequestValidationError)
async def custom_validation_exception_handler(request: Request, exc: RequestValidationError):
    return error_response(
        status_code=422,
        message="Validation error",
        data={"code": "VALIDATION_FAILED", "details": format_validation_error_details(exc.errors())},
        request_id=getattr(request.state, "request_id", None),
    )


@app.exception_handler(Exception)
async def custom_exception_handler(request: Request, exc: Exception):
    logger.exception("unhandled_exception path=%s", request.url.path)
    details = str(exc) if (settings.debug_include_error_details and not settings.is_production) else None
    return error_response(
        status_code=500,
        message="Internal Server Error",
        data={"code": "INTERNAL_ERROR", "details": details},
        request_id=getattr(request.state, "request_id", None),
    )


@app.get("/health", tags=["Health"])
@document_response(
    message="Health check completed",
    success_example={"status": "healthy", "services": {"mongo": {"status": "healthy"}}},
)
async def health_check():
    services: dict[str, dict[str, str | float]] = {}
    overall_status = "healthy"

    start = time.perf_counter()
    try:
        await client.admin.command("ping")
        services["mongo"] = {
            "status": "healthy",
            "latency_ms": round((time.perf_counter() - start) * 1000, 2),
            "message": "MongoDB ping successful",
        }
    except Exception as exc:
        overall_status = "degraded"
        services["mongo"] = {
            "status": "unhealthy",
            "latency_ms": round((time.perf_counter() - start) * 1000, 2),
            "message": str(exc),
        }

    services["payments"] = {
        "status": "healthy" if PaymentManager.is_configured() else "unhealthy",
        "latency_ms": 0,
        "message": f"MPESA_ENVIRONMENT={settings.mpesa_environment}",
    }
    if not PaymentManager.is_configured():
        overall_status = "degraded"

    return {
        "status": overall_status,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "services": services,
    }


# --- auto-routes-start ---
from api.v1.loans_route import router as v1_loans_route_router
from api.v1.payments_route import router as v1_payments_route_router

app.include_router(v1_loans_route_router, prefix='/v1')
app.include_router(v1_payments_route_router, prefix='/v1')
# --- auto-routes-end ---

apply_response_documentation(app)
