from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv

load_dotenv()

SUPPORTED_MPESA_ENVIRONMENTS = {"sandbox", "production", "test"}

MPESA_BASE_URLS = {
    "sandbox": "https://sandbox.safaricom.co.ke",
    "production": "https://api.safaricom.co.ke",
}

DEFAULT_BUSINESS_SHORT_CODE = "174379"
DEFAULT_SANDBOX_PASSKEY = "bfb279f9aa9bdbcf158e97dd71a467cd2e0c893059b10f78e6b72ada1ed2c919"

_TRUTHY = {"1", "true", "yes"}


def _split_csv(value: str | None) -> tuple[str, ...]:
    if not value:
        return tuple()
    return tuple(item.strip() for item in value.split(",") if item.strip())


def _env(name: str) -> str | None:
    raw_value = os.getenv(name)
    if raw_value is None:
        return None
    normalized = raw_value.strip()
    return normalized or None


def _flag(name: str, default: str) -> bool:
    return (_env(name) or default).lower() in _TRUTHY


def _mpesa_environment() -> str:
    return (_env("MPESA_ENVIRONMENT") or "sandbox").lower()


def collect_missing_required_env_vars() -> list[str]:
    missing: list[str] = []

    mpesa_environment = _mpesa_environment()
    if mpesa_environment != "test":
        for var_name in ("MPESA_CONSUMER_KEY", "MPESA_CONSUMER_SECRET"):
            if _env(var_name) is None:
                missing.append(var_name)

    if mpesa_environment == "production":
        for var_name in ("MPESA_PASSKEY", "MPESA_BUSINESS_SHORT_CODE", "MPESA_CALLBACK_URL"):
            if _env(var_name) is None:
                missing.append(var_name)

    return sorted(set(missing))


def collect_invalid_env_values() -> list[str]:
    invalid_values: list[str] = []

    if _mpesa_environment() not in SUPPORTED_MPESA_ENVIRONMENTS:
        invalid_values.append("MPESA_ENVIRONMENT must be one of: sandbox, production, test")

    short_code = _env("MPESA_BUSINESS_SHORT_CODE")
    if short_code is not None and not short_code.isdigit():
        invalid_values.append("MPESA_BUSINESS_SHORT_CODE must be numeric")

    callback_url = _env("MPESA_CALLBACK_URL")
    if callback_url is not None and not callback_url.startswith(("https://", "http://")):
        invalid_values.append("MPESA_CALLBACK_URL must be an absolute http(s) URL")

    for var_name in (
        "PAYMENT_POLL_INITIAL_DELAY_SECONDS",
        "PAYMENT_POLL_INTERVAL_SECONDS",
        "PAYMENT_POLL_ERROR_INTERVAL_SECONDS",
        "PAYMENT_SESSION_RETENTION_SECONDS",
    ):
        raw_value = _env(var_name)
        if raw_value is None:
            continue
        try:
            parsed = float(raw_value)
            if parsed <= 0:
                raise ValueError("must be positive")
        except ValueError:
            invalid_values.append(f"{var_name} must be a positive number")

    max_attempts = _env("PAYMENT_POLL_MAX_ATTEMPTS")
    if max_attempts is not None and (not max_attempts.isdigit() or int(max_attempts) == 0):
        invalid_values.append("PAYMENT_POLL_MAX_ATTEMPTS must be a positive integer")

    return invalid_values


def validate_required_environment() -> None:
    missing_vars = collect_missing_required_env_vars()
    invalid_values = collect_invalid_env_values()
    if not missing_vars and not invalid_values:
        return

    message_lines = ["Application startup blocked by invalid environment configuration."]
    if missing_vars:
        message_lines.append("")
        message_lines.append("Missing required environment variables:")
        message_lines.extend(f"- {name}" for name in missing_vars)
    if invalid_values:
        message_lines.append("")
        message_lines.append("Invalid environment values:")
        message_lines.extend(f"- {message}" for message in invalid_values)
    raise RuntimeError("\n".join(message_lines))


@dataclass(frozen=True)
class Settings:
    env: str
    cors_origins: tuple[str, ...]
    debug_include_error_details: bool
    log_level: str
    log_json: bool
    mongo_url: str
    db_name: str
    mpesa_environment: str
    mpesa_consumer_key: str | None
    mpesa_consumer_secret: str | None
    mpesa_business_short_code: str
    mpesa_passkey: str
    mpesa_callback_url: str
    mpesa_token_cache: bool
    poll_initial_delay_seconds: float
    poll_interval_seconds: float
    poll_error_interval_seconds: float
    poll_max_attempts: int
    session_retention_seconds: float

    @property
    def is_production(self) -> bool:
        return self.env.lower() == "production"

    @property
    def mpesa_base_url(self) -> str | None:
        return MPESA_BASE_URLS.get(self.mpesa_environment)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    validate_required_environment()

    return Settings(
        env=os.getenv("ENV", "development"),
        cors_origins=_split_csv(os.getenv("CORS_ORIGINS")),
        debug_include_error_details=_flag("DEBUG_INCLUDE_ERROR_DETAILS", "false"),
        log_level=(_env("LOG_LEVEL") or "INFO").upper(),
        log_json=_flag("LOG_JSON", "false"),
        mongo_url=_env("MONGO_URL") or "mongodb://localhost:27017",
        db_name=_env("DB_NAME") or "loan_payments",
        mpesa_environment=_mpesa_environment(),
        mpesa_consumer_key=_env("MPESA_CONSUMER_KEY"),
        mpesa_consumer_secret=_env("MPESA_CONSUMER_SECRET"),
        mpesa_business_short_code=_env("MPESA_BUSINESS_SHORT_CODE") or DEFAULT_BUSINESS_SHORT_CODE,
        mpesa_passkey=_env("MPESA_PASSKEY") or DEFAULT_SANDBOX_PASSKEY,
        mpesa_callback_url=_env("MPESA_CALLBACK_URL") or "",
        mpesa_token_cache=_flag("MPESA_TOKEN_CACHE", "true"),
        poll_initial_delay_seconds=float(_env("PAYMENT_POLL_INITIAL_DELAY_SECONDS") or 5),
        poll_interval_seconds=float(_env("PAYMENT_POLL_INTERVAL_SECONDS") or 10),
        poll_error_interval_seconds=float(_env("PAYMENT_POLL_ERROR_INTERVAL_SECONDS") or 15),
        poll_max_attempts=int(_env("PAYMENT_POLL_MAX_ATTEMPTS") or 24),
        session_retention_seconds=float(_env("PAYMENT_SESSION_RETENTION_SECONDS") or 900),
    )
