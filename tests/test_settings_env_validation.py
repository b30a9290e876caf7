from __future__ import annotations

import pytest

from core import settings as settings_module

_MPESA_VARS = (
    "MPESA_ENVIRONMENT",
    "MPESA_CONSUMER_KEY",
    "MPESA_CONSUMER_SECRET",
    "MPESA_BUSINESS_SHORT_CODE",
    "MPESA_PASSKEY",
    "MPESA_CALLBACK_URL",
    "PAYMENT_POLL_INITIAL_DELAY_SECONDS",
    "PAYMENT_POLL_INTERVAL_SECONDS",
    "PAYMENT_POLL_ERROR_INTERVAL_SECONDS",
    "PAYMENT_POLL_MAX_ATTEMPTS",
    "PAYMENT_SESSION_RETENTION_SECONDS",
)


def _set_minimal_valid_env(monkeypatch: pytest.MonkeyPatch, environment: str = "sandbox") -> None:
    for key in _MPESA_VARS:
        monkeypatch.delenv(key, raising=False)
    values = {
        "MPESA_ENVIRONMENT": environment,
        "MPESA_CONSUMER_KEY": "consumer-key",
        "MPESA_CONSUMER_SECRET": "consumer-secret",
    }
    for key, value in values.items():
        monkeypatch.setenv(key, value)


def test_sandbox_needs_only_consumer_credentials(monkeypatch: pytest.MonkeyPatch):
    _set_minimal_valid_env(monkeypatch)

    assert settings_module.collect_missing_required_env_vars() == []
    assert settings_module.collect_invalid_env_values() == []


def test_missing_consumer_credentials_are_reported(monkeypatch: pytest.MonkeyPatch):
    _set_minimal_valid_env(monkeypatch)
    monkeypatch.delenv("MPESA_CONSUMER_SECRET")

    assert settings_module.collect_missing_required_env_vars() == ["MPESA_CONSUMER_SECRET"]


def test_test_environment_needs_no_credentials(monkeypatch: pytest.MonkeyPatch):
    _set_minimal_valid_env(monkeypatch, environment="test")
    monkeypatch.delenv("MPESA_CONSUMER_KEY")
    monkeypatch.delenv("MPESA_CONSUMER_SECRET")

    assert settings_module.collect_missing_required_env_vars() == []


def test_production_requires_its_own_shortcode_passkey_and_callback(monkeypatch: pytest.MonkeyPatch):
    _set_minimal_valid_env(monkeypatch, environment="production")

    missing = settings_module.collect_missing_required_env_vars()

    assert missing == ["MPESA_BUSINESS_SHORT_CODE", "MPESA_CALLBACK_URL", "MPESA_PASSKEY"]


def test_validate_required_environment_raises_with_missing_and_invalid_values(
    monkeypatch: pytest.MonkeyPatch,
):
    _set_minimal_valid_env(monkeypatch)
    monkeypatch.setenv("MPESA_ENVIRONMENT", "staging")
    monkeypatch.setenv("MPESA_BUSINESS_SHORT_CODE", "17A379")
    monkeypatch.setenv("PAYMENT_POLL_MAX_ATTEMPTS", "0")
    monkeypatch.delenv("MPESA_CONSUMER_KEY")

    with pytest.raises(RuntimeError) as exc_info:
        settings_module.validate_required_environment()

    message = str(exc_info.value)
    assert "Missing required environment variables" in message
    assert "- MPESA_CONSUMER_KEY" in message
    assert "Invalid environment values" in message
    assert "MPESA_ENVIRONMENT must be one of" in message
    assert "MPESA_BUSINESS_SHORT_CODE must be numeric" in message
    assert "PAYMENT_POLL_MAX_ATTEMPTS must be a positive integer" in message


def test_callback_url_must_be_absolute(monkeypatch: pytest.MonkeyPatch):
    _set_minimal_valid_env(monkeypatch)
    monkeypatch.setenv("MPESA_CALLBACK_URL", "/v1/payments/callback")

    assert settings_module.collect_invalid_env_values() == ["MPESA_CALLBACK_URL must be an absolute http(s) URL"]


def test_settings_defaults_for_sandbox(monkeypatch: pytest.MonkeyPatch):
    _set_minimal_valid_env(monkeypatch)
    settings_module.get_settings.cache_clear()
    try:
        settings = settings_module.get_settings()
    finally:
        settings_module.get_settings.cache_clear()

    assert settings.mpesa_base_url == "https://sandbox.safaricom.co.ke"
    assert settings.mpesa_business_short_code == "174379"
    assert settings.mpesa_token_cache is True
    assert settings.poll_initial_delay_seconds == 5
    assert settings.poll_interval_seconds == 10
    assert settings.poll_error_interval_seconds == 15
    assert settings.poll_max_attempts == 24
    assert settings.session_retention_seconds == 900


@pytest.mark.parametrize("raw_value", ["0.5", "2.0", "-3", "0", "ten"])
def test_max_attempts_must_be_a_whole_positive_number(monkeypatch: pytest.MonkeyPatch, raw_value: str):
    _set_minimal_valid_env(monkeypatch)
    monkeypatch.setenv("PAYMENT_POLL_MAX_ATTEMPTS", raw_value)

    assert settings_module.collect_invalid_env_values() == ["PAYMENT_POLL_MAX_ATTEMPTS must be a positive integer"]


def test_fractional_intervals_are_still_accepted(monkeypatch: pytest.MonkeyPatch):
    _set_minimal_valid_env(monkeypatch)
    monkeypatch.setenv("PAYMENT_POLL_INTERVAL_SECONDS", "0.5")
    monkeypatch.setenv("PAYMENT_POLL_MAX_ATTEMPTS", "3")
    monkeypatch.setenv("PAYMENT_SESSION_RETENTION_SECONDS", "60")
    settings_module.get_settings.cache_clear()
    try:
        settings = settings_module.get_settings()
    finally:
        settings_module.get_settings.cache_clear()

    assert settings.poll_interval_seconds == 0.5
    assert settings.poll_max_attempts == 3
    assert settings.session_retention_seconds == 60


def test_session_retention_must_be_positive(monkeypatch: pytest.MonkeyPatch):
    _set_minimal_valid_env(monkeypatch)
    monkeypatch.setenv("PAYMENT_SESSION_RETENTION_SECONDS", "0")

    assert settings_module.collect_invalid_env_values() == [
        "PAYMENT_SESSION_RETENTION_SECONDS must be a positive number"
    ]
