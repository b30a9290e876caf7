from __future__ import annotations

import os

# Settings are read when core.database is imported.
os.environ.setdefault("MPESA_ENVIRONMENT", "test")
os.environ.setdefault("MONGO_URL", "mongodb://localhost:27017")
os.environ.setdefault("DB_NAME", "loan_payments_test")

import pytest

from core.payments.manager import PaymentManager
from core.payments.poller import PollSchedule, StatusPoller
from core.payments.test_environment_provider import FakePushPaymentProvider


@pytest.fixture(autouse=True)
def _reset_payment_manager():
    PaymentManager.reset()
    yield
    PaymentManager.reset()


@pytest.fixture
def fake_provider() -> FakePushPaymentProvider:
    return FakePushPaymentProvider()


@pytest.fixture
def payment_manager(fake_provider: FakePushPaymentProvider) -> PaymentManager:
    return PaymentManager.configure(fake_provider, PollSchedule())


@pytest.fixture
def started_pollers(monkeypatch: pytest.MonkeyPatch) -> list[StatusPoller]:
    """Keep pollers from running in the background; tests drive ``run()`` themselves."""
    started: list[StatusPoller] = []
    monkeypatch.setattr(StatusPoller, "start", lambda self: started.append(self))
    return started


@pytest.fixture
def recorded_outcomes(monkeypatch: pytest.MonkeyPatch) -> list:
    outcomes: list = []

    async def _record(payload):
        outcomes.append(payload)
        return True

    monkeypatch.setattr("services.payment_service.record_payment_outcome", _record)
    return outcomes
