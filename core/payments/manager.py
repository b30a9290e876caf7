from __future__ import annotations

import asyncio
import logging
import time
from threading import Lock
from typing import Callable

from core.payments.daraja_provider import DarajaPaymentProvider
from core.payments.poller import PollSchedule, StatusPoller
from core.payments.provider import PushPaymentProvider
from core.payments.session import PaymentSession
from core.payments.test_environment_provider import FakePushPaymentProvider
from core.settings import Settings, get_settings

logger = logging.getLogger(__name__)

DEFAULT_SESSION_RETENTION_SECONDS = 900.0


class PaymentManager:
    """Process-wide registry of payment sessions and their pollers.

    Finished sessions stay readable for ``retention_seconds`` after they
    resolve and are swept out when the next session is created.
    """

    _instance: "PaymentManager | None" = None
    _lock = Lock()

    def __init__(
        self,
        provider: PushPaymentProvider,
        schedule: PollSchedule | None = None,
        *,
        retention_seconds: float = DEFAULT_SESSION_RETENTION_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._provider = provider
        self._schedule = schedule or PollSchedule()
        self._retention_seconds = retention_seconds
        self._clock = clock
        self._sessions: dict[str, PaymentSession] = {}
        self._pollers: dict[str, StatusPoller] = {}
        self._by_checkout_id: dict[str, str] = {}
        self._registry_lock = Lock()

    @staticmethod
    def build_provider(settings: Settings) -> PushPaymentProvider:
        if settings.mpesa_environment == "test":
            return FakePushPaymentProvider()

        base_url = settings.mpesa_base_url
        if base_url is None:
            raise RuntimeError(f"Unsupported MPESA_ENVIRONMENT '{settings.mpesa_environment}'")
        return DarajaPaymentProvider(
            base_url=base_url,
            consumer_key=settings.mpesa_consumer_key or "",
            consumer_secret=settings.mpesa_consumer_secret or "",
            business_short_code=settings.mpesa_business_short_code,
            passkey=settings.mpesa_passkey,
            callback_url=settings.mpesa_callback_url,
            cache_token=settings.mpesa_token_cache,
        )

    @classmethod
    def configure(
        cls,
        provider: PushPaymentProvider,
        schedule: PollSchedule | None = None,
        *,
        retention_seconds: float = DEFAULT_SESSION_RETENTION_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> "PaymentManager":
        with cls._lock:
            cls._instance = cls(
                provider=provider,
                schedule=schedule,
                retention_seconds=retention_seconds,
                clock=clock,
            )
            return cls._instance

    @classmethod
    def configure_from_settings(cls) -> "PaymentManager":
        settings = get_settings()
        schedule = PollSchedule(
            initial_delay=settings.poll_initial_delay_seconds,
            interval=settings.poll_interval_seconds,
            error_interval=settings.poll_error_interval_seconds,
            max_attempts=settings.poll_max_attempts,
        )
        return cls.configure(
            cls.build_provider(settings),
            schedule,
            retention_seconds=settings.session_retention_seconds,
        )

    @classmethod
    def get_instance(cls) -> "PaymentManager":
        if cls._instance is None:
            return cls.configure_from_settings()
        return cls._instance

    @classmethod
    def is_configured(cls) -> bool:
        return cls._instance is not None

    @classmethod
    def reset(cls) -> None:
        with cls._lock:
            cls._instance = None

    @property
    def provider(self) -> PushPaymentProvider:
        return self._provider

    @property
    def schedule(self) -> PollSchedule:
        return self._schedule

    def __len__(self) -> int:
        return len(self._sessions)

    def new_session(self) -> PaymentSession:
        self.evict_expired()
        session = PaymentSession(clock=self._clock)
        with self._registry_lock:
            self._sessions[session.session_id] = session
        return session

    def get_session(self, session_id: str) -> PaymentSession | None:
        return self._sessions.get(session_id)

    def find_by_checkout_id(self, checkout_request_id: str) -> PaymentSession | None:
        session_id = self._by_checkout_id.get(checkout_request_id)
        if session_id is None:
            return None
        return self._sessions.get(session_id)

    def track_pending(self, session: PaymentSession, poller: StatusPoller) -> None:
        if session.checkout_request_id is None:
            raise ValueError("Only pending sessions can be tracked by checkout request id")
        with self._registry_lock:
            self._by_checkout_id[session.checkout_request_id] = session.session_id
            self._pollers[session.session_id] = poller

    def _remove(self, session_id: str) -> tuple[PaymentSession | None, StatusPoller | None]:
        with self._registry_lock:
            session = self._sessions.pop(session_id, None)
            poller = self._pollers.pop(session_id, None)
            if session is not None and session.checkout_request_id:
                self._by_checkout_id.pop(session.checkout_request_id, None)
        return session, poller

    def evict_expired(self) -> int:
        now = self._clock()
        expired = [
            session.session_id
            for session in list(self._sessions.values())
            if session.resolved_at is not None and now - session.resolved_at >= self._retention_seconds
        ]
        for session_id in expired:
            self._remove(session_id)
        if expired:
            logger.debug("payment_sessions_evicted count=%s", len(expired))
        return len(expired)

    def discard(self, session_id: str) -> PaymentSession | None:
        session, poller = self._remove(session_id)
        if poller is not None:
            poller.stop()
        elif session is not None:
            session.abandon()
        return session

    async def shutdown(self) -> None:
        tasks = []
        for session_id in list(self._sessions):
            poller = self._pollers.get(session_id)
            if poller is not None and poller.task is not None:
                tasks.append(poller.task)
            self.discard(session_id)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
