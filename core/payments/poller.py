from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

from core.errors import PaymentError, UnknownProviderError
from core.payments.provider import PushPaymentProvider
from core.payments.result_codes import SUCCESS_CODE, raise_for_result_code
from core.payments.session import PaymentSession
from core.payments.types import PaymentSessionStatus, PaymentStatusSnapshot, ResultOutcome

logger = logging.getLogger(__name__)

SUCCESS_MESSAGE = "Payment completed successfully! Your loan will be disbursed shortly."
TIMEOUT_MESSAGE = "Payment verification timed out. Please check your M-Pesa messages or contact support."
UNVERIFIED_MESSAGE = "Unable to verify payment status. Please check your M-Pesa messages."
PERSIST_ATTEMPTS = 3

SleepFunc = Callable[[float], Awaitable[None]]
ResolvedCallback = Callable[[PaymentStatusSnapshot], Awaitable[None]]


@dataclass(frozen=True)
class PollSchedule:
    initial_delay: float = 5.0
    interval: float = 10.0
    error_interval: float = 15.0
    max_attempts: int = 24


class StatusPoller:
    """Bounded status-query loop for one pending session.

    Waits ``initial_delay`` before the first query, then ``interval`` between
    queries, or ``error_interval`` after a query that failed in transport.
    Every query counts against ``max_attempts``; running out forces the
    session to ``timeout``, reported as unverified when the last query failed.
    A failed ``on_resolved`` call is retried up to ``PERSIST_ATTEMPTS`` times.
    """

    def __init__(
        self,
        *,
        provider: PushPaymentProvider,
        session: PaymentSession,
        schedule: PollSchedule | None = None,
        sleep: SleepFunc = asyncio.sleep,
        on_resolved: ResolvedCallback | None = None,
    ) -> None:
        self._provider = provider
        self._session = session
        self._schedule = schedule or PollSchedule()
        self._sleep = sleep
        self._on_resolved = on_resolved
        self._task: asyncio.Task | None = None
        self.attempts = 0
        self.next_delay = self._schedule.initial_delay
        self.elapsed_delay = 0.0

    @property
    def task(self) -> asyncio.Task | None:
        return self._task

    def _should_continue(self) -> bool:
        return self._session.is_live and not self._session.is_terminal

    def start(self) -> asyncio.Task:
        if self._task is None:
            self._task = asyncio.create_task(self.run(), name=f"payment-poller-{self._session.session_id}")
        return self._task

    def stop(self) -> None:
        self._session.abandon()
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def _query_outcome(self, checkout_request_id: str) -> ResultOutcome | None:
        try:
            result = await self._provider.query_push_payment_status(checkout_request_id)
        except PaymentError as err:
            logger.warning(
                "payment_poll_error session_id=%s attempt=%s error=%s",
                self._session.session_id,
                self.attempts,
                err,
            )
            return None
        except Exception:
            logger.exception(
                "payment_poll_unexpected_error session_id=%s attempt=%s",
                self._session.session_id,
                self.attempts,
            )
            return None

        try:
            return raise_for_result_code(result.result_code, result.result_desc)
        except UnknownProviderError as err:
            logger.warning(
                "payment_poll_unknown_result_code session_id=%s result_code=%s description=%s",
                self._session.session_id,
                err.result_code,
                err.provider_message,
            )
            return ResultOutcome(
                status=PaymentSessionStatus.FAILED,
                message=err.message,
                result_code=err.result_code,
                known=False,
            )

    async def _resolve(self, status: PaymentSessionStatus, message: str, result_code: str | None) -> None:
        if not self._session.resolve(status, message, result_code=result_code, source="poller"):
            return
        if self._on_resolved is None:
            return
        snapshot = self._session.snapshot()
        for attempt in range(1, PERSIST_ATTEMPTS + 1):
            try:
                await self._on_resolved(snapshot)
                return
            except Exception:
                logger.exception(
                    "payment_outcome_persist_failed session_id=%s attempt=%s/%s",
                    self._session.session_id,
                    attempt,
                    PERSIST_ATTEMPTS,
                )
            if attempt < PERSIST_ATTEMPTS:
                await self._sleep(self._schedule.error_interval)

    async def run(self) -> None:
        checkout_request_id = self._session.checkout_request_id
        if not checkout_request_id:
            raise RuntimeError("Polling requires a pending session with a checkout request id")

        last_query_failed = False
        while self.attempts < self._schedule.max_attempts:
            await self._sleep(self.next_delay)
            self.elapsed_delay += self.next_delay
            if not self._should_continue():
                return

            self.attempts += 1
            logger.debug(
                "payment_poll_attempt session_id=%s attempt=%s/%s",
                self._session.session_id,
                self.attempts,
                self._schedule.max_attempts,
            )
            outcome = await self._query_outcome(checkout_request_id)
            last_query_failed = outcome is None
            if outcome is None:
                self.next_delay = self._schedule.error_interval
                continue
            if outcome.status == PaymentSessionStatus.PENDING:
                self.next_delay = self._schedule.interval
                continue

            message = SUCCESS_MESSAGE if outcome.result_code == SUCCESS_CODE else outcome.message
            await self._resolve(outcome.status, message, outcome.result_code)
            return

        if self._should_continue():
            message = UNVERIFIED_MESSAGE if last_query_failed else TIMEOUT_MESSAGE
            await self._resolve(PaymentSessionStatus.TIMEOUT, message, None)
