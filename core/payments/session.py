from __future__ import annotations

import logging
import time
import uuid
from threading import Lock
from typing import Callable

from core.payments.types import (
    PaymentSessionStatus,
    PaymentStatusSnapshot,
    StkPushAcknowledgement,
    TransactionDetails,
)

logger = logging.getLogger(__name__)

PROCESSING_MESSAGE = "Initiating payment..."
PENDING_MESSAGE = "Payment request sent to your phone. Please check your phone and enter your M-Pesa PIN."


class PaymentSession:
    """Lifecycle of a single STK Push attempt.

    ``idle -> processing -> pending -> success | failed | cancelled | timeout``,
    with ``processing -> failed`` when the push call itself is refused.

    The poller and the callback handler both finish a session through
    :meth:`resolve`, which checks and sets the status under one lock with no
    suspension point in between. Whoever gets there first wins; later writes
    are dropped, whether they agree with the recorded outcome or not.
    """

    def __init__(self, *, session_id: str | None = None, clock: Callable[[], float] = time.monotonic) -> None:
        self.session_id = session_id or uuid.uuid4().hex
        self.created_at = int(time.time())
        self.resolved_at: float | None = None
        self._clock = clock
        self._lock = Lock()
        self._status = PaymentSessionStatus.IDLE
        self._message = ""
        self._result_code: str | None = None
        self._checkout_request_id: str | None = None
        self._merchant_request_id: str | None = None
        self._details: TransactionDetails | None = None
        self._resolved_by: str | None = None
        self._live = True

    @property
    def status(self) -> PaymentSessionStatus:
        return self._status

    @property
    def checkout_request_id(self) -> str | None:
        return self._checkout_request_id

    @property
    def is_terminal(self) -> bool:
        return self._status.is_terminal

    @property
    def is_live(self) -> bool:
        return self._live

    def begin_processing(self) -> None:
        with self._lock:
            if self._status != PaymentSessionStatus.IDLE:
                raise RuntimeError(f"Cannot start processing from '{self._status.value}'")
            self._status = PaymentSessionStatus.PROCESSING
            self._message = PROCESSING_MESSAGE

    def mark_pending(self, acknowledgement: StkPushAcknowledgement) -> None:
        if not acknowledgement.checkout_request_id:
            raise ValueError("A pending session needs a checkout request id")
        with self._lock:
            if self._status != PaymentSessionStatus.PROCESSING:
                raise RuntimeError(f"Cannot enter pending from '{self._status.value}'")
            self._status = PaymentSessionStatus.PENDING
            self._message = PENDING_MESSAGE
            self._checkout_request_id = acknowledgement.checkout_request_id
            self._merchant_request_id = acknowledgement.merchant_request_id
        logger.info(
            "payment_session_pending session_id=%s checkout_request_id=%s",
            self.session_id,
            self._checkout_request_id,
        )

    def fail_initiation(self, message: str, *, result_code: str | None = None) -> bool:
        return self.resolve(
            PaymentSessionStatus.FAILED,
            message,
            result_code=result_code,
            source="initiation",
        )

    def resolve(
        self,
        status: PaymentSessionStatus,
        message: str,
        *,
        result_code: str | None = None,
        details: TransactionDetails | None = None,
        source: str,
    ) -> bool:
        if not status.is_terminal:
            raise ValueError(f"'{status.value}' is not a terminal status")

        with self._lock:
            current = self._status
            if current.is_terminal:
                dropped = True
            elif current == PaymentSessionStatus.IDLE:
                raise RuntimeError("Cannot resolve a session that was never started")
            else:
                dropped = False
                self._status = status
                self._message = message
                self._result_code = result_code
                self._details = details
                self._resolved_by = source
                self.resolved_at = self._clock()

        if dropped:
            if current == status:
                logger.debug(
                    "payment_resolution_duplicate session_id=%s status=%s source=%s",
                    self.session_id,
                    status.value,
                    source,
                )
            else:
                logger.info(
                    "payment_resolution_dropped session_id=%s current=%s attempted=%s source=%s",
                    self.session_id,
                    current.value,
                    status.value,
                    source,
                )
            return False

        logger.info(
            "payment_session_resolved session_id=%s checkout_request_id=%s status=%s result_code=%s source=%s",
            self.session_id,
            self._checkout_request_id,
            status.value,
            result_code,
            source,
        )
        return True

    def abandon(self) -> None:
        self._live = False

    def snapshot(self) -> PaymentStatusSnapshot:
        with self._lock:
            return PaymentStatusSnapshot(
                session_id=self.session_id,
                status=self._status,
                message=self._message,
                result_code=self._result_code,
                checkout_request_id=self._checkout_request_id,
                merchant_request_id=self._merchant_request_id,
                resolved_by=self._resolved_by,
                details=self._details,
                created_at=self.created_at,
            )
