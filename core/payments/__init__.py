from core.payments.manager import PaymentManager
from core.payments.poller import PollSchedule, StatusPoller
from core.payments.session import PaymentSession
from core.payments.types import (
    PaymentRequest,
    PaymentSessionStatus,
    PaymentStatusSnapshot,
    StkPushAcknowledgement,
    StkQueryResult,
    TransactionDetails,
    WebhookEnvelope,
)

__all__ = [
    "PaymentManager",
    "PaymentRequest",
    "PaymentSession",
    "PaymentSessionStatus",
    "PaymentStatusSnapshot",
    "PollSchedule",
    "StatusPoller",
    "StkPushAcknowledgement",
    "StkQueryResult",
    "TransactionDetails",
    "WebhookEnvelope",
]
