"""Structured logging configuration using structlog."""

from __future__ import annotations

import logging
import sys
from contextvars import ContextVar
from typing import Any

import structlog
from structlog.types import EventDict, Processor

request_id_ctx: ContextVar[str] = ContextVar("request_id", default="")


def add_request_id(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Attach the current request id, when one is bound, to every log entry."""
    request_id = request_id_ctx.get("")
    if request_id:
        event_dict["request_id"] = request_id
    return event_dict


def add_app_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    event_dict["service"] = "loan-fee-payments"
    return event_dict


def configure_logging(*, level: str = "INFO", json_logs: bool = False) -> None:
    """
    Configure structlog and route stdlib ``logging`` through it.

    Args:
        level: Root log level name.
        json_logs: Render JSON lines instead of the coloured console format.
    """
    shared: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        add_request_id,
        add_app_context,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
    ]
    if json_logs:
        renderer: Processor = structlog.processors.JSONRenderer()
        timestamper = structlog.processors.TimeStamper(fmt="iso")
    else:
        renderer = structlog.dev.ConsoleRenderer()
        timestamper = structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S")

    structlog.configure(
        processors=[
            *shared,
            timestamper,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=[*shared, timestamper],
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level)

    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


__all__ = ["configure_logging", "request_id_ctx"]
