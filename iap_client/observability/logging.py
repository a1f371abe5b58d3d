"""
Structured Logging with Structlog.

Every module logs snake_case events through ``get_logger(__name__)``.
``setup_logging`` is for hosts without a logging setup of their own; it
renders JSON (or console) lines carrying the session context bound with
``log_context``.

Pay requests and receipts are bearer credentials, so the ``redact_tokens``
processor shortens them before any renderer sees them.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor

from iap_client.config import Settings, settings

TOKEN_FIELDS = frozenset({"token", "receipt", "jwt", "pay_request"})
TOKEN_PREFIX_LENGTH = 8


def add_app_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Add client-level context to all log entries."""
    event_dict["service"] = settings.service_name
    event_dict["version"] = settings.service_version
    return event_dict


def redact_tokens(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Replace token-valued fields with a short prefix and their length."""
    for key in TOKEN_FIELDS.intersection(event_dict):
        value = event_dict[key]
        if isinstance(value, str) and len(value) > TOKEN_PREFIX_LENGTH:
            event_dict[key] = f"{value[:TOKEN_PREFIX_LENGTH]}...({len(value)} chars)"
    return event_dict


def setup_logging(config: Settings | None = None) -> None:
    """
    Configure structlog on top of stdlib logging.

    A JSON line looks like:
    {
        "event": "purchase_session_settled",
        "level": "info",
        "timestamp": "2026-01-08T12:00:00.123456Z",
        "logger": "iap_client.services.purchase",
        "service": "iap-client",
        "version": "0.1.0",
        "product_id": "some-uuid",
        "outcome": "ok"
    }
    """
    config = config or settings
    level = config.log_level.upper()

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=getattr(logging, level))

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_app_context,
        redact_tokens,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.ExceptionRenderer()
        if level == "DEBUG"
        else structlog.processors.format_exc_info,
    ]

    if config.log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)  # type: ignore[no-any-return]


class log_context:
    """
    Bind structured context for the duration of a block.

    Usage:
        with log_context(product_id="some-uuid"):
            logger.info("purchase_started")
    """

    def __init__(self, **kwargs: Any) -> None:
        self.context = kwargs

    def __enter__(self) -> None:
        structlog.contextvars.bind_contextvars(**self.context)

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        structlog.contextvars.unbind_contextvars(*self.context)
