"""
Structured Logging with Structlog.

Provides JSON-formatted logs with service context.

The library only emits events through `get_logger`; it never configures
logging itself. Applications embedding the verifier call `setup_logging()`
once at startup, before the first verification.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor

from iap_receipts.config import settings


def add_app_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Add application-level context to all log entries."""
    event_dict["service"] = settings.service_name
    event_dict["version"] = settings.service_version
    return event_dict


def setup_logging(log_level: str | None = None, log_format: str | None = None) -> None:
    """
    Configure structured logging with structlog.

    `log_level` and `log_format` default to LOG_LEVEL and LOG_FORMAT from settings.

    Logs are formatted as JSON for machine parsing with the following structure:
    {
        "event": "apple_receipt_verified",
        "level": "info",
        "timestamp": "2025-01-08T12:00:00.123456Z",
        "logger": "iap_receipts.services.apple_receipt_verifier",
        "service": "iap-receipts",
        "version": "0.1.0",
        ...additional context
    }
    """
    level = log_level or settings.log_level
    renderer = log_format or settings.log_format
    if renderer not in ("json", "console"):
        raise ValueError(f"Unknown log format: {renderer}")

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.upper()),
    )

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_app_context,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if renderer == "json":
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
    """
    Get a structured logger instance.

    Usage:
        logger = get_logger(__name__)
        logger.info("apple_receipt_verified", status=0, environment="Sandbox")
    """
    return structlog.get_logger(name)  # type: ignore[no-any-return]


class log_context:
    """
    Context manager for adding structured logging context.

    Usage:
        with log_context(verify_url="https://sandbox.itunes.apple.com/verifyReceipt"):
            logger.info("apple_receipt_verification_started")
    """

    def __init__(self, **kwargs: Any) -> None:
        self.context = kwargs

    def __enter__(self) -> None:
        """Enter context - bind context variables."""
        structlog.contextvars.bind_contextvars(**self.context)

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Exit context - clear context variables."""
        structlog.contextvars.unbind_contextvars(*self.context.keys())
