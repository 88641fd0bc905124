"""
Structured logging for the parking engine.

JSON output for production, console output for development. Every HTTP
request carries a correlation ID, and the session workflows bind the plate
and spot being worked on so entry and exit logs can be followed end to end.
"""

import logging
import sys
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any

import structlog
from structlog.types import Processor

from parkflow.core.config import get_settings

correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")

NOISY_LOGGERS = ("uvicorn", "uvicorn.access", "sqlalchemy.engine", "aiosqlite")


def get_correlation_id() -> str:
    """Return the correlation ID of the current request context."""
    return correlation_id_var.get()


def set_correlation_id(correlation_id: str | None = None) -> str:
    """
    Set correlation ID for the current request context.

    Args:
        correlation_id: Optional existing correlation ID. If None, generates new one.

    Returns:
        str: The correlation ID that was set.
    """
    cid = correlation_id or str(uuid.uuid4())
    correlation_id_var.set(cid)
    return cid


@contextmanager
def bound_context(**fields: Any) -> Iterator[None]:
    """
    Bind fields to every log line emitted inside the block.

    Example:
        >>> with bound_context(plate="ABC1234", spot_id="F1-R1-S4"):
        ...     logger.info("vehicle_entered")
    """
    with structlog.contextvars.bound_contextvars(**fields):
        yield


def add_correlation_id(
    logger: logging.Logger,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Structlog processor that adds the correlation ID when one is set."""
    correlation_id = get_correlation_id()
    if correlation_id:
        event_dict["correlation_id"] = correlation_id
    return event_dict


def drop_color_message_key(
    logger: logging.Logger,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Remove the color_message key uvicorn attaches to its records."""
    event_dict.pop("color_message", None)
    return event_dict


def setup_logging() -> None:
    """
    Configure structlog and the standard library root logger.

    Called once at application startup. Third-party loggers are capped at
    WARNING so engine events stay readable.
    """
    settings = get_settings()

    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    common_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        add_correlation_id,
        drop_color_message_key,
    ]

    if settings.log_format == "json":
        processors: list[Processor] = [
            *common_processors,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = [
            *common_processors,
            structlog.dev.ConsoleRenderer(colors=True),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=log_level,
    )

    for logger_name in NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Optional logger name. Defaults to caller's module name.

    Returns:
        BoundLogger: Configured structlog logger instance.

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.info("payment_settled", ticket_id="T-ABC1234-1f2e", total="25.00")
    """
    return structlog.get_logger(name)
