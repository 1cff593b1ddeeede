"""
Logging Configuration

Structured logging setup shared by the API and the compiler.
JSON output for production, human-readable console output for development.
"""

import logging
import sys
from typing import Any, Optional, Union

import structlog

from ..config import LogFormat


_NOISY_LOGGERS = ("httpx", "httpcore", "urllib3", "asyncio", "twilio.http_client")


def setup_logging(
    level: str = "INFO",
    fmt: Union[LogFormat, str] = LogFormat.CONSOLE,
    service_name: Optional[str] = None,
) -> None:
    """
    Configure stdlib logging and structlog for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        fmt: Log format (json, console)
        service_name: Service name bound to every log entry
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    # Get root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger.addHandler(handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    if LogFormat(fmt) == LogFormat.JSON:
        renderer: Any = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    if service_name:
        structlog.contextvars.bind_contextvars(service=service_name)

    structlog.get_logger().info("Logging configured", level=level, format=LogFormat(fmt).value)


def bind_call_context(**values: Any) -> None:
    """Bind request-scoped values (call_sid, called number) to every log entry."""
    structlog.contextvars.bind_contextvars(**values)


def unbind_call_context(*keys: str) -> None:
    """Drop request-scoped values bound by bind_call_context."""
    structlog.contextvars.unbind_contextvars(*keys)


__all__ = [
    "setup_logging",
    "bind_call_context",
    "unbind_call_context",
]
