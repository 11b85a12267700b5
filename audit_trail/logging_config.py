"""
Audit Trail Logging
===================
Structured logging setup for services embedding the audit trail.

Usage:
    from audit_trail.logging_config import setup_logging

    setup_logging(service_name="order-service")
"""

import logging
import sys
from typing import Any, List

import structlog

EMERGENCY_LOGGER_NAME = "audit_trail.emergency"


def setup_logging(
    service_name: str,
    level: str = "INFO",
    json_output: bool = True,
) -> None:
    """
    Configure structlog for a service.

    Args:
        service_name: Name of the service, bound to every log line
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: JSON lines for production, console rendering otherwise
    """
    level_num = getattr(logging, level.upper(), logging.INFO)

    processors: List[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=False))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level_num),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(sys.stdout),
        cache_logger_on_first_use=False,
    )

    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(service=service_name)

    structlog.get_logger(__name__).info(
        "logging_configured",
        configured_level=logging.getLevelName(level_num),
    )


def get_emergency_logger() -> Any:
    """Logger for the emergency audit backup channel."""
    return structlog.get_logger(EMERGENCY_LOGGER_NAME)
