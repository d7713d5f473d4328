"""
Structured logging configuration using structlog.

Provides JSON-formatted logging with context processors for
timestamps and log levels, shared by the policy layer and the
cache engines.
"""
import logging
import os
import sys
from typing import Any, Optional

import structlog


def setup_logging(level: Optional[str] = None) -> None:
    """
    Configure structured logging with structlog.

    Args:
        level: Log level string (DEBUG, INFO, WARNING, ERROR, CRITICAL).
            Falls back to the LOG_LEVEL environment variable, then INFO.

    Sets up:
        - JSON output format for production
        - Console output with colors for development
        - Context processors for timestamps and metadata
        - Integration with standard library logging
    """
    level = level or os.getenv("LOG_LEVEL", "INFO")
    log_level = getattr(logging, level.upper(), logging.INFO)

    # Configure standard library logging
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=log_level,
    )

    is_dev = os.getenv("ENVIRONMENT", "production") == "development"

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]

    if is_dev:
        processors.append(structlog.dev.ConsoleRenderer())
    else:
        processors.append(structlog.processors.JSONRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = __name__) -> structlog.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (typically __name__ of calling module)

    Returns:
        Configured structlog logger instance

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.info("cache_policy_declared", service="UserService", method="find")
    """
    return structlog.get_logger(name)


def log_readthrough(
    service: str,
    method_key: str,
    cached: bool,
    duration_ms: float,
    error: Optional[str] = None,
    **extra: Any,
) -> None:
    """
    Log the outcome of a readthrough call in structured format.

    Args:
        service: Name of the service type
        method_key: RPC method that was invoked
        cached: Whether the call went through the cache engine
        duration_ms: Elapsed time in milliseconds
        error: Error message if the call failed
        **extra: Additional context to log
    """
    logger = get_logger("readthrough")

    log_data = {
        "service": service,
        "method": method_key,
        "cached": cached,
        "duration_ms": round(duration_ms, 2),
        "error": error,
        **extra,
    }

    if error:
        logger.error("readthrough_failed", **log_data)
    else:
        logger.debug("readthrough_completed", **log_data)
