"""
Logging configuration using structlog for structured, JSON-based logging.

This module provides centralized logging setup for ci-trigger, with support
for contextual logging and structured output.
"""

import logging
import sys
from typing import Any

import structlog


def configure_logging(log_level: str = "INFO", json_output: bool = True) -> None:
    """Configure structured logging.

    Sets up structlog with a pipeline of processors for structured logs
    that include timestamps, log levels, stack traces, and contextual information.

    Args:
        log_level: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: Render JSON lines when True, human-readable console output otherwise
    """
    renderer: Any = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, log_level.upper(), logging.INFO)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(sys.stderr),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None, **context: Any) -> Any:
    """Get a logger instance, optionally bound to initial context.

    Args:
        name: Optional logger name (typically __name__ from calling module)
        **context: Key/value pairs bound to every event from this logger

    Returns:
        A structlog logger instance

    Example:
        >>> log = get_logger(__name__, caller="get_ref_for_branch_name")
        >>> log.info("github_request", route="GET /repos/{owner}/{repo}")
    """
    logger = structlog.get_logger(name)
    return logger.bind(**context) if context else logger
