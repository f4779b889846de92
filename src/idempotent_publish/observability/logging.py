"""Structured logging configuration for idempotent publishing.

This module provides structured logging using structlog to emit
JSON-formatted logs with contextual information. Coordinator and writer
events carry the caller identity and idempotency key so that a claim,
its business writes and its saved response can be correlated.

Events emitted by the package:

- ``claim.started``, ``claim.replayed``, ``claim.waiting_retry``,
  ``claim.timeout``, ``claim.failed``, ``claim.rolled_back`` (coordinator)
- ``response.saved``, ``response.save_failed``, ``session.rollback_failed``
  (coordinator)
- ``issue.published``, ``delivery.invalid_recipients_skipped`` (publisher)
- ``outbox.invalid_entry_skipped`` (outbox reads)
- ``cleanup.started``, ``cleanup.completed``, ``cleanup.failed``,
  ``cleanup.stopped`` (retention task)
- ``key.rejected``, ``publish.failed`` (HTTP adapter)

Examples:
    Configure logging::

        from idempotent_publish.observability.logging import configure_logging

        configure_logging(level="INFO", json_output=True)

    Use the logger::

        from idempotent_publish.observability.logging import get_logger

        logger = get_logger(__name__)
        logger.info(
            "claim.replayed",
            caller_id="u1",
            idempotency_key="abc",
            status_code=303,
        )
"""

import logging
import sys
from typing import Any

import structlog


def configure_logging(
    level: str = "INFO",
    json_output: bool = True,
) -> None:
    """Configure structured logging for the application.

    This should be called once at application startup.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: If True, emit JSON logs; if False, use console format
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.upper()),
    )

    processors: list[object] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,  # type: ignore[arg-type]
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, level.upper())),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> Any:
    """Get a structured logger instance.

    Args:
        name: Logger name (typically __name__ from the calling module)

    Returns:
        A structlog logger instance
    """
    return structlog.get_logger(name)
