"""Observability utilities for idempotent publishing.

This package provides monitoring and debugging capabilities:
- Prometheus metrics for claim outcomes, waits and outbox volume
- Structured logging with caller and key context
"""

from idempotent_publish.observability.logging import configure_logging, get_logger
from idempotent_publish.observability.metrics import (
    record_claim,
    record_publish,
    record_purge,
    record_saved_response,
)

__all__ = [
    "configure_logging",
    "get_logger",
    "record_claim",
    "record_saved_response",
    "record_publish",
    "record_purge",
]
