"""Core logic for idempotent publishing.

This package contains:
- Coordinator: the claim/replay protocol and transaction boundary
- Codec: response snapshot encoding for the ledger
- Publisher: issue creation and outbox enqueueing
- Cleanup: retention purge of completed ledger rows
"""

from idempotent_publish.core.codec import HttpResponse, decode, encode
from idempotent_publish.core.coordinator import (
    IdempotencyCoordinator,
    ProcessingResult,
    ReturnSavedResponse,
    StartProcessing,
)

__all__ = [
    "HttpResponse",
    "IdempotencyCoordinator",
    "ProcessingResult",
    "ReturnSavedResponse",
    "StartProcessing",
    "decode",
    "encode",
]
