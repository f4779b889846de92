"""Storage layer for idempotent publishing.

This package holds the relational schema (ledger, issues, subscriptions,
outbox), engine and session construction, and the ledger and outbox
accessors. Transactions are opened and finished by the coordinator; the
accessors only run statements inside them.
"""

from idempotent_publish.storage.database import (
    create_engine,
    create_schema,
    create_session_factory,
)
from idempotent_publish.storage.schema import (
    Base,
    IdempotencyRecord,
    IssueDeliveryQueue,
    NewsletterIssueRow,
    Subscription,
)

__all__ = [
    "Base",
    "IdempotencyRecord",
    "IssueDeliveryQueue",
    "NewsletterIssueRow",
    "Subscription",
    "create_engine",
    "create_schema",
    "create_session_factory",
]
