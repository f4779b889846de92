"""Prometheus metrics for idempotent publishing.

Metrics include:

- Claim outcomes (start, replay, timeout, error)
- Claim latency, which includes time spent blocked behind a competing
  transaction on the same key
- Saved responses by status code
- Issues published and outbox rows enqueued
- Ledger retention purges

Examples:
    Recording a replayed claim::

        from idempotent_publish.observability.metrics import record_claim

        record_claim(outcome="replay", duration_seconds=0.004)
"""

from prometheus_client import Counter, Histogram

# Labels: outcome (start, replay, timeout, error)
claims_total = Counter(
    "idempotency_claims_total",
    "Total number of try_processing calls by outcome",
    ["outcome"],
)

claim_duration_seconds = Histogram(
    "idempotency_claim_duration_seconds",
    "Time spent in try_processing, including waits on competing claims",
    buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10, 30],
)

saved_responses_total = Counter(
    "idempotency_saved_responses_total",
    "Total number of responses committed to the ledger",
    ["status_code"],
)

issues_published_total = Counter(
    "newsletter_issues_published_total",
    "Total number of newsletter issues written",
)

outbox_entries_enqueued_total = Counter(
    "newsletter_outbox_entries_enqueued_total",
    "Total number of delivery rows written to the outbox",
)

ledger_purged_total = Counter(
    "idempotency_ledger_purged_total",
    "Total number of completed ledger rows removed by retention cleanup",
)


def record_claim(outcome: str, duration_seconds: float) -> None:
    """Record the outcome of a try_processing call.

    Args:
        outcome: One of start, replay, timeout, error
        duration_seconds: Wall time spent obtaining the outcome
    """
    claims_total.labels(outcome=outcome).inc()
    claim_duration_seconds.observe(duration_seconds)


def record_saved_response(status_code: int) -> None:
    """Record a response committed by save_response."""
    saved_responses_total.labels(status_code=str(status_code)).inc()


def record_publish(entries_enqueued: int) -> None:
    """Record a published issue and the number of outbox rows it produced.

    Args:
        entries_enqueued: Number of delivery rows inserted for the issue
    """
    issues_published_total.inc()
    outbox_entries_enqueued_total.inc(entries_enqueued)


def record_purge(records_removed: int) -> None:
    """Record a retention purge.

    Args:
        records_removed: Number of completed ledger rows deleted
    """
    ledger_purged_total.inc(records_removed)
