"""Tests for metrics recording and logging setup."""

import pytest
from prometheus_client import REGISTRY
from sqlalchemy.ext.asyncio import AsyncSession

from idempotent_publish.core.codec import HttpResponse
from idempotent_publish.core.coordinator import IdempotencyCoordinator
from idempotent_publish.models import IdempotencyKey
from idempotent_publish.observability import (
    configure_logging,
    get_logger,
    record_claim,
    record_publish,
    record_purge,
    record_saved_response,
)


def sample(name: str, labels: dict[str, str] | None = None) -> float:
    return REGISTRY.get_sample_value(name, labels or {}) or 0.0


class TestMetrics:
    def test_record_claim(self) -> None:
        before = sample("idempotency_claims_total", {"outcome": "timeout"})
        record_claim("timeout", 1.5)
        assert sample("idempotency_claims_total", {"outcome": "timeout"}) == before + 1

    def test_record_saved_response(self) -> None:
        before = sample("idempotency_saved_responses_total", {"status_code": "201"})
        record_saved_response(201)
        assert sample("idempotency_saved_responses_total", {"status_code": "201"}) == before + 1

    def test_record_publish(self) -> None:
        issues = sample("newsletter_issues_published_total")
        entries = sample("newsletter_outbox_entries_enqueued_total")

        record_publish(4)

        assert sample("newsletter_issues_published_total") == issues + 1
        assert sample("newsletter_outbox_entries_enqueued_total") == entries + 4

    def test_record_purge(self) -> None:
        before = sample("idempotency_ledger_purged_total")
        record_purge(3)
        assert sample("idempotency_ledger_purged_total") == before + 3

    @pytest.mark.asyncio
    async def test_coordinator_reports_start_and_replay(
        self, coordinator: IdempotencyCoordinator, sample_response: HttpResponse
    ) -> None:
        started = sample("idempotency_claims_total", {"outcome": "start"})
        replayed = sample("idempotency_claims_total", {"outcome": "replay"})

        async def action(transaction: AsyncSession) -> HttpResponse:
            return sample_response

        key = IdempotencyKey.parse("metrics")
        await coordinator.execute("admin", key, action)
        await coordinator.execute("admin", key, action)

        assert sample("idempotency_claims_total", {"outcome": "start"}) == started + 1
        assert sample("idempotency_claims_total", {"outcome": "replay"}) == replayed + 1


class TestLogging:
    def test_configure_and_log(self) -> None:
        configure_logging(level="DEBUG", json_output=True)
        logger = get_logger("tests")

        logger.info("test.event", caller_id="admin")
