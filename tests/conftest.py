"""
Pytest configuration and shared fixtures for idempotent_publish tests.

Every test gets its own SQLite database file. SQLite serializes writers and
makes a conflicting writer wait on its busy timeout, which gives the claim
protocol the same blocking behaviour PostgreSQL provides per row.
"""

import uuid
from collections.abc import AsyncIterator
from pathlib import Path

import pytest
import pytest_asyncio
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from idempotent_publish.config import PublishConfig
from idempotent_publish.core.codec import HttpResponse
from idempotent_publish.core.coordinator import IdempotencyCoordinator
from idempotent_publish.storage.database import (
    create_engine,
    create_schema,
    create_session_factory,
)
from idempotent_publish.storage.schema import (
    CONFIRMED,
    PENDING_CONFIRMATION,
    IdempotencyRecord,
    IssueDeliveryQueue,
    NewsletterIssueRow,
    Subscription,
)


@pytest.fixture
def config(tmp_path: Path) -> PublishConfig:
    """Configuration pointing at a fresh SQLite file."""
    return PublishConfig(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'newsletter.db'}",
        claim_timeout_seconds=5,
        claim_retry_initial_ms=10,
        claim_retry_max_ms=100,
    )


@pytest_asyncio.fixture
async def engine(config: PublishConfig) -> AsyncIterator[AsyncEngine]:
    """Engine with the schema created."""
    engine = create_engine(config)
    await create_schema(engine)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def sessions(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(engine)


@pytest.fixture
def coordinator(
    sessions: async_sessionmaker[AsyncSession], config: PublishConfig
) -> IdempotencyCoordinator:
    return IdempotencyCoordinator(sessions, config)


@pytest.fixture
def sample_response() -> HttpResponse:
    """A redirect with a repeated header name, as the publish endpoint returns."""
    return HttpResponse(
        status=303,
        headers=[
            (b"content-length", b"0"),
            (b"location", b"/admin/newsletter"),
            (b"set-cookie", b"_flash=published; Path=/"),
            (b"set-cookie", b"theme=dark; Path=/"),
        ],
        body=b"",
    )


class DatabaseProbe:
    """Seeds subscribers and counts rows behind the code under test."""

    def __init__(self, sessions: async_sessionmaker[AsyncSession]) -> None:
        self.sessions = sessions

    async def add_subscriber(self, email: str, status: str = CONFIRMED) -> None:
        async with self.sessions() as session, session.begin():
            session.add(
                Subscription(
                    id=str(uuid.uuid4()),
                    email=email,
                    name=email.split("@")[0],
                    status=status,
                )
            )

    async def add_subscribers(self, confirmed: int, pending: int = 0) -> list[str]:
        """Insert confirmed and unconfirmed subscribers, returning confirmed emails."""
        emails = [f"reader{i}@example.com" for i in range(confirmed)]
        for email in emails:
            await self.add_subscriber(email, CONFIRMED)
        for i in range(pending):
            await self.add_subscriber(f"pending{i}@example.com", PENDING_CONFIRMATION)
        return emails

    async def count(self, model: type) -> int:
        async with self.sessions() as session:
            statement = select(func.count()).select_from(model)
            return (await session.execute(statement)).scalar_one()

    async def issues(self) -> int:
        return await self.count(NewsletterIssueRow)

    async def outbox(self) -> int:
        return await self.count(IssueDeliveryQueue)

    async def ledger(self) -> int:
        return await self.count(IdempotencyRecord)


@pytest.fixture
def db(sessions: async_sessionmaker[AsyncSession]) -> DatabaseProbe:
    return DatabaseProbe(sessions)
