"""Database engine, session factory and dialect helpers.

The claim protocol relies on one property of the store: an
``INSERT ... ON CONFLICT DO NOTHING`` against a key held by another open
transaction blocks until that transaction commits or rolls back.
PostgreSQL does this natively under READ COMMITTED; SQLite does it through
its busy timeout, because the first write of a deferred transaction waits
for the database write lock.

Examples:
    Creating the engine and schema::

        from idempotent_publish.config import PublishConfig
        from idempotent_publish.storage.database import (
            create_engine,
            create_schema,
            create_session_factory,
        )

        config = PublishConfig.from_env()
        engine = create_engine(config)
        await create_schema(engine)
        sessions = create_session_factory(engine)
"""

from typing import Any

from sqlalchemy import Table
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from idempotent_publish.config import PublishConfig
from idempotent_publish.storage.schema import Base

# lock_not_available, raised when lock_timeout expires
PG_LOCK_NOT_AVAILABLE = "55P03"


def create_engine(config: PublishConfig, **kwargs: Any) -> AsyncEngine:
    """Build the async engine for the configured database.

    Args:
        config: Publishing configuration
        **kwargs: Extra keyword arguments for ``create_async_engine``

    Returns:
        A SQLAlchemy AsyncEngine
    """
    options: dict[str, Any] = {"pool_pre_ping": True}

    if config.database_url.startswith("sqlite"):
        # sqlite3 busy timeout: how long a conflicting writer waits for the lock
        options["connect_args"] = {"timeout": config.claim_timeout_seconds}
    else:
        options["pool_size"] = config.pool_size

    options.update(kwargs)
    return create_async_engine(config.database_url, **options)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create the session factory used for one-transaction-per-action sessions."""
    return async_sessionmaker(engine, expire_on_commit=False)


async def create_schema(engine: AsyncEngine) -> None:
    """Create all tables if they do not exist."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


def dialect_name(session: AsyncSession) -> str:
    """Return the dialect name ("postgresql", "sqlite", ...) of a session's bind."""
    bind = session.bind
    if bind is None:
        raise RuntimeError("Session is not bound to an engine")
    return bind.dialect.name


def insert_for(session: AsyncSession, table: Table) -> Any:
    """Return a dialect-specific INSERT that supports ``on_conflict_do_nothing``.

    Args:
        session: Session whose dialect selects the construct
        table: Target table

    Returns:
        A PostgreSQL or SQLite ``Insert`` construct

    Raises:
        RuntimeError: If the dialect has no ON CONFLICT support here
    """
    name = dialect_name(session)
    if name == "postgresql":
        return postgresql.insert(table)
    if name == "sqlite":
        return sqlite.insert(table)
    raise RuntimeError(f"Unsupported dialect for idempotency ledger: {name}")


def is_lock_timeout(exc: BaseException) -> bool:
    """Tell whether a driver error means "could not obtain the row/table lock".

    Args:
        exc: Exception raised by SQLAlchemy

    Returns:
        True for PostgreSQL lock_not_available and SQLite "database is locked"
    """
    if not isinstance(exc, DBAPIError):
        return False

    orig = exc.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate == PG_LOCK_NOT_AVAILABLE:
        return True

    return "database is locked" in str(orig).lower()
