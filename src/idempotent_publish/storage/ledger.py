"""Accessors for the idempotency ledger table.

These functions run inside a caller-supplied session and never commit or
roll back; the transaction boundary belongs to the coordinator. Driver
errors propagate as SQLAlchemy exceptions so the coordinator can tell a
lock timeout apart from other failures.
"""

from datetime import UTC, datetime

from sqlalchemy import and_, delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from idempotent_publish.models import ResponseSnapshot
from idempotent_publish.storage.database import insert_for
from idempotent_publish.storage.schema import IdempotencyRecord

_table = IdempotencyRecord.__table__


def _row_filter(caller_id: str, key: str):  # type: ignore[no-untyped-def]
    return and_(
        IdempotencyRecord.caller_id == caller_id,
        IdempotencyRecord.idempotency_key == key,
    )


async def insert_claim(session: AsyncSession, caller_id: str, key: str) -> bool:
    """Insert a claim row with no snapshot, doing nothing on conflict.

    If another open transaction holds the same key, this call blocks until
    that transaction finishes.

    Args:
        session: Session with an open transaction
        caller_id: Caller identity
        key: Raw idempotency key

    Returns:
        True if a row was inserted (this transaction owns the key),
        False if a row for the key already exists
    """
    statement = (
        insert_for(session, _table)
        .values(
            caller_id=caller_id,
            idempotency_key=key,
            created_at=datetime.now(UTC),
        )
        .on_conflict_do_nothing(index_elements=["caller_id", "idempotency_key"])
    )
    result = await session.execute(statement)
    return result.rowcount == 1


async def get_saved_response(
    session: AsyncSession, caller_id: str, key: str
) -> ResponseSnapshot | None:
    """Read the stored response snapshot for a key.

    Returns:
        The snapshot, or None if the row is absent or has no snapshot yet
    """
    statement = select(
        IdempotencyRecord.response_status_code,
        IdempotencyRecord.response_headers,
        IdempotencyRecord.response_body,
    ).where(_row_filter(caller_id, key))
    row = (await session.execute(statement)).one_or_none()

    if row is None or row.response_status_code is None:
        return None

    return ResponseSnapshot(
        status_code=row.response_status_code,
        headers_blob=row.response_headers or b"",
        body=row.response_body or b"",
    )


async def attach_response(
    session: AsyncSession, caller_id: str, key: str, snapshot: ResponseSnapshot
) -> int:
    """Populate the snapshot columns of a claimed row.

    Only rows whose snapshot is still absent are touched, so a completed
    record is never rewritten.

    Returns:
        Number of rows updated (1 on success)
    """
    statement = (
        update(IdempotencyRecord)
        .where(
            _row_filter(caller_id, key),
            IdempotencyRecord.response_status_code.is_(None),
        )
        .values(
            response_status_code=snapshot.status_code,
            response_headers=snapshot.headers_blob,
            response_body=snapshot.body,
        )
    )
    result = await session.execute(statement)
    return result.rowcount


async def purge_completed(session: AsyncSession, older_than: datetime) -> int:
    """Delete completed ledger rows created before ``older_than``.

    Rows without a snapshot belong to in-flight transactions and are kept.

    Returns:
        Number of rows deleted
    """
    statement = delete(IdempotencyRecord).where(
        IdempotencyRecord.created_at < older_than,
        IdempotencyRecord.response_status_code.is_not(None),
    )
    result = await session.execute(statement)
    return result.rowcount
