"""Retention purge background task for the idempotency ledger.

Completed ledger rows only need to live as long as clients may retry. This
module periodically deletes completed rows older than
``PublishConfig.retention_seconds``. Rows without a saved response belong to
transactions still in flight and are never touched here.

The cleanup task:
1. Runs at ``cleanup_interval_seconds`` intervals
2. Deletes old completed rows in its own short transaction
3. Reports metrics and logs for observability
4. Keeps running when a purge fails

Examples:
    Start cleanup task in the background::

        from idempotent_publish.core.cleanup import start_cleanup_task

        task = await start_cleanup_task(sessions, config)

        # Later, when shutting down
        await stop_cleanup_task(task)
"""

import asyncio
from datetime import UTC, datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from idempotent_publish.config import PublishConfig
from idempotent_publish.observability.logging import get_logger
from idempotent_publish.observability.metrics import record_purge
from idempotent_publish.storage import ledger

logger = get_logger(__name__)


async def purge_expired(
    sessions: async_sessionmaker[AsyncSession],
    retention_seconds: int,
    now: datetime | None = None,
) -> int:
    """Delete completed ledger rows older than the retention window.

    Args:
        sessions: Session factory
        retention_seconds: Age after which completed rows are removed
        now: Reference time (defaults to the current UTC time)

    Returns:
        The number of rows removed
    """
    cutoff = (now or datetime.now(UTC)) - timedelta(seconds=retention_seconds)

    async with sessions() as session, session.begin():
        removed = await ledger.purge_completed(session, cutoff)

    record_purge(removed)
    return removed


async def cleanup_loop(
    sessions: async_sessionmaker[AsyncSession],
    config: PublishConfig,
    stop_event: asyncio.Event | None = None,
) -> None:
    """Background task that periodically purges expired ledger rows.

    Args:
        sessions: Session factory
        config: Configuration supplying retention and interval
        stop_event: Event to signal the loop to stop (optional)
    """
    if stop_event is None:
        stop_event = asyncio.Event()

    interval_seconds = config.cleanup_interval_seconds
    logger.info(
        "cleanup.started",
        interval_seconds=interval_seconds,
        retention_seconds=config.retention_seconds,
    )

    while not stop_event.is_set():
        try:
            count = await purge_expired(sessions, config.retention_seconds)

            if count > 0:
                logger.info("cleanup.completed", records_removed=count)
            else:
                logger.debug("cleanup.completed", records_removed=0)

        except Exception as e:
            logger.error(
                "cleanup.failed",
                error=str(e),
                error_type=type(e).__name__,
            )

        try:
            await asyncio.wait_for(stop_event.wait(), timeout=interval_seconds)
        except asyncio.TimeoutError:
            continue

    logger.info("cleanup.stopped")


async def start_cleanup_task(
    sessions: async_sessionmaker[AsyncSession],
    config: PublishConfig,
) -> asyncio.Task[None]:
    """Start the cleanup background task.

    Args:
        sessions: Session factory
        config: Configuration supplying retention and interval

    Returns:
        The asyncio Task running the cleanup loop
    """
    stop_event = asyncio.Event()

    task = asyncio.create_task(
        cleanup_loop(sessions=sessions, config=config, stop_event=stop_event)
    )
    task._stop_event = stop_event  # type: ignore[attr-defined]

    return task


async def stop_cleanup_task(task: asyncio.Task[None]) -> None:
    """Stop a running cleanup task gracefully.

    Args:
        task: The cleanup task returned from start_cleanup_task
    """
    stop_event: asyncio.Event | None = getattr(task, "_stop_event", None)

    if stop_event:
        stop_event.set()

    try:
        await asyncio.wait_for(task, timeout=5.0)
    except asyncio.TimeoutError:
        logger.warning("cleanup.stop_timeout", message="Cleanup task did not stop in time")
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            logger.debug("cleanup.cancelled")
