"""Read side of the issue delivery outbox.

The external delivery worker consumes ``issue_delivery_queue`` rows; this
module exposes the row shape it is promised. Rows are only ever produced by
``idempotent_publish.core.publisher.enqueue_delivery``.
"""

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from idempotent_publish.models import OutboxEntry
from idempotent_publish.observability.logging import get_logger
from idempotent_publish.storage.schema import IssueDeliveryQueue

logger = get_logger(__name__)


async def list_pending(
    session: AsyncSession, issue_id: str | None = None
) -> list[OutboxEntry]:
    """List outbox rows, optionally for a single issue.

    Rows whose recipient fails ``OutboxEntry`` validation are logged and
    left out, so one bad row does not hide the rest of the queue.

    Args:
        session: Database session
        issue_id: Restrict to this issue if given

    Returns:
        Entries ordered by issue id then recipient
    """
    statement = select(
        IssueDeliveryQueue.newsletter_issue_id,
        IssueDeliveryQueue.subscriber_email,
    ).order_by(
        IssueDeliveryQueue.newsletter_issue_id,
        IssueDeliveryQueue.subscriber_email,
    )
    if issue_id is not None:
        statement = statement.where(IssueDeliveryQueue.newsletter_issue_id == issue_id)

    entries: list[OutboxEntry] = []
    for row in (await session.execute(statement)).all():
        try:
            entries.append(
                OutboxEntry(
                    newsletter_issue_id=row.newsletter_issue_id,
                    subscriber_email=row.subscriber_email,
                )
            )
        except PydanticValidationError as e:
            logger.warning(
                "outbox.invalid_entry_skipped",
                newsletter_issue_id=row.newsletter_issue_id,
                error=str(e),
            )
    return entries
