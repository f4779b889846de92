"""Business writes for publishing a newsletter issue.

Both writes run inside the transaction that holds the idempotency claim, so
the issue row, its outbox rows and the saved response commit together or
not at all.

Examples:
    Inside a claimed transaction::

        issue_id = await publish_issue(
            transaction,
            title="October update",
            text_content="Plain text body",
            html_content="<p>HTML body</p>",
        )
"""

import uuid
from datetime import UTC, datetime

from sqlalchemy import func, insert, literal, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from idempotent_publish.exceptions import PersistenceError
from idempotent_publish.observability.logging import get_logger
from idempotent_publish.observability.metrics import record_publish
from idempotent_publish.storage.schema import (
    CONFIRMED,
    IssueDeliveryQueue,
    NewsletterIssueRow,
    Subscription,
)

logger = get_logger(__name__)


async def create_issue(
    transaction: AsyncSession,
    title: str,
    text_content: str,
    html_content: str,
) -> str:
    """Insert a newsletter issue row.

    Args:
        transaction: The claiming transaction
        title: Issue title
        text_content: Plain-text body
        html_content: HTML body

    Returns:
        The new issue id

    Raises:
        PersistenceError: On constraint or connectivity failure. The caller
            must roll back the transaction.
    """
    issue_id = str(uuid.uuid4())
    statement = insert(NewsletterIssueRow).values(
        newsletter_issue_id=issue_id,
        title=title,
        text_content=text_content,
        html_content=html_content,
        published_at=datetime.now(UTC),
    )
    try:
        await transaction.execute(statement)
    except SQLAlchemyError as e:
        raise PersistenceError("Failed to store newsletter issue details", cause=e) from e
    return issue_id


async def enqueue_delivery(transaction: AsyncSession, issue_id: str) -> int:
    """Insert one outbox row per currently confirmed subscriber.

    Selection and insertion happen in a single INSERT ... SELECT statement so
    a subscription status change cannot slip between reading recipients and
    writing their rows. Confirmed subscribers whose stored address has no
    ``@`` are skipped and reported with a warning.

    Args:
        transaction: The claiming transaction
        issue_id: Issue to deliver

    Returns:
        Number of outbox rows inserted

    Raises:
        PersistenceError: On constraint or connectivity failure. The caller
            must roll back the transaction.
    """
    recipients = select(literal(issue_id), Subscription.email).where(
        Subscription.status == CONFIRMED,
        Subscription.email.contains("@"),
    )
    statement = insert(IssueDeliveryQueue).from_select(
        ["newsletter_issue_id", "subscriber_email"], recipients
    )
    try:
        result = await transaction.execute(statement)
    except SQLAlchemyError as e:
        raise PersistenceError("Failed to enqueue delivery tasks", cause=e) from e

    enqueued = result.rowcount
    await _warn_invalid_recipients(transaction, issue_id)
    return enqueued


async def _warn_invalid_recipients(transaction: AsyncSession, issue_id: str) -> None:
    statement = select(func.count()).select_from(Subscription).where(
        Subscription.status == CONFIRMED,
        Subscription.email.not_like("%@%"),
    )
    try:
        skipped = (await transaction.execute(statement)).scalar_one()
    except SQLAlchemyError as e:
        raise PersistenceError("Failed to enqueue delivery tasks", cause=e) from e

    if skipped:
        logger.warning(
            "delivery.invalid_recipients_skipped",
            newsletter_issue_id=issue_id,
            skipped=skipped,
        )


async def publish_issue(
    transaction: AsyncSession,
    title: str,
    text_content: str,
    html_content: str,
) -> str:
    """Create an issue and enqueue its delivery in the given transaction.

    Returns:
        The new issue id

    Raises:
        PersistenceError: If either write fails
    """
    issue_id = await create_issue(transaction, title, text_content, html_content)
    enqueued = await enqueue_delivery(transaction, issue_id)

    record_publish(enqueued)
    logger.info("issue.published", newsletter_issue_id=issue_id, recipients=enqueued)
    return issue_id
