"""Relational schema for the idempotency ledger, issues and outbox.

Tables:
    idempotency: one row per claimed ``(caller_id, idempotency_key)``. The
        ``response_*`` columns stay NULL while the claiming transaction is
        in flight and are populated exactly once, in that same transaction.
    newsletter_issues: one row per successful publish.
    subscriptions: subscriber list owned by the signup flow; only read here.
    issue_delivery_queue: the outbox, one row per (issue, confirmed recipient).
"""

from datetime import UTC, datetime

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Index,
    LargeBinary,
    SmallInteger,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

CONFIRMED = "confirmed"
PENDING_CONFIRMATION = "pending_confirmation"


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    pass


class IdempotencyRecord(Base):
    """Ledger row keyed by caller identity and idempotency key."""

    __tablename__ = "idempotency"

    caller_id: Mapped[str] = mapped_column(Text, primary_key=True)
    idempotency_key: Mapped[str] = mapped_column(Text, primary_key=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    response_status_code: Mapped[int | None] = mapped_column(SmallInteger, nullable=True)
    response_headers: Mapped[bytes | None] = mapped_column(LargeBinary, nullable=True)
    response_body: Mapped[bytes | None] = mapped_column(LargeBinary, nullable=True)

    __table_args__ = (Index("idx_idempotency_created_at", "created_at"),)

    def __repr__(self) -> str:
        return (
            f"<IdempotencyRecord(caller_id={self.caller_id!r}, "
            f"idempotency_key={self.idempotency_key!r}, "
            f"status={self.response_status_code})>"
        )


class NewsletterIssueRow(Base):
    __tablename__ = "newsletter_issues"

    newsletter_issue_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    text_content: Mapped[str] = mapped_column(Text, nullable=False)
    html_content: Mapped[str] = mapped_column(Text, nullable=False)
    published_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )


class Subscription(Base):
    __tablename__ = "subscriptions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    email: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    subscribed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    status: Mapped[str] = mapped_column(
        String(32), nullable=False, default=PENDING_CONFIRMATION
    )


class IssueDeliveryQueue(Base):
    """Outbox row consumed by the external delivery worker."""

    __tablename__ = "issue_delivery_queue"

    newsletter_issue_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("newsletter_issues.newsletter_issue_id"),
        primary_key=True,
    )
    subscriber_email: Mapped[str] = mapped_column(Text, primary_key=True)
