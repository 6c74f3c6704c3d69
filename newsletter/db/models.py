from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    DateTime,
    ForeignKey,
    Integer,
    LargeBinary,
    SmallInteger,
    String,
    Text,
    func,
    text as sql_text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from newsletter.db.base import Base


class User(Base):
    """An operator allowed to publish newsletter issues."""

    __tablename__ = "users"

    user_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    username: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    api_token_hash: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Subscription(Base):
    __tablename__ = "subscriptions"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(256), nullable=False)
    status: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default="pending_confirmation",
        server_default=sql_text("'pending_confirmation'"),
        index=True,
    )
    subscribed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    tokens: Mapped[list[SubscriptionToken]] = relationship(back_populates="subscriber")


class SubscriptionToken(Base):
    __tablename__ = "subscription_tokens"

    subscription_token: Mapped[str] = mapped_column(String(64), primary_key=True)
    subscriber_id: Mapped[UUID] = mapped_column(
        ForeignKey("subscriptions.id", ondelete="CASCADE"), nullable=False
    )

    subscriber: Mapped[Subscription] = relationship(back_populates="tokens")


class NewsletterIssue(Base):
    """A published issue.  Written once by the publish path, never mutated."""

    __tablename__ = "newsletter_issues"

    newsletter_issue_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    text_content: Mapped[str] = mapped_column(Text, nullable=False)
    html_content: Mapped[str] = mapped_column(Text, nullable=False)
    published_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    delivery_tasks: Mapped[list[DeliveryTask]] = relationship(back_populates="newsletter_issue")


class DeliveryTask(Base):
    """One pending email: (issue, recipient).

    The table is the delivery queue.  Rows are created in bulk by the
    outbox writer and removed only by the delivery worker.
    """

    __tablename__ = "issue_delivery_queue"

    newsletter_issue_id: Mapped[UUID] = mapped_column(
        ForeignKey("newsletter_issues.newsletter_issue_id"), primary_key=True
    )
    subscriber_email: Mapped[str] = mapped_column(String(320), primary_key=True)
    n_retries: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=sql_text("0")
    )
    execute_after: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    newsletter_issue: Mapped[NewsletterIssue] = relationship(back_populates="delivery_tasks")


class IdempotencyRecord(Base):
    """A saved HTTP response keyed by (user, idempotency key).

    All ``response_*`` columns are NULL while the owning request is still
    in flight; they are filled in the same transaction as the business
    writes.
    """

    __tablename__ = "idempotency"

    user_id: Mapped[UUID] = mapped_column(ForeignKey("users.user_id"), primary_key=True)
    idempotency_key: Mapped[str] = mapped_column(String(50), primary_key=True)
    response_status_code: Mapped[int | None] = mapped_column(SmallInteger, nullable=True)
    response_headers: Mapped[list | None] = mapped_column(JSON, nullable=True)
    response_body: Mapped[bytes | None] = mapped_column(LargeBinary, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
