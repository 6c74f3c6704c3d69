"""Outbox writer for newsletter issues.

Both functions run on the session handed out by
``newsletter.idempotency.try_processing`` and never commit: the issue,
its delivery tasks and the saved response become visible together when
``save_response`` commits.
"""
from __future__ import annotations

import logging
from uuid import UUID, uuid4

from sqlalchemy import insert, literal, select
from sqlalchemy.orm import Session
from sqlalchemy.types import Uuid

from newsletter.db.models import DeliveryTask, NewsletterIssue, Subscription

logger = logging.getLogger(__name__)


def insert_newsletter_issue(
    session: Session,
    title: str,
    text_content: str,
    html_content: str,
) -> UUID:
    """Insert one ``NewsletterIssue`` row and return its id."""
    newsletter_issue_id = uuid4()
    session.execute(
        insert(NewsletterIssue).values(
            newsletter_issue_id=newsletter_issue_id,
            title=title,
            text_content=text_content,
            html_content=html_content,
        )
    )
    return newsletter_issue_id


def enqueue_delivery_tasks(session: Session, newsletter_issue_id: UUID) -> int:
    """Queue one task per currently-confirmed subscriber.

    A single ``INSERT ... SELECT`` so the recipient set is read from one
    consistent snapshot.  Returns the number of tasks created.
    """
    confirmed = select(
        literal(newsletter_issue_id, Uuid()),
        Subscription.email,
    ).where(Subscription.status == "confirmed")
    queue = DeliveryTask.__table__
    result = session.execute(
        insert(queue).from_select(
            [queue.c.newsletter_issue_id, queue.c.subscriber_email],
            confirmed,
        )
    )
    logger.info("Enqueued %d delivery tasks for issue %s", result.rowcount, newsletter_issue_id)
    return result.rowcount
