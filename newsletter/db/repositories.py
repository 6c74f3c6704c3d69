from __future__ import annotations

from typing import Generic, TypeVar
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from newsletter.db import models

ModelT = TypeVar("ModelT")


class BaseRepository(Generic[ModelT]):
    model: type[ModelT]

    def __init__(self, db: Session):
        self.db = db

    def create(self, **kwargs) -> ModelT:
        entity = self.model(**kwargs)
        self.db.add(entity)
        self.db.flush()
        return entity

    def get(self, entity_id) -> ModelT | None:
        return self.db.get(self.model, entity_id)

    def list(self, limit: int = 100, offset: int = 0) -> list[ModelT]:
        stmt = select(self.model).offset(offset).limit(limit)
        return self.db.execute(stmt).scalars().all()

    def count(self) -> int:
        return self.db.execute(select(func.count()).select_from(self.model)).scalar_one()

    def delete(self, entity: ModelT) -> None:
        self.db.delete(entity)
        self.db.flush()


class UserRepository(BaseRepository[models.User]):
    model = models.User

    def get_by_token_hash(self, api_token_hash: str) -> models.User | None:
        stmt = select(models.User).where(models.User.api_token_hash == api_token_hash)
        return self.db.execute(stmt).scalar_one_or_none()


class SubscriptionRepository(BaseRepository[models.Subscription]):
    model = models.Subscription

    def get_by_email(self, email: str) -> models.Subscription | None:
        stmt = select(models.Subscription).where(models.Subscription.email == email)
        return self.db.execute(stmt).scalar_one_or_none()

    def confirm(self, subscriber_id: UUID) -> None:
        self.db.execute(
            update(models.Subscription)
            .where(models.Subscription.id == subscriber_id)
            .values(status="confirmed")
        )

    def count_confirmed(self) -> int:
        stmt = select(func.count()).select_from(models.Subscription).where(
            models.Subscription.status == "confirmed"
        )
        return self.db.execute(stmt).scalar_one()


class SubscriptionTokenRepository(BaseRepository[models.SubscriptionToken]):
    model = models.SubscriptionToken

    def get_subscriber_id(self, subscription_token: str) -> UUID | None:
        stmt = select(models.SubscriptionToken.subscriber_id).where(
            models.SubscriptionToken.subscription_token == subscription_token
        )
        return self.db.execute(stmt).scalar_one_or_none()


class NewsletterIssueRepository(BaseRepository[models.NewsletterIssue]):
    model = models.NewsletterIssue

    def list_with_pending_counts(self, limit: int = 100) -> list[tuple[models.NewsletterIssue, int]]:
        """Return ``(issue, tasks still queued)`` pairs, newest first."""
        pending = (
            select(func.count())
            .select_from(models.DeliveryTask)
            .where(models.DeliveryTask.newsletter_issue_id == models.NewsletterIssue.newsletter_issue_id)
            .scalar_subquery()
        )
        stmt = (
            select(models.NewsletterIssue, pending)
            .order_by(models.NewsletterIssue.published_at.desc())
            .limit(limit)
        )
        return [(issue, count) for issue, count in self.db.execute(stmt).all()]


class DeliveryTaskRepository(BaseRepository[models.DeliveryTask]):
    model = models.DeliveryTask

    def count_for_issue(self, newsletter_issue_id: UUID) -> int:
        stmt = select(func.count()).select_from(models.DeliveryTask).where(
            models.DeliveryTask.newsletter_issue_id == newsletter_issue_id
        )
        return self.db.execute(stmt).scalar_one()
