"""Issue delivery worker.

Drains ``issue_delivery_queue`` one task per transaction.  A task is
claimed with ``SELECT ... FOR UPDATE SKIP LOCKED`` so any number of worker
processes can share the queue; the row lock is the only coordination and
it dies with the transaction, so a crash never strands a claimed task.

Outcomes of one :func:`try_execute_task` call
---------------------------------------------
EMPTY_QUEUE     : nothing claimable right now
TASK_COMPLETED  : email sent (or recipient invalid) and the task deleted
TASK_FAILED     : send failed; the task is rescheduled with backoff, or
                  dropped once ``RetryPolicy.max_attempts`` is reached

Delivery is at-least-once: a crash between a successful send and the
commit re-sends that email on the next poll.

Safety: subscriber addresses are never logged, only the issue id.
"""
from __future__ import annotations

import logging
import signal
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from newsletter.core.errors import DeliveryError, ValidationError
from newsletter.core.logging import setup_logging, teardown_logging
from newsletter.core.settings import Settings, get_settings
from newsletter.db.models import DeliveryTask, NewsletterIssue
from newsletter.db.session import get_session_factory
from newsletter.domain.subscriber import SubscriberEmail
from newsletter.idempotency.persistence import purge_expired_responses
from newsletter.notification.email_client import EmailGateway, build_email_client

logger = logging.getLogger(__name__)

_ERROR_PAUSE_S = 1.0


class ExecutionOutcome(str, Enum):
    EMPTY_QUEUE = "empty_queue"
    TASK_COMPLETED = "task_completed"
    TASK_FAILED = "task_failed"


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """How often a failing task is retried and how long to wait in between."""

    max_attempts: int = 5
    retry_backoff_s: float = 30.0
    idle_interval_s: float = 10.0
    idempotency_ttl: timedelta = timedelta(hours=48)

    @classmethod
    def from_settings(cls, settings: Settings) -> RetryPolicy:
        return cls(
            max_attempts=settings.worker_max_attempts,
            retry_backoff_s=settings.worker_retry_backoff_s,
            idle_interval_s=settings.worker_idle_interval_s,
            idempotency_ttl=timedelta(hours=settings.idempotency_ttl_hours),
        )

    def next_attempt_delay(self, n_retries: int) -> timedelta:
        return timedelta(seconds=self.retry_backoff_s * (2 ** max(n_retries - 1, 0)))


def try_execute_task(
    session_factory: sessionmaker,
    email_client: EmailGateway,
    policy: RetryPolicy | None = None,
) -> ExecutionOutcome:
    """Claim and process at most one queued task in its own transaction."""
    policy = policy or RetryPolicy()
    now = datetime.now(timezone.utc)

    with session_factory() as session:
        stmt = (
            select(DeliveryTask)
            .where(DeliveryTask.execute_after <= now)
            .limit(1)
            .with_for_update(skip_locked=True)
        )
        task = session.execute(stmt).scalar_one_or_none()
        if task is None:
            session.rollback()
            return ExecutionOutcome.EMPTY_QUEUE

        issue_id = task.newsletter_issue_id
        issue = session.get(NewsletterIssue, issue_id)

        try:
            recipient = SubscriberEmail.parse(task.subscriber_email)
        except ValidationError as exc:
            logger.error(
                "Skipping a confirmed subscriber of issue %s: stored address is invalid (%s)",
                issue_id,
                exc,
            )
            session.delete(task)
            session.commit()
            return ExecutionOutcome.TASK_COMPLETED

        try:
            email_client.send_email(recipient, issue.title, issue.html_content, issue.text_content)
        except DeliveryError as exc:
            n_retries = task.n_retries + 1
            if n_retries >= policy.max_attempts:
                logger.error(
                    "Dropping delivery of issue %s after %d attempts: %s",
                    issue_id,
                    n_retries,
                    exc,
                )
                session.delete(task)
            else:
                delay = policy.next_attempt_delay(n_retries)
                logger.warning(
                    "Delivery of issue %s failed (attempt %d/%d), retrying in %ds: %s",
                    issue_id,
                    n_retries,
                    policy.max_attempts,
                    delay.total_seconds(),
                    exc,
                )
                task.n_retries = n_retries
                task.execute_after = now + delay
            session.commit()
            return ExecutionOutcome.TASK_FAILED

        session.delete(task)
        session.commit()
        logger.info("Delivered issue %s to one subscriber", issue_id)
        return ExecutionOutcome.TASK_COMPLETED


def _purge_idempotency_records(session_factory: sessionmaker, policy: RetryPolicy) -> None:
    with session_factory() as session:
        purged = purge_expired_responses(session, policy.idempotency_ttl)
        session.commit()
    if purged:
        logger.info("Purged %d expired idempotency records", purged)


def run_worker_until_stopped(
    session_factory: sessionmaker,
    email_client: EmailGateway,
    policy: RetryPolicy,
    shutdown: threading.Event,
) -> None:
    """Poll the queue until *shutdown* is set.

    *shutdown* is only checked between tasks, so a claimed task always
    runs to commit or rollback before the loop exits.
    """
    logger.info("Delivery worker started")
    while not shutdown.is_set():
        try:
            outcome = try_execute_task(session_factory, email_client, policy)
        except SQLAlchemyError:
            logger.exception("Delivery worker hit a database error")
            shutdown.wait(_ERROR_PAUSE_S)
            continue
        except Exception:
            # The task rolled back and stays queued; keep draining the rest.
            logger.exception("Delivery worker hit an unexpected error")
            shutdown.wait(_ERROR_PAUSE_S)
            continue

        if outcome is ExecutionOutcome.EMPTY_QUEUE:
            try:
                _purge_idempotency_records(session_factory, policy)
            except SQLAlchemyError:
                logger.exception("Failed to purge expired idempotency records")
            shutdown.wait(policy.idle_interval_s)
    logger.info("Delivery worker stopped")


def main() -> None:
    """Console entry point: run one worker process until SIGINT/SIGTERM."""
    setup_logging()
    settings = get_settings()
    email_client = build_email_client(settings)
    shutdown = threading.Event()

    def _request_shutdown(signum, _frame):
        logger.info("Received signal %d, finishing current task", signum)
        shutdown.set()

    signal.signal(signal.SIGINT, _request_shutdown)
    signal.signal(signal.SIGTERM, _request_shutdown)

    try:
        run_worker_until_stopped(
            get_session_factory(),
            email_client,
            RetryPolicy.from_settings(settings),
            shutdown,
        )
    finally:
        email_client.close()
        teardown_logging()


if __name__ == "__main__":
    main()
