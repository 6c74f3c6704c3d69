"""Newsletter publishing routes.

POST /admin/newsletters publishes an issue exactly once per idempotency key:
the issue row, one delivery task per confirmed subscriber and the saved
303 response are committed in a single transaction.  Emails go out later,
from the delivery worker.

GET /admin/newsletters lists published issues with their remaining queue.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from uuid import UUID

from fastapi import APIRouter, Depends, Form, HTTPException
from fastapi.responses import RedirectResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from starlette.responses import Response

from newsletter.api.deps import get_current_user_id, get_db, get_session_factory
from newsletter.core.errors import ConflictError, PersistenceError, ValidationError
from newsletter.core.settings import Settings, get_settings
from newsletter.db.repositories import NewsletterIssueRepository
from newsletter.delivery.outbox import enqueue_delivery_tasks, insert_newsletter_issue
from newsletter.idempotency import (
    IdempotencyKey,
    ReturnSavedResponse,
    save_response,
    try_processing,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/newsletters", tags=["newsletters"])


@dataclass(frozen=True, slots=True)
class PublishForm:
    title: str
    content_text: str
    content_html: str
    idempotency_key: str


# ---------------------------------------------------------------------------
# Command handler
# ---------------------------------------------------------------------------

def publish_newsletter(
    session_factory: sessionmaker,
    user_id: UUID,
    form: PublishForm,
    settings: Settings | None = None,
) -> Response:
    """Publish *form* once per ``(user_id, idempotency_key)``.

    Raises ``ValidationError`` for a malformed key (before touching the
    database), ``ConflictError`` if an identical request is still in
    flight, and ``PersistenceError`` if anything fails between claiming the
    key and saving the response, in which case nothing is persisted.
    """
    settings = settings or get_settings()
    idempotency_key = IdempotencyKey.parse(form.idempotency_key)

    next_action = try_processing(
        session_factory,
        idempotency_key,
        user_id,
        conflict_retries=settings.idempotency_conflict_retries,
        conflict_backoff_s=settings.idempotency_conflict_backoff_s,
    )
    if isinstance(next_action, ReturnSavedResponse):
        return next_action.response

    session = next_action.session
    try:
        issue_id = insert_newsletter_issue(session, form.title, form.content_text, form.content_html)
        enqueue_delivery_tasks(session, issue_id)
    except SQLAlchemyError as exc:
        session.rollback()
        session.close()
        raise PersistenceError("Failed to store the newsletter issue") from exc
    except Exception:
        session.rollback()
        session.close()
        raise

    response = RedirectResponse(url=router.prefix, status_code=303)
    response = save_response(session, idempotency_key, user_id, response)
    logger.info("Published newsletter issue %s", issue_id)
    return response


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

@router.post("", summary="Publish a newsletter issue", status_code=303)
def post_publish_newsletter(
    title: str = Form(...),
    content_text: str = Form(...),
    content_html: str = Form(...),
    idempotency_key: str = Form(...),
    user_id: UUID = Depends(get_current_user_id),
    session_factory: sessionmaker = Depends(get_session_factory),
):
    form = PublishForm(
        title=title,
        content_text=content_text,
        content_html=content_html,
        idempotency_key=idempotency_key,
    )
    try:
        return publish_newsletter(session_factory, user_id, form)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except ConflictError as exc:
        raise HTTPException(
            status_code=409,
            detail=str(exc),
            headers={"Retry-After": str(exc.retry_after_s)},
        )
    except PersistenceError:
        logger.exception("Publishing a newsletter issue failed")
        raise HTTPException(status_code=500, detail="Failed to publish the newsletter issue")


@router.get("", summary="List published issues")
def list_newsletter_issues(
    _user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return [
        {
            "newsletter_issue_id": str(issue.newsletter_issue_id),
            "title": issue.title,
            "published_at": issue.published_at.isoformat() if issue.published_at else None,
            "pending_deliveries": pending,
        }
        for issue, pending in NewsletterIssueRepository(db).list_with_pending_counts()
    ]
