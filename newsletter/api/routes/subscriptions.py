"""Subscription routes.

POST /subscriptions stores a ``pending_confirmation`` subscriber plus a
confirmation token, commits, then emails the confirmation link.

GET /subscriptions/confirm flips the subscriber to ``confirmed``.  Only
confirmed subscribers are picked up by the newsletter outbox.
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Form, HTTPException, Query
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from newsletter.api.deps import get_db, get_email_client, get_session_factory
from newsletter.core.errors import DeliveryError, ValidationError
from newsletter.core.security import generate_token
from newsletter.core.settings import get_settings
from newsletter.db.repositories import SubscriptionRepository, SubscriptionTokenRepository
from newsletter.domain.subscriber import NewSubscriber
from newsletter.notification.email_client import EmailGateway

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/subscriptions", tags=["subscriptions"])


def _confirmation_bodies(confirmation_link: str) -> tuple[str, str]:
    html_body = (
        "Welcome to our newsletter!<br />"
        f'Click <a href="{confirmation_link}">here</a> to confirm your subscription.'
    )
    text_body = f"Welcome to our newsletter!\nVisit {confirmation_link} to confirm your subscription."
    return html_body, text_body


@router.post("", summary="Subscribe to the newsletter")
def subscribe(
    name: str = Form(...),
    email: str = Form(...),
    session_factory: sessionmaker = Depends(get_session_factory),
    email_client: EmailGateway = Depends(get_email_client),
):
    try:
        new_subscriber = NewSubscriber.parse(email=email, name=name)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    subscription_token = generate_token()
    try:
        with session_factory() as db:
            subscriptions = SubscriptionRepository(db)
            subscriber = subscriptions.get_by_email(new_subscriber.email.value)
            if subscriber is None:
                subscriber = subscriptions.create(
                    email=new_subscriber.email.value,
                    name=new_subscriber.name.value,
                    status="pending_confirmation",
                )
            elif subscriber.status == "confirmed":
                logger.info("Subscriber %s is already confirmed", subscriber.id)
                return {"status": "confirmed"}
            SubscriptionTokenRepository(db).create(
                subscription_token=subscription_token,
                subscriber_id=subscriber.id,
            )
            db.commit()
    except SQLAlchemyError:
        logger.exception("Failed to store the new subscriber")
        raise HTTPException(status_code=500, detail="Failed to store the new subscriber")

    base_url = get_settings().base_url.rstrip("/")
    link = f"{base_url}/subscriptions/confirm?subscription_token={subscription_token}"
    html_body, text_body = _confirmation_bodies(link)
    try:
        email_client.send_email(new_subscriber.email, "Welcome!", html_body, text_body)
    except DeliveryError:
        logger.exception("Failed to send the confirmation email")
        raise HTTPException(status_code=500, detail="Failed to send the confirmation email")

    return {"status": "pending_confirmation"}


@router.get("/confirm", summary="Confirm a pending subscriber")
def confirm(
    subscription_token: str = Query(...),
    db: Session = Depends(get_db),
):
    subscriber_id = SubscriptionTokenRepository(db).get_subscriber_id(subscription_token)
    if subscriber_id is None:
        raise HTTPException(status_code=401, detail="Unknown subscription token")

    SubscriptionRepository(db).confirm(subscriber_id)
    logger.info("Confirmed subscriber %s", subscriber_id)
    return {"status": "confirmed"}
