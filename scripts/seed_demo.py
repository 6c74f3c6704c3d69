#!/usr/bin/env python3
"""Seed demo data: one operator with an API token and a handful of subscribers.

Usage:
    python scripts/seed_demo.py          # uses DATABASE_URL from env / .env
    DATABASE_URL=... python scripts/seed_demo.py

The operator's API token is printed once; only its hash is stored.
"""
from __future__ import annotations

import sys

from sqlalchemy.orm import Session

# Ensure project root is on sys.path
sys.path.insert(0, ".")

from newsletter.core.security import SecurityService, generate_token
from newsletter.core.settings import get_settings
from newsletter.db.base import Base
from newsletter.db.repositories import SubscriptionRepository, UserRepository
from newsletter.db.session import build_engine


def seed(session: Session, security: SecurityService) -> str:
    """Insert a demo operator and subscribers; return the operator's plain token."""
    token = generate_token()
    UserRepository(session).create(username="demo-admin", api_token_hash=security.hash_token(token))

    demo_subscribers = [
        # (name, email, status)
        ("Alice Johnson", "alice.johnson@example.com", "confirmed"),
        ("Bob Smith", "bob.smith@example.com", "confirmed"),
        ("Priya Patel", "priya.patel@example.in", "confirmed"),
        ("Carlos Rivera", "carlos.r@example.com", "pending_confirmation"),
        ("Fatima Khan", "fatima.khan@example.co.uk", "pending_confirmation"),
    ]
    subscriptions = SubscriptionRepository(session)
    for name, email, status in demo_subscribers:
        subscriptions.create(name=name, email=email, status=status)

    session.commit()
    confirmed = sum(1 for *_, status in demo_subscribers if status == "confirmed")
    print(f"Seeded 1 operator and {len(demo_subscribers)} subscribers ({confirmed} confirmed).")
    return token


def main() -> None:
    settings = get_settings()
    engine = build_engine(settings.database_url)
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        token = seed(session, SecurityService(token_salt=settings.token_salt))
    print(f"Operator API token (store it now, it is not saved): {token}")


if __name__ == "__main__":
    main()
