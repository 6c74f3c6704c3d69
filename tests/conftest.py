from __future__ import annotations

import os
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from newsletter.core.security import SecurityService, generate_token
from newsletter.core.settings import get_settings
from newsletter.db.base import Base
from newsletter.db import models  # noqa: F401
from newsletter.db.repositories import SubscriptionRepository, UserRepository
from newsletter.db.session import build_engine, build_session_factory


@pytest.fixture
def database_url(tmp_path) -> str:
    # A file, not :memory:, so every pooled connection sees the same data.
    return f"sqlite+pysqlite:///{tmp_path / 'newsletter.db'}"


@pytest.fixture
def engine(database_url):
    engine = build_engine(database_url)
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def email_client() -> MagicMock:
    return MagicMock(spec=["send_email", "close"])


@pytest.fixture
def operator(session_factory) -> tuple:
    """Return ``(user_id, api_token)`` for a freshly created operator."""
    token = generate_token()
    security = SecurityService(token_salt=get_settings().token_salt)
    with session_factory() as db:
        user = UserRepository(db).create(username="operator", api_token_hash=security.hash_token(token))
        db.commit()
        return user.user_id, token


@pytest.fixture
def add_subscriber(session_factory):
    def _add(email: str, *, status: str = "confirmed", name: str = "Reader"):
        with session_factory() as db:
            subscriber = SubscriptionRepository(db).create(email=email, name=name, status=status)
            db.commit()
            return subscriber.id

    return _add


@pytest.fixture
def client(monkeypatch: pytest.MonkeyPatch, database_url, session_factory, email_client) -> TestClient:
    monkeypatch.setenv("DATABASE_URL", database_url)
    monkeypatch.setenv("WORKER_ENABLED", "false")

    get_settings.cache_clear()

    from newsletter.api.deps import get_email_client, get_session_factory
    from newsletter.main import app

    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_email_client] = lambda: email_client

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
    get_settings.cache_clear()
    os.environ.pop("DATABASE_URL", None)
