"""FastAPI dependency injection — database sessions, email client, caller identity."""
from __future__ import annotations

from collections.abc import Generator
from functools import lru_cache
from uuid import UUID

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session, sessionmaker

from newsletter.core.security import SecurityService
from newsletter.core.settings import get_settings
from newsletter.db.repositories import UserRepository
from newsletter.db.session import get_session_factory as _default_session_factory
from newsletter.notification.email_client import EmailGateway, build_email_client

_bearer = HTTPBearer(auto_error=False)


def get_session_factory() -> sessionmaker:
    """Return the process-wide session factory.

    The publish path needs the factory itself, not a request-scoped
    session, because the idempotency store owns transaction boundaries.
    """
    return _default_session_factory()


def get_db(session_factory: sessionmaker = Depends(get_session_factory)) -> Generator[Session, None, None]:
    """Yield a SQLAlchemy session; commit on success, rollback on error."""
    db = session_factory()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


@lru_cache(maxsize=1)
def get_email_client() -> EmailGateway:
    return build_email_client(get_settings())


def get_security_service() -> SecurityService:
    return SecurityService(token_salt=get_settings().token_salt)


def get_current_user_id(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
    session_factory: sessionmaker = Depends(get_session_factory),
    security: SecurityService = Depends(get_security_service),
) -> UUID:
    """Resolve the bearer token to a ``users.user_id`` or fail with 401.

    Uses its own short-lived session so no transaction stays open while
    the handler runs.
    """
    if credentials is None or not credentials.credentials:
        raise HTTPException(
            status_code=401,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    with session_factory() as db:
        user = UserRepository(db).get_by_token_hash(security.hash_token(credentials.credentials))
    if user is None:
        raise HTTPException(
            status_code=401,
            detail="Invalid API token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user.user_id
