"""Durable response cache behind idempotent commands.

A request first *claims* its ``(user_id, idempotency_key)`` pair by
inserting a placeholder row with ``INSERT ... ON CONFLICT DO NOTHING``.
The primary key is the only mutual-exclusion primitive: exactly one of
several identical concurrent requests inserts the row, the others see
zero affected rows and fall back to reading the saved response.

The winner keeps the claiming transaction open, performs its business
writes on the same session and finally calls :func:`save_response`,
which fills the placeholder and commits everything at once.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from starlette.responses import Response

from newsletter.core.errors import ConflictError, PersistenceError
from newsletter.db.models import IdempotencyRecord
from newsletter.idempotency.key import IdempotencyKey

logger = logging.getLogger(__name__)

_DIALECT_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


@dataclass
class StartProcessing:
    """The key was claimed; the caller owns ``session`` and must save or roll back."""

    session: Session


@dataclass
class ReturnSavedResponse:
    """The key was already used; replay ``response`` verbatim."""

    response: Response


NextAction = StartProcessing | ReturnSavedResponse


def _insert_placeholder(session: Session, idempotency_key: IdempotencyKey, user_id: UUID) -> bool:
    """Insert the empty row; return ``False`` if the key was already claimed."""
    dialect = session.get_bind().dialect.name
    insert = _DIALECT_INSERTS.get(dialect)
    if insert is None:
        raise PersistenceError(f"Idempotency store does not support the {dialect!r} dialect")

    stmt = (
        insert(IdempotencyRecord.__table__)
        .values(
            user_id=user_id,
            idempotency_key=idempotency_key.value,
            created_at=datetime.now(timezone.utc),
        )
        .on_conflict_do_nothing()
    )
    result = session.execute(stmt)
    return result.rowcount > 0


def try_processing(
    session_factory: sessionmaker,
    idempotency_key: IdempotencyKey,
    user_id: UUID,
    *,
    conflict_retries: int = 3,
    conflict_backoff_s: float = 0.1,
) -> NextAction:
    """Claim *idempotency_key* for *user_id* or return the saved response.

    When the row exists but holds no response yet, an identical request is
    still in flight.  The read is retried ``conflict_retries`` times with
    exponential backoff before giving up with ``ConflictError``.

    Raises
    ------
    PersistenceError
        If the database cannot be reached or rejects the claim.
    ConflictError
        If the in-flight duplicate did not finish within ``conflict_retries`` retries.
    """
    for attempt in range(conflict_retries + 1):
        session = session_factory()
        try:
            claimed = _insert_placeholder(session, idempotency_key, user_id)
        except SQLAlchemyError as exc:
            session.rollback()
            session.close()
            raise PersistenceError("Failed to claim the idempotency key") from exc
        except PersistenceError:
            session.close()
            raise

        if claimed:
            return StartProcessing(session)

        session.rollback()
        try:
            saved = get_saved_response(session, idempotency_key, user_id)
        except SQLAlchemyError as exc:
            raise PersistenceError("Failed to read the saved response") from exc
        finally:
            session.close()

        if saved is not None:
            logger.info("Replaying saved response for user %s", user_id)
            return ReturnSavedResponse(saved)

        if attempt < conflict_retries:
            delay = conflict_backoff_s * (2**attempt)
            logger.info(
                "Idempotency key still in flight for user %s; retrying in %.2fs (attempt %d)",
                user_id,
                delay,
                attempt + 1,
            )
            time.sleep(delay)

    logger.warning("Idempotency key still in flight for user %s; giving up", user_id)
    raise ConflictError("An identical request is still being processed", retry_after_s=1)


def get_saved_response(
    session: Session,
    idempotency_key: IdempotencyKey,
    user_id: UUID,
) -> Response | None:
    """Rebuild the saved response, or ``None`` if there is none (yet)."""
    stmt = select(IdempotencyRecord).where(
        IdempotencyRecord.user_id == user_id,
        IdempotencyRecord.idempotency_key == idempotency_key.value,
    )
    record = session.execute(stmt).scalar_one_or_none()
    if record is None or record.response_status_code is None:
        return None

    response = Response(content=record.response_body or b"", status_code=record.response_status_code)
    response.raw_headers = [
        (name.encode("latin-1"), value.encode("latin-1"))
        for name, value in record.response_headers or []
    ]
    return response


def save_response(
    session: Session,
    idempotency_key: IdempotencyKey,
    user_id: UUID,
    response: Response,
) -> Response:
    """Fill the placeholder with *response*, commit *session*, return *response*.

    Only fully-buffered responses can be saved; streaming bodies are not
    supported.  Header names and values are stored as latin-1 text so they
    round-trip byte for byte.
    """
    headers = [
        [name.decode("latin-1"), value.decode("latin-1")]
        for name, value in response.raw_headers
    ]
    try:
        session.execute(
            update(IdempotencyRecord)
            .where(
                IdempotencyRecord.user_id == user_id,
                IdempotencyRecord.idempotency_key == idempotency_key.value,
            )
            .values(
                response_status_code=response.status_code,
                response_headers=headers,
                response_body=bytes(response.body),
            )
        )
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        raise PersistenceError("Failed to save the response") from exc
    finally:
        session.close()
    return response


def purge_expired_responses(session: Session, older_than: timedelta) -> int:
    """Delete saved responses older than *older_than*.  Does not commit."""
    cutoff = datetime.now(timezone.utc) - older_than
    result = session.execute(delete(IdempotencyRecord).where(IdempotencyRecord.created_at < cutoff))
    return result.rowcount
