"""GET /health: liveness plus a database round-trip.

Answers 503 when the database cannot be reached, since neither the publish
path nor the delivery worker can make progress without it.
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from newsletter.api.deps import get_session_factory
from newsletter.core.settings import get_settings

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


def _database_status(session_factory: sessionmaker) -> str:
    try:
        with session_factory() as db:
            db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.exception("Health check could not reach the database")
        return "unavailable"
    return "ok"


@router.get("/health", summary="Liveness and database check")
def health_check(session_factory: sessionmaker = Depends(get_session_factory)) -> JSONResponse:
    settings = get_settings()
    database = _database_status(session_factory)
    healthy = database == "ok"
    return JSONResponse(
        status_code=200 if healthy else 503,
        content={
            "status": "ok" if healthy else "degraded",
            "service": settings.app_name,
            "version": settings.app_version,
            "environment": settings.app_env,
            "database": database,
            "worker_enabled": settings.worker_enabled,
        },
    )
