"""FastAPI application factory.

Assembles the health, subscription and newsletter routers.  When
``WORKER_ENABLED`` is set, a delivery worker also runs inside the API
process on a background thread; it is stopped between tasks on shutdown.
newsletter/main.py re-exports the app object defined here.
"""
from __future__ import annotations

import asyncio
import logging
import threading
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from newsletter.api.deps import get_email_client
from newsletter.api.routes.health import router as health_router
from newsletter.api.routes.newsletters import router as newsletters_router
from newsletter.api.routes.subscriptions import router as subscriptions_router
from newsletter.core.logging import setup_logging, teardown_logging
from newsletter.core.settings import get_settings
from newsletter.db.session import get_session_factory
from newsletter.delivery.worker import RetryPolicy, run_worker_until_stopped

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    setup_logging()
    settings = get_settings()
    shutdown = threading.Event()
    task = None
    if settings.worker_enabled:
        task = asyncio.create_task(
            asyncio.to_thread(
                run_worker_until_stopped,
                get_session_factory(),
                get_email_client(),
                RetryPolicy.from_settings(settings),
                shutdown,
            )
        )
        logger.info("In-process delivery worker enabled")
    try:
        yield
    finally:
        shutdown.set()
        if task is not None:
            await task
        teardown_logging()


settings = get_settings()

app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    lifespan=lifespan,
)


@app.exception_handler(RequestValidationError)
async def _bad_request(_: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})


app.include_router(health_router)
app.include_router(subscriptions_router)
app.include_router(newsletters_router)
