"""FastAPI application entrypoint.

All routes prefixed /v1. Auto-generated OpenAPI docs at /docs.

Waiting sessions are matched against newly available counselors by an
APScheduler job every `waiting_queue_interval_seconds`.
"""

from contextlib import asynccontextmanager
import logging
from typing import AsyncGenerator

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import Depends, FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.deps import api_rate_limit
from app.api.v1.auth import router as auth_router
from app.api.v1.counselors import router as counselors_router
from app.api.v1.health import router as health_router
from app.api.v1.realtime import router as realtime_router
from app.api.v1.sessions import router as sessions_router
from app.core.config import settings
from app.core.exceptions import (
    InternalError,
    MentalSpaceError,
    RequestValidationFailedError,
)
from app.db.postgres import close_postgres, get_session_factory
from app.db.redis import close_redis
from app.services.chat.matcher import CounselorMatcher, announce_assignment
from app.services.realtime.relay import get_relay


def _configure_logging() -> None:
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


_configure_logging()

logger = structlog.get_logger(__name__)


async def drain_waiting_queue() -> int:
    """Assign waiting sessions to free counselors. Called by APScheduler.

    Commits before notifying so participants only hear about persisted
    assignments. Returns the number of sessions assigned.
    """
    try:
        async with get_session_factory()() as db:
            assigned = await CounselorMatcher(db).drain_waiting_queue()
            await db.commit()
    except Exception as e:
        logger.error("waiting_queue_drain_failed", error=str(e))
        return 0

    relay = get_relay()
    for session in assigned:
        await announce_assignment(relay, session)
    return len(assigned)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application startup and shutdown lifecycle.

    Starts the APScheduler job that drains the waiting queue.
    """
    # --- Startup ---
    logger.info("app_startup", env=settings.app_env, version=settings.version)

    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        drain_waiting_queue,
        "interval",
        seconds=settings.waiting_queue_interval_seconds,
        id="waiting_queue_drain",
        max_instances=1,
        coalesce=True,
    )
    scheduler.start()
    app.state.scheduler = scheduler

    yield

    # --- Shutdown ---
    logger.info("app_shutdown")

    scheduler.shutdown(wait=False)

    await close_redis()
    await close_postgres()


app = FastAPI(
    title="MentalSpace Counseling Chat API",
    description="Live chat between users and counselors, with matching and escalation.",
    version=settings.version,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(MentalSpaceError)
async def mentalspace_error_handler(
    request: Request, exc: MentalSpaceError
) -> JSONResponse:
    """Structured error response for all MentalSpace exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Render FastAPI payload/query validation failures as VALIDATION_ERROR."""
    error = RequestValidationFailedError(
        details={"errors": jsonable_encoder(exc.errors())}
    )
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "unhandled_exception",
        path=request.url.path,
        error_type=type(exc).__name__,
        error=str(exc),
    )
    error = InternalError()
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


# Mount all v1 routers
app.include_router(health_router, prefix="/v1")
app.include_router(auth_router, prefix="/v1", dependencies=[Depends(api_rate_limit)])
app.include_router(
    sessions_router, prefix="/v1", dependencies=[Depends(api_rate_limit)]
)
app.include_router(
    counselors_router, prefix="/v1", dependencies=[Depends(api_rate_limit)]
)
app.include_router(realtime_router, prefix="/v1")
