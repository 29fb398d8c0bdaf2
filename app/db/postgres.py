"""PostgreSQL engine and sessions for the chat store.

Holds users, counselors, chat sessions and their messages. Request handlers
get one transaction per request through ``get_async_session`` (commit on
success, rollback on any exception). The waiting-queue job and WebSocket
handlers work outside a request and open their own short-lived sessions from
``get_session_factory()``.

Driver errors surface as DatabaseConnectionError (503) rather than raw
SQLAlchemy exceptions.
"""

from collections.abc import AsyncGenerator

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from app.core.config import settings
from app.core.exceptions import DatabaseConnectionError

logger = structlog.get_logger(__name__)


class Base(DeclarativeBase):
    """Base class for all ORM models."""
    pass


engine: AsyncEngine = create_async_engine(
    settings.postgres_url,
    echo=False,
    pool_size=20,
    max_overflow=10,
    pool_pre_ping=True,
)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency that yields an async database session.

    Commits on success, rolls back on exception, always closes.
    SQLAlchemy driver errors are caught and re-raised as DatabaseConnectionError.
    """
    try:
        async with async_session_factory() as session:
            try:
                yield session
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                logger.error("chat_store_transaction_failed", error=str(e))
                raise DatabaseConnectionError(f"Database operation failed: {e}") from e
            except Exception:
                await session.rollback()
                raise
    except DatabaseConnectionError:
        raise
    except SQLAlchemyError as e:
        logger.error("chat_store_unavailable", error=str(e))
        raise DatabaseConnectionError(f"Database connection failed: {e}") from e


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Session factory for code that outlives a single request.

    Background jobs and WebSocket handlers open short-lived sessions from it.
    """
    return async_session_factory


async def close_postgres() -> None:
    """Gracefully dispose of the async engine connection pool."""
    logger.info("postgres_shutdown")
    await engine.dispose()
