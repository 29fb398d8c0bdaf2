"""Shared pytest fixtures for the MentalSpace test suite.

Provides:
  - engine / session_factory / db: in-memory SQLite (aiosqlite) with all
    tables created, one database per test
  - make_user / make_counselor: account factories
  - mock_redis: in-memory stand-in for RedisClient
  - FakeSocket / relay: capture realtime frames without a network
  - client: httpx AsyncClient wired to the app with dependency overrides

No external service is contacted anywhere in the suite.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401  registers every table on Base.metadata
from app.core.security import create_access_token, hash_password
from app.db.postgres import Base
from app.models.counselor import Counselor, CounselorStatus
from app.models.user import User
from app.services.auth import AccountKind, Principal
from app.services.realtime.relay import RealtimeRelay

PASSWORD = "correct-horse-battery"


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def engine() -> AsyncIterator[AsyncEngine]:
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncSession]:
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Account factories
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def make_user(db: AsyncSession) -> Callable[..., Awaitable[User]]:
    async def _make(
        email: str | None = None,
        is_active: bool = True,
    ) -> User:
        user = User(
            email=email or f"user-{uuid.uuid4().hex[:8]}@example.com",
            password_hash=hash_password(PASSWORD),
            first_name="Test",
            last_name="User",
            is_active=is_active,
        )
        db.add(user)
        await db.commit()
        return user

    return _make


@pytest_asyncio.fixture
async def make_counselor(db: AsyncSession) -> Callable[..., Awaitable[Counselor]]:
    async def _make(
        status: str = CounselorStatus.AVAILABLE.value,
        is_online: bool = True,
        total_sessions: int = 0,
        is_active: bool = True,
        counselor_id: uuid.UUID | None = None,
    ) -> Counselor:
        suffix = uuid.uuid4().hex[:8]
        counselor = Counselor(
            id=counselor_id or uuid.uuid4(),
            email=f"counselor-{suffix}@example.com",
            password_hash=hash_password(PASSWORD),
            first_name="Casey",
            last_name="Counselor",
            license_number=f"LIC-{suffix}",
            specializations=["anxiety"],
            status=status,
            is_online=is_online,
            total_sessions=total_sessions,
            is_active=is_active,
        )
        db.add(counselor)
        await db.commit()
        return counselor

    return _make


def principal_for(account: User | Counselor) -> Principal:
    kind = AccountKind.COUNSELOR if isinstance(account, Counselor) else AccountKind.USER
    return Principal(id=account.id, kind=kind, is_active=True, account=account)


def auth_headers(account: User | Counselor) -> dict[str, str]:
    kind = AccountKind.COUNSELOR if isinstance(account, Counselor) else AccountKind.USER
    token = create_access_token(account.id, kind.value)
    return {"Authorization": f"Bearer {token}"}


# ---------------------------------------------------------------------------
# Mock Redis Client
# ---------------------------------------------------------------------------


class MockRedisClient:
    """In-memory mock of RedisClient for testing."""

    def __init__(self) -> None:
        self._store: dict[str, int] = {}
        self.ttls: dict[str, int] = {}

    async def increment(self, key: str, amount: int = 1) -> int:
        self._store[key] = self._store.get(key, 0) + amount
        return self._store[key]

    async def expire(self, key: str, ttl_seconds: int) -> bool:
        if key in self._store:
            self.ttls[key] = ttl_seconds
            return True
        return False


@pytest.fixture
def mock_redis() -> MockRedisClient:
    """Mock Redis client fixture."""
    return MockRedisClient()


# ---------------------------------------------------------------------------
# Realtime
# ---------------------------------------------------------------------------


class FakeSocket:
    """Records frames sent through the relay."""

    def __init__(self, fail: bool = False) -> None:
        self.sent: list[dict[str, Any]] = []
        self._fail = fail

    async def send_json(self, data: Any) -> None:
        if self._fail:
            raise RuntimeError("socket closed")
        self.sent.append(data)

    def events(self, name: str | None = None) -> list[dict[str, Any]]:
        if name is None:
            return list(self.sent)
        return [frame for frame in self.sent if frame["event"] == name]


@pytest.fixture
def relay() -> RealtimeRelay:
    return RealtimeRelay()


# ---------------------------------------------------------------------------
# HTTP client
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def client(
    session_factory: async_sessionmaker[AsyncSession],
    mock_redis: MockRedisClient,
    relay: RealtimeRelay,
) -> AsyncIterator[AsyncClient]:
    """AsyncClient against the app with DB, Redis and relay swapped out.

    The scheduler lifespan does not run under ASGITransport.
    """
    from app.api.deps import get_db, get_realtime_relay
    from app.db.postgres import get_session_factory
    from app.db.redis import get_redis
    from app.main import app

    async def _get_db() -> AsyncIterator[AsyncSession]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def _get_redis() -> MockRedisClient:
        return mock_redis

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_redis] = _get_redis
    app.dependency_overrides[get_realtime_relay] = lambda: relay
    app.dependency_overrides[get_session_factory] = lambda: session_factory

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
