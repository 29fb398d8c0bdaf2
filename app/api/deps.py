"""Shared FastAPI dependencies: database sessions, auth and service injection.

Route handlers never construct services directly; everything is wired here
through Depends() so tests can swap any piece with app.dependency_overrides.
"""

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import ForbiddenError, UnauthenticatedError
from app.db.postgres import get_async_session
from app.services.auth import AuthService, Principal
from app.services.chat.directory import CounselorDirectory
from app.services.chat.escalation import EscalationNotifier
from app.services.chat.matcher import CounselorMatcher
from app.services.chat.sessions import SessionService
from app.services.rate_limit import RateLimiter
from app.services.realtime.relay import RealtimeRelay, get_relay


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

async def get_db(
    session: AsyncSession = Depends(get_async_session),
) -> AsyncSession:
    """Return the request-scoped database session."""
    return session


# ---------------------------------------------------------------------------
# Rate limiting
# ---------------------------------------------------------------------------

api_rate_limit = RateLimiter(
    scope="api",
    limit=settings.api_rate_limit,
    window_seconds=settings.rate_limit_window_seconds,
)

auth_rate_limit = RateLimiter(
    scope="auth",
    limit=settings.auth_rate_limit,
    window_seconds=settings.rate_limit_window_seconds,
)


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------

def bearer_token(authorization: str | None) -> str | None:
    """Extract the token from an 'Authorization: Bearer <token>' value."""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


async def get_auth_service(db: AsyncSession = Depends(get_db)) -> AuthService:
    """Return an AuthService instance."""
    return AuthService(db=db)


async def get_current_principal(
    authorization: str | None = Header(default=None),
    auth: AuthService = Depends(get_auth_service),
) -> Principal:
    """Resolve the bearer token on the request to an active account."""
    token = bearer_token(authorization)
    if token is None:
        raise UnauthenticatedError("Access denied. No token provided.")
    return await auth.resolve(token)


async def require_user(
    principal: Principal = Depends(get_current_principal),
) -> Principal:
    if not principal.is_user:
        raise ForbiddenError("This action is only available to users")
    return principal


async def require_counselor(
    principal: Principal = Depends(get_current_principal),
) -> Principal:
    if not principal.is_counselor:
        raise ForbiddenError("This action is only available to counselors")
    return principal


# ---------------------------------------------------------------------------
# Service constructors, wired via Depends()
# ---------------------------------------------------------------------------

async def get_matcher(db: AsyncSession = Depends(get_db)) -> CounselorMatcher:
    """Return a CounselorMatcher instance."""
    return CounselorMatcher(db=db)


async def get_session_service(
    db: AsyncSession = Depends(get_db),
    matcher: CounselorMatcher = Depends(get_matcher),
) -> SessionService:
    """Return a SessionService instance."""
    return SessionService(db=db, matcher=matcher)


async def get_counselor_directory(
    db: AsyncSession = Depends(get_db),
) -> CounselorDirectory:
    """Return a CounselorDirectory instance."""
    return CounselorDirectory(db=db)


async def get_escalation_notifier(
    db: AsyncSession = Depends(get_db),
) -> EscalationNotifier:
    """Return an EscalationNotifier for the configured webhook."""
    return EscalationNotifier(db=db)


def get_realtime_relay() -> RealtimeRelay:
    """Return the process-wide realtime relay."""
    return get_relay()
