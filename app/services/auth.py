"""Account authentication: registration, login, token refresh and resolution.

Tokens carry the account id (``sub``) and the account kind (``kind``).
resolve() is the single place where a bearer token becomes a Principal;
both the HTTP dependency and the WebSocket handshake go through it.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime, timezone
from uuid import UUID

import structlog
from jose import ExpiredSignatureError, JWTError
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    AccountInactiveError,
    EmailTakenError,
    InvalidCredentialsError,
    TokenExpiredError,
    UnauthenticatedError,
)
from app.core.security import (
    create_access_token,
    decode_access_token,
    hash_password,
    verify_password,
)
from app.models.counselor import Counselor
from app.models.user import User

logger = structlog.get_logger(__name__)


class AccountKind(str, enum.Enum):
    USER = "user"
    COUNSELOR = "counselor"


@dataclass(frozen=True)
class Principal:
    """The resolved caller of a request or socket."""

    id: UUID
    kind: AccountKind
    is_active: bool
    account: User | Counselor | None = None

    @property
    def is_user(self) -> bool:
        return self.kind is AccountKind.USER

    @property
    def is_counselor(self) -> bool:
        return self.kind is AccountKind.COUNSELOR


def _normalize_email(email: str) -> str:
    return email.strip().lower()


class AuthService:
    """Issues and validates access tokens for users and counselors."""

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def register_user(
        self,
        email: str,
        password: str,
        first_name: str,
        last_name: str,
    ) -> tuple[User, str]:
        """Create a user account and return it with a fresh token."""
        email = _normalize_email(email)
        existing = await self._db.execute(select(User.id).where(User.email == email))
        if existing.scalar_one_or_none() is not None:
            raise EmailTakenError()

        user = User(
            email=email,
            password_hash=hash_password(password),
            first_name=first_name.strip(),
            last_name=last_name.strip(),
        )
        self._db.add(user)
        try:
            await self._db.flush()
        except IntegrityError as e:
            raise EmailTakenError() from e

        logger.info("user_registered", user_id=str(user.id))
        return user, create_access_token(user.id, AccountKind.USER.value)

    async def login_user(self, email: str, password: str) -> tuple[User, str]:
        result = await self._db.execute(
            select(User).where(User.email == _normalize_email(email))
        )
        user = result.scalar_one_or_none()
        self._check_credentials(user, password)

        user.last_login_at = datetime.now(timezone.utc)
        await self._db.flush()

        logger.info("user_logged_in", user_id=str(user.id))
        return user, create_access_token(user.id, AccountKind.USER.value)

    async def login_counselor(
        self, email: str, password: str
    ) -> tuple[Counselor, str]:
        result = await self._db.execute(
            select(Counselor).where(Counselor.email == _normalize_email(email))
        )
        counselor = result.scalar_one_or_none()
        self._check_credentials(counselor, password)

        logger.info("counselor_logged_in", counselor_id=str(counselor.id))
        return counselor, create_access_token(
            counselor.id, AccountKind.COUNSELOR.value
        )

    async def refresh(self, token: str) -> tuple[Principal, str]:
        """Exchange a still-valid token for a new one of the same kind."""
        principal = await self.resolve(token)
        return principal, create_access_token(principal.id, principal.kind.value)

    async def resolve(self, token: str) -> Principal:
        """Resolve a bearer token to an active account.

        Raises TokenExpiredError, UnauthenticatedError or AccountInactiveError.
        """
        try:
            claims = decode_access_token(token)
        except ExpiredSignatureError as e:
            raise TokenExpiredError() from e
        except JWTError as e:
            raise UnauthenticatedError("Invalid token") from e

        try:
            account_id = UUID(str(claims["sub"]))
            kind = AccountKind(claims.get("kind", AccountKind.USER.value))
        except (KeyError, ValueError) as e:
            raise UnauthenticatedError("Invalid token") from e

        model = Counselor if kind is AccountKind.COUNSELOR else User
        account = await self._db.get(model, account_id)
        if account is None:
            raise UnauthenticatedError("Invalid token, account not found")
        if not account.is_active:
            raise AccountInactiveError()

        return Principal(
            id=account.id,
            kind=kind,
            is_active=account.is_active,
            account=account,
        )

    @staticmethod
    def _check_credentials(account: User | Counselor | None, password: str) -> None:
        if account is None or not verify_password(password, account.password_hash):
            raise InvalidCredentialsError()
        if not account.is_active:
            raise AccountInactiveError()
