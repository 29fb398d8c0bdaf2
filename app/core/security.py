"""Password hashing and JWT utilities."""

from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import UUID

from jose import jwt
from passlib.context import CryptContext

from app.core.config import settings

_pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_password(raw_password: str) -> str:
    """Hash a plaintext password for storage."""
    return _pwd_context.hash(raw_password)


def verify_password(raw_password: str, stored_hash: str) -> bool:
    """Verify a plaintext password against its stored hash."""
    return _pwd_context.verify(raw_password, stored_hash)


def create_access_token(
    account_id: UUID,
    kind: str,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a signed access token for a user or counselor account."""
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    to_encode: dict[str, Any] = {
        "sub": str(account_id),
        "kind": kind,
        "exp": expire,
    }
    return jwt.encode(
        to_encode,
        settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
    )


def decode_access_token(token: str) -> dict[str, Any]:
    """Decode and validate an access token.

    Raises jose.ExpiredSignatureError for expired tokens and JWTError for
    anything else that fails validation.
    """
    return jwt.decode(
        token,
        settings.jwt_secret_key,
        algorithms=[settings.jwt_algorithm],
    )
