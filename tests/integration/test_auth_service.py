"""Integration tests for AuthService: registration, login and token resolution."""

from __future__ import annotations

import uuid
from datetime import timedelta

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    AccountInactiveError,
    EmailTakenError,
    InvalidCredentialsError,
    TokenExpiredError,
    UnauthenticatedError,
)
from app.core.security import create_access_token
from app.services.auth import AccountKind, AuthService
from tests.conftest import PASSWORD


class TestRegisterAndLogin:
    @pytest.mark.asyncio
    async def test_register_then_login(self, db: AsyncSession) -> None:
        auth = AuthService(db)
        user, token = await auth.register_user(
            email="  Alex@Example.com ",
            password="long-enough-pw",
            first_name="Alex",
            last_name="Doe",
        )
        await db.commit()

        assert user.email == "alex@example.com"
        principal = await auth.resolve(token)
        assert principal.id == user.id
        assert principal.kind is AccountKind.USER

        logged_in, _ = await auth.login_user("alex@example.com", "long-enough-pw")
        assert logged_in.last_login_at is not None

    @pytest.mark.asyncio
    async def test_duplicate_email_refused(self, db: AsyncSession, make_user) -> None:
        await make_user(email="taken@example.com")

        with pytest.raises(EmailTakenError):
            await AuthService(db).register_user(
                email="taken@example.com",
                password="long-enough-pw",
                first_name="A",
                last_name="B",
            )

    @pytest.mark.asyncio
    async def test_wrong_password(self, db: AsyncSession, make_user) -> None:
        user = await make_user()

        with pytest.raises(InvalidCredentialsError):
            await AuthService(db).login_user(user.email, "not-the-password")

    @pytest.mark.asyncio
    async def test_unknown_email(self, db: AsyncSession) -> None:
        with pytest.raises(InvalidCredentialsError):
            await AuthService(db).login_user("ghost@example.com", PASSWORD)

    @pytest.mark.asyncio
    async def test_counselor_login_issues_counselor_token(
        self, db: AsyncSession, make_counselor
    ) -> None:
        counselor = await make_counselor()
        auth = AuthService(db)

        _, token = await auth.login_counselor(counselor.email, PASSWORD)
        principal = await auth.resolve(token)

        assert principal.kind is AccountKind.COUNSELOR
        assert principal.id == counselor.id


class TestResolve:
    @pytest.mark.asyncio
    async def test_expired_token(self, db: AsyncSession, make_user) -> None:
        user = await make_user()
        token = create_access_token(user.id, "user", expires_delta=timedelta(seconds=-1))

        with pytest.raises(TokenExpiredError):
            await AuthService(db).resolve(token)

    @pytest.mark.asyncio
    async def test_garbage_token(self, db: AsyncSession) -> None:
        with pytest.raises(UnauthenticatedError):
            await AuthService(db).resolve("not.a.jwt")

    @pytest.mark.asyncio
    async def test_unknown_account(self, db: AsyncSession) -> None:
        token = create_access_token(uuid.uuid4(), "user")

        with pytest.raises(UnauthenticatedError):
            await AuthService(db).resolve(token)

    @pytest.mark.asyncio
    async def test_kind_selects_account_table(
        self, db: AsyncSession, make_user
    ) -> None:
        user = await make_user()
        token = create_access_token(user.id, "counselor")

        with pytest.raises(UnauthenticatedError):
            await AuthService(db).resolve(token)

    @pytest.mark.asyncio
    async def test_deactivated_account(self, db: AsyncSession, make_user) -> None:
        user = await make_user(is_active=False)
        token = create_access_token(user.id, "user")

        with pytest.raises(AccountInactiveError):
            await AuthService(db).resolve(token)

    @pytest.mark.asyncio
    async def test_refresh_keeps_kind(self, db: AsyncSession, make_counselor) -> None:
        counselor = await make_counselor()
        token = create_access_token(counselor.id, "counselor")

        principal, fresh = await AuthService(db).refresh(token)

        assert principal.id == counselor.id
        assert (await AuthService(db).resolve(fresh)).kind is AccountKind.COUNSELOR
