"""Account endpoints: registration, login, token refresh."""

from fastapi import APIRouter, Depends, status

from app.api.deps import auth_rate_limit, get_auth_service, get_current_principal
from app.models.counselor import Counselor
from app.models.user import User
from app.schemas.auth import (
    AccountResponse,
    LoginRequest,
    RefreshRequest,
    RegisterRequest,
    TokenResponse,
)
from app.services.auth import AccountKind, AuthService, Principal

router = APIRouter(prefix="/auth", tags=["auth"])


def _account(account: User | Counselor, kind: AccountKind) -> AccountResponse:
    return AccountResponse(
        id=account.id,
        kind=kind.value,
        email=account.email,
        first_name=account.first_name,
        last_name=account.last_name,
        is_active=account.is_active,
        created_at=account.created_at,
    )


@router.post(
    "/register",
    response_model=TokenResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(auth_rate_limit)],
)
async def register(
    body: RegisterRequest,
    auth: AuthService = Depends(get_auth_service),
) -> TokenResponse:
    """Create a user account."""
    user, token = await auth.register_user(
        email=body.email,
        password=body.password,
        first_name=body.first_name,
        last_name=body.last_name,
    )
    return TokenResponse(token=token, account=_account(user, AccountKind.USER))


@router.post(
    "/login",
    response_model=TokenResponse,
    dependencies=[Depends(auth_rate_limit)],
)
async def login(
    body: LoginRequest,
    auth: AuthService = Depends(get_auth_service),
) -> TokenResponse:
    user, token = await auth.login_user(body.email, body.password)
    return TokenResponse(token=token, account=_account(user, AccountKind.USER))


@router.post(
    "/counselor/login",
    response_model=TokenResponse,
    dependencies=[Depends(auth_rate_limit)],
)
async def counselor_login(
    body: LoginRequest,
    auth: AuthService = Depends(get_auth_service),
) -> TokenResponse:
    counselor, token = await auth.login_counselor(body.email, body.password)
    return TokenResponse(
        token=token, account=_account(counselor, AccountKind.COUNSELOR)
    )


@router.post("/refresh", response_model=TokenResponse)
async def refresh(
    body: RefreshRequest,
    auth: AuthService = Depends(get_auth_service),
) -> TokenResponse:
    """Exchange a still-valid token for a fresh one."""
    principal, token = await auth.refresh(body.token)
    return TokenResponse(
        token=token, account=_account(principal.account, principal.kind)
    )


@router.get("/me", response_model=AccountResponse)
async def me(
    principal: Principal = Depends(get_current_principal),
) -> AccountResponse:
    return _account(principal.account, principal.kind)
