"""Authentication request/response schemas."""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class RegisterRequest(BaseModel):
    """POST /v1/auth/register request body."""

    email: EmailStr
    password: str = Field(min_length=8, max_length=128)
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)


class LoginRequest(BaseModel):
    """POST /v1/auth/login and /v1/auth/counselor/login request body."""

    email: EmailStr
    password: str = Field(min_length=1)


class RefreshRequest(BaseModel):
    """POST /v1/auth/refresh request body."""

    token: str


class AccountResponse(BaseModel):
    """Public view of a user or counselor account."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    kind: str
    email: str
    first_name: str
    last_name: str
    is_active: bool
    created_at: datetime | None = None


class TokenResponse(BaseModel):
    """Token-bearing response for register/login/refresh."""

    token: str
    token_type: str = "bearer"
    account: AccountResponse | None = None
