"""Counselor directory schemas."""

import uuid
from typing import Literal

from pydantic import BaseModel, ConfigDict

from app.models.counselor import CounselorStatus


class CounselorSummary(BaseModel):
    """Public counselor profile shown to users."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    first_name: str
    last_name: str
    avatar: str | None = None
    bio: str | None = None
    specializations: list[str] = []
    rating: float = 0.0
    total_sessions: int = 0
    is_online: bool = False


class CounselorStatusUpdate(BaseModel):
    """PUT /v1/counselors/me/status request body.

    busy is managed by the matcher and cannot be set directly.
    """

    status: Literal["available", "offline"]


class CounselorStatusResponse(BaseModel):
    """PUT /v1/counselors/me/status response body."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    status: CounselorStatus
    is_online: bool
