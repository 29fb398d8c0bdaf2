"""Chat session request/response schemas."""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from app.models.chat_session import SessionPriority, SessionStatus
from app.schemas.counselor import CounselorSummary


class SessionCreateRequest(BaseModel):
    """POST /v1/sessions request body."""

    model_config = ConfigDict(from_attributes=True)

    topic: str | None = Field(default=None, max_length=100)
    description: str | None = Field(default=None, max_length=1000)
    priority: SessionPriority = SessionPriority.MEDIUM
    is_anonymous: bool = False


class SessionResponse(BaseModel):
    """A chat session as returned to its participants."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID
    counselor_id: uuid.UUID | None = None
    status: SessionStatus
    priority: SessionPriority
    topic: str | None = None
    description: str | None = None
    is_anonymous: bool = False
    started_at: datetime
    last_activity_at: datetime | None = None
    ended_at: datetime | None = None
    duration: int | None = None
    rating: int | None = None
    feedback: str | None = None
    tags: list[str] = []
    escalation_reason: str | None = None


class SessionWithCounselor(SessionResponse):
    """List item: session plus the assigned counselor's public profile."""

    counselor: CounselorSummary | None = None


class SessionListResponse(BaseModel):
    """GET /v1/sessions response body."""

    sessions: list[SessionWithCounselor]
    total: int
    limit: int
    offset: int


class SessionCreateResponse(BaseModel):
    """POST /v1/sessions response body."""

    session: SessionResponse
    counselor_assigned: bool


class SessionRateRequest(BaseModel):
    """PUT /v1/sessions/{session_id}/rate request body."""

    rating: int = Field(ge=1, le=5)
    feedback: str | None = Field(default=None, max_length=1000)


class SessionEscalateRequest(BaseModel):
    """PUT /v1/sessions/{session_id}/escalate request body."""

    reason: str = Field(min_length=1, max_length=500)


class SessionActionResponse(BaseModel):
    """Response body for end/rate/escalate."""

    session: SessionResponse
