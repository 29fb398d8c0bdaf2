"""Chat message request/response schemas."""

import uuid
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from app.core.config import settings
from app.models.chat_message import MessageKind, SenderKind
from app.models.chat_session import SessionStatus


class MessageCreateRequest(BaseModel):
    """POST /v1/sessions/{session_id}/messages request body."""

    message: str = Field(min_length=1, max_length=settings.max_message_length)
    message_kind: Literal["text", "image", "file"] = "text"
    attachment_url: str | None = Field(default=None, max_length=2048)


class MessageEditRequest(BaseModel):
    """PUT /v1/sessions/{session_id}/messages/{message_id} request body."""

    message: str = Field(min_length=1, max_length=settings.max_message_length)


class MessageResponse(BaseModel):
    """A single persisted chat message."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    session_id: uuid.UUID
    sender_id: uuid.UUID
    sender_kind: SenderKind
    body: str
    message_kind: MessageKind
    attachment_url: str | None = None
    is_read: bool = False
    sent_at: datetime
    is_edited: bool = False
    edited_at: datetime | None = None


class SessionStateSummary(BaseModel):
    """Session header returned alongside a message page."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    status: SessionStatus
    counselor_id: uuid.UUID | None = None


class MessageListResponse(BaseModel):
    """GET /v1/sessions/{session_id}/messages response body.

    Messages are in chronological order (oldest first).
    """

    messages: list[MessageResponse]
    session: SessionStateSummary
