"""Chat session ORM model."""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Text,
    Uuid,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.postgres import Base


class SessionStatus(str, enum.Enum):
    WAITING = "waiting"
    ACTIVE = "active"
    CLOSED = "closed"
    ESCALATED = "escalated"


class SessionPriority(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    EMERGENCY = "emergency"


# A user may hold at most one session in these states.
OPEN_STATUSES = (
    SessionStatus.WAITING.value,
    SessionStatus.ACTIVE.value,
    SessionStatus.ESCALATED.value,
)

_OPEN_PREDICATE = text("status IN ('waiting', 'active', 'escalated')")


class ChatSession(Base):
    __tablename__ = "chat_sessions"
    __table_args__ = (
        Index(
            "uq_chat_sessions_user_open",
            "user_id",
            unique=True,
            postgresql_where=_OPEN_PREDICATE,
            sqlite_where=_OPEN_PREDICATE,
        ),
        Index("ix_chat_sessions_status", "status"),
        Index("ix_chat_sessions_counselor_id", "counselor_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False
    )
    counselor_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("counselors.id"), nullable=True
    )
    status: Mapped[str] = mapped_column(
        Text, default=SessionStatus.WAITING.value
    )  # 'waiting' | 'active' | 'closed' | 'escalated'
    priority: Mapped[str] = mapped_column(
        Text, default=SessionPriority.MEDIUM.value
    )  # 'low' | 'medium' | 'high' | 'emergency'
    topic: Mapped[str | None] = mapped_column(Text, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_anonymous: Mapped[bool] = mapped_column(Boolean, default=False)
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    last_activity_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    ended_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    duration: Mapped[int | None] = mapped_column(Integer, nullable=True)  # minutes
    rating: Mapped[int | None] = mapped_column(Integer, nullable=True)
    feedback: Mapped[str | None] = mapped_column(Text, nullable=True)
    tags: Mapped[list[str]] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"), default=list
    )
    escalation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Relationships
    user: Mapped["User"] = relationship(back_populates="chat_sessions")  # noqa: F821
    counselor: Mapped["Counselor"] = relationship(  # noqa: F821
        back_populates="chat_sessions"
    )
    messages: Mapped[list["ChatMessage"]] = relationship(  # noqa: F821
        back_populates="session", lazy="noload"
    )
