"""Chat message ORM model."""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.postgres import Base


class SenderKind(str, enum.Enum):
    USER = "user"
    COUNSELOR = "counselor"


class MessageKind(str, enum.Enum):
    TEXT = "text"
    IMAGE = "image"
    FILE = "file"
    RESOURCE = "resource"
    SYSTEM = "system"


class ChatMessage(Base):
    __tablename__ = "chat_messages"
    __table_args__ = (
        Index("ix_chat_messages_session_sent_at", "session_id", "sent_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    session_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("chat_sessions.id"), nullable=False
    )
    # Polymorphic: points at users.id or counselors.id depending on sender_kind.
    sender_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)
    sender_kind: Mapped[str] = mapped_column(Text, nullable=False)  # 'user' | 'counselor'
    body: Mapped[str] = mapped_column(Text, nullable=False)
    message_kind: Mapped[str] = mapped_column(
        Text, default=MessageKind.TEXT.value
    )  # 'text' | 'image' | 'file' | 'resource' | 'system'
    attachment_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False)
    sent_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    is_edited: Mapped[bool] = mapped_column(Boolean, default=False)
    edited_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    session: Mapped["ChatSession"] = relationship(back_populates="messages")  # noqa: F821
