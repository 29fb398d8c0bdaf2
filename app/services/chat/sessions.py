"""Chat session state machine.

    waiting ──(counselor assigned)──▶ active ──(end)──▶ closed
       │                                │                  ▲
       └──────(escalate)──▶ escalated ◀─┘                  │
                                └──────────(end)───────────┘

Nothing leaves closed. A closed session accepts exactly one rating.
Every mutating method loads the session row FOR UPDATE so concurrent
requests against the same session serialize. The caller owns the
transaction: methods flush, route handlers commit.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from datetime import datetime, timezone
from uuid import UUID

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.exceptions import (
    ForbiddenError,
    MessageNotFoundError,
    SessionAlreadyOpenError,
    SessionAlreadyRatedError,
    SessionClosedError,
    SessionInactiveError,
    SessionNotClosedError,
    SessionNotFoundError,
)
from app.models.chat_message import ChatMessage, MessageKind
from app.models.chat_session import (
    OPEN_STATUSES,
    ChatSession,
    SessionPriority,
    SessionStatus,
)
from app.models.counselor import Counselor, CounselorStatus
from app.services.auth import Principal
from app.services.chat.matcher import CounselorMatcher

logger = structlog.get_logger(__name__)


def _as_utc(value: datetime) -> datetime:
    """Some drivers hand back naive datetimes; treat them as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def duration_minutes(started_at: datetime, ended_at: datetime) -> int:
    """Whole minutes between two instants, halves rounded up."""
    seconds = (_as_utc(ended_at) - _as_utc(started_at)).total_seconds()
    return max(0, math.floor(seconds / 60 + 0.5))


class SessionService:
    """Governs chat session transitions and message traffic."""

    def __init__(
        self,
        db: AsyncSession,
        matcher: CounselorMatcher | None = None,
    ) -> None:
        self._db = db
        self._matcher = matcher or CounselorMatcher(db)

    # ------------------------------------------------------------------
    # Lookup and access control
    # ------------------------------------------------------------------

    async def _load(self, session_id: UUID, lock: bool = False) -> ChatSession:
        stmt = select(ChatSession).where(ChatSession.id == session_id)
        if lock:
            stmt = stmt.with_for_update()
        result = await self._db.execute(stmt)
        session = result.scalar_one_or_none()
        if session is None:
            raise SessionNotFoundError()
        return session

    @staticmethod
    def _check_participant(session: ChatSession, principal: Principal) -> None:
        if principal.is_user and session.user_id == principal.id:
            return
        if principal.is_counselor and session.counselor_id == principal.id:
            return
        raise ForbiddenError("Session belongs to another account")

    async def get_for_participant(
        self, principal: Principal, session_id: UUID
    ) -> ChatSession:
        session = await self._load(session_id)
        self._check_participant(session, principal)
        return session

    async def _open_session_id(self, user_id: UUID) -> UUID | None:
        result = await self._db.execute(
            select(ChatSession.id).where(
                ChatSession.user_id == user_id,
                ChatSession.status.in_(OPEN_STATUSES),
            )
        )
        return result.scalars().first()

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    async def list_sessions(
        self,
        principal: Principal,
        status: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[Sequence[ChatSession], int]:
        """The caller's sessions, newest first, plus the unpaged total."""
        if principal.is_counselor:
            owner_clause = ChatSession.counselor_id == principal.id
        else:
            owner_clause = ChatSession.user_id == principal.id

        filters = [owner_clause]
        if status is not None:
            filters.append(ChatSession.status == status)

        total = await self._db.scalar(
            select(func.count()).select_from(ChatSession).where(*filters)
        )
        result = await self._db.execute(
            select(ChatSession)
            .where(*filters)
            .options(selectinload(ChatSession.counselor))
            .order_by(ChatSession.started_at.desc())
            .limit(limit)
            .offset(offset)
        )
        return result.scalars().all(), int(total or 0)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def create_session(
        self,
        principal: Principal,
        topic: str | None = None,
        description: str | None = None,
        priority: str = SessionPriority.MEDIUM.value,
        is_anonymous: bool = False,
    ) -> ChatSession:
        """Open a session and try to match a counselor immediately.

        The partial unique index on (user_id) for open sessions backs the
        pre-check, so two concurrent creates cannot both succeed.
        """
        if not principal.is_user:
            raise ForbiddenError("Only users can open chat sessions")

        existing_id = await self._open_session_id(principal.id)
        if existing_id is not None:
            raise SessionAlreadyOpenError(session_id=existing_id)

        session = ChatSession(
            user_id=principal.id,
            topic=topic,
            description=description,
            priority=priority,
            is_anonymous=is_anonymous,
            status=SessionStatus.WAITING.value,
            tags=[],
            started_at=datetime.now(timezone.utc),
        )
        self._db.add(session)
        try:
            await self._db.flush()
        except IntegrityError as e:
            raise SessionAlreadyOpenError() from e

        counselor = await self._matcher.select_counselor()
        if counselor is not None:
            await self._matcher.assign(session, counselor)

        logger.info(
            "session_created",
            session_id=str(session.id),
            user_id=str(principal.id),
            status=session.status,
            priority=session.priority,
            counselor_assigned=counselor is not None,
        )
        return session

    async def end_session(self, principal: Principal, session_id: UUID) -> ChatSession:
        """Close a session and hand its counselor back to the pool."""
        session = await self._load(session_id, lock=True)
        self._check_participant(session, principal)

        if session.status == SessionStatus.CLOSED.value:
            raise SessionClosedError()
        if principal.is_counselor and session.status != SessionStatus.ACTIVE.value:
            raise ForbiddenError("Counselors can only end active sessions")

        now = datetime.now(timezone.utc)
        session.status = SessionStatus.CLOSED.value
        session.ended_at = now
        session.duration = duration_minutes(session.started_at, now)

        # Single-session capacity: the counselor is free as soon as this ends.
        if session.counselor_id is not None:
            await self._db.execute(
                update(Counselor)
                .where(Counselor.id == session.counselor_id)
                .values(status=CounselorStatus.AVAILABLE.value)
            )
        await self._db.flush()

        logger.info(
            "session_ended",
            session_id=str(session.id),
            ended_by=principal.kind.value,
            duration_minutes=session.duration,
            counselor_id=str(session.counselor_id) if session.counselor_id else None,
        )
        return session

    async def rate_session(
        self,
        principal: Principal,
        session_id: UUID,
        rating: int,
        feedback: str | None = None,
    ) -> ChatSession:
        """Record the one-time rating and recompute the counselor average."""
        if not principal.is_user:
            raise ForbiddenError("Only the session owner can rate it")

        session = await self._load(session_id, lock=True)
        self._check_participant(session, principal)

        if session.status != SessionStatus.CLOSED.value:
            raise SessionNotClosedError()
        if session.rating is not None:
            raise SessionAlreadyRatedError()

        session.rating = rating
        session.feedback = feedback
        await self._db.flush()

        if session.counselor_id is not None:
            await self._refresh_counselor_rating(session.counselor_id)

        logger.info(
            "session_rated",
            session_id=str(session.id),
            rating=rating,
        )
        return session

    async def _refresh_counselor_rating(self, counselor_id: UUID) -> None:
        # Lock the counselor so concurrent ratings recompute one after another.
        result = await self._db.execute(
            select(Counselor).where(Counselor.id == counselor_id).with_for_update()
        )
        counselor = result.scalar_one_or_none()
        if counselor is None:
            return

        average = await self._db.scalar(
            select(func.avg(ChatSession.rating)).where(
                ChatSession.counselor_id == counselor_id,
                ChatSession.rating.is_not(None),
            )
        )
        counselor.rating = float(average or 0.0)
        await self._db.flush()

    async def escalate_session(
        self,
        principal: Principal,
        session_id: UUID,
        reason: str,
    ) -> ChatSession:
        """Flag a waiting or active session for urgent follow-up.

        The counselor stays busy until the session is ended.
        """
        session = await self._load(session_id, lock=True)
        self._check_participant(session, principal)

        if session.status == SessionStatus.CLOSED.value:
            raise SessionClosedError()
        if session.status == SessionStatus.ESCALATED.value:
            raise SessionInactiveError("Session has already been escalated")
        if principal.is_counselor and session.status != SessionStatus.ACTIVE.value:
            raise ForbiddenError("Counselors can only escalate active sessions")

        session.status = SessionStatus.ESCALATED.value
        session.escalation_reason = reason
        session.tags = [*(session.tags or []), "escalated"]
        session.last_activity_at = datetime.now(timezone.utc)
        await self._db.flush()

        logger.warning(
            "session_escalated",
            session_id=str(session.id),
            escalated_by=principal.kind.value,
            priority=session.priority,
        )
        return session

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def fetch_messages(
        self,
        principal: Principal,
        session_id: UUID,
        limit: int = 50,
        before: datetime | None = None,
    ) -> tuple[ChatSession, list[ChatMessage]]:
        """A page of messages in chronological order.

        Takes the newest `limit` messages older than `before`, then marks
        everything the other party sent as read.
        """
        session = await self.get_for_participant(principal, session_id)

        stmt = select(ChatMessage).where(ChatMessage.session_id == session.id)
        if before is not None:
            stmt = stmt.where(ChatMessage.sent_at < _as_utc(before))
        result = await self._db.execute(
            stmt.order_by(ChatMessage.sent_at.desc()).limit(limit)
        )
        messages = list(reversed(result.scalars().all()))

        await self._db.execute(
            update(ChatMessage)
            .where(
                ChatMessage.session_id == session.id,
                ChatMessage.sender_id != principal.id,
                ChatMessage.is_read.is_(False),
            )
            .values(is_read=True)
        )
        await self._db.flush()
        return session, messages

    async def send_message(
        self,
        principal: Principal,
        session_id: UUID,
        body: str,
        message_kind: str = MessageKind.TEXT.value,
        attachment_url: str | None = None,
    ) -> ChatMessage:
        session = await self._load(session_id, lock=True)
        self._check_participant(session, principal)

        if session.status != SessionStatus.ACTIVE.value:
            raise SessionInactiveError()

        now = datetime.now(timezone.utc)
        message = ChatMessage(
            session_id=session.id,
            sender_id=principal.id,
            sender_kind=principal.kind.value,
            body=body,
            message_kind=message_kind,
            attachment_url=attachment_url,
            sent_at=now,
        )
        self._db.add(message)
        session.last_activity_at = now
        await self._db.flush()

        logger.debug(
            "message_sent",
            session_id=str(session.id),
            message_id=str(message.id),
            sender_kind=message.sender_kind,
        )
        return message

    async def edit_message(
        self,
        principal: Principal,
        session_id: UUID,
        message_id: UUID,
        body: str,
    ) -> ChatMessage:
        """Replace the body of one of the caller's own messages."""
        session = await self._load(session_id, lock=True)
        self._check_participant(session, principal)

        if session.status != SessionStatus.ACTIVE.value:
            raise SessionInactiveError("Cannot edit messages in inactive session")

        result = await self._db.execute(
            select(ChatMessage).where(
                ChatMessage.id == message_id,
                ChatMessage.session_id == session.id,
            )
        )
        message = result.scalar_one_or_none()
        if message is None:
            raise MessageNotFoundError()
        if (
            message.sender_id != principal.id
            or message.sender_kind != principal.kind.value
            or message.message_kind == MessageKind.SYSTEM.value
        ):
            raise ForbiddenError("Only the sender can edit this message")

        message.body = body
        message.is_edited = True
        message.edited_at = datetime.now(timezone.utc)
        await self._db.flush()
        return message
