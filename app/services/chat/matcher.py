"""Counselor matching.

A new session gets the eligible counselor with the fewest total sessions.
Selection and the flip to busy happen in the caller's transaction with the
counselor row locked (FOR UPDATE SKIP LOCKED), so two concurrent requests can
never book the same counselor: the second one skips the locked row and takes
the next candidate, or finds none and stays waiting.
"""

from __future__ import annotations

from datetime import datetime, timezone

import structlog
from sqlalchemy import and_, case, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.models.chat_message import ChatMessage, MessageKind, SenderKind
from app.models.chat_session import ChatSession, SessionPriority, SessionStatus
from app.models.counselor import Counselor, CounselorStatus
from app.services.chat.directory import eligible_counselors
from app.services.realtime.relay import RealtimeRelay

logger = structlog.get_logger(__name__)


_PRIORITY_RANK = case(
    {
        SessionPriority.EMERGENCY.value: 0,
        SessionPriority.HIGH.value: 1,
        SessionPriority.MEDIUM.value: 2,
        SessionPriority.LOW.value: 3,
    },
    value=ChatSession.priority,
    else_=4,
)

_ESCALATED_FIRST = case(
    (ChatSession.status == SessionStatus.ESCALATED.value, 0),
    else_=1,
)


class CounselorMatcher:
    """Assigns available counselors to sessions."""

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def select_counselor(self) -> Counselor | None:
        """Lock and return the least busy eligible counselor, or None."""
        result = await self._db.execute(
            eligible_counselors().limit(1).with_for_update(skip_locked=True)
        )
        return result.scalar_one_or_none()

    async def assign(self, session: ChatSession, counselor: Counselor) -> ChatMessage:
        """Book the counselor for the session and post the greeting.

        The session must already be flushed (it needs an id). Everything here
        lands in the caller's transaction: the greeting never exists without
        the assignment. A session escalated while unassigned becomes active;
        its escalation reason and tag are kept.
        """
        now = datetime.now(timezone.utc)

        counselor.status = CounselorStatus.BUSY.value
        counselor.total_sessions = (counselor.total_sessions or 0) + 1

        session.counselor_id = counselor.id
        session.status = SessionStatus.ACTIVE.value
        session.last_activity_at = now

        greeting = ChatMessage(
            session_id=session.id,
            sender_id=counselor.id,
            sender_kind=SenderKind.COUNSELOR.value,
            body=settings.welcome_message,
            message_kind=MessageKind.SYSTEM.value,
            sent_at=now,
        )
        self._db.add(greeting)
        await self._db.flush()

        logger.info(
            "counselor_assigned",
            session_id=str(session.id),
            counselor_id=str(counselor.id),
            counselor_total_sessions=counselor.total_sessions,
        )
        return greeting

    async def drain_waiting_queue(self) -> list[ChatSession]:
        """Match queued sessions to counselors that became available.

        Queued means `waiting`, or `escalated` before any counselor was
        assigned. Escalated sessions go first, then highest priority, then
        oldest. Stops as soon as no counselor is eligible. Returns the
        sessions that were assigned.
        """
        result = await self._db.execute(
            select(ChatSession)
            .where(
                or_(
                    ChatSession.status == SessionStatus.WAITING.value,
                    and_(
                        ChatSession.status == SessionStatus.ESCALATED.value,
                        ChatSession.counselor_id.is_(None),
                    ),
                )
            )
            .order_by(_ESCALATED_FIRST, _PRIORITY_RANK, ChatSession.started_at.asc())
            .with_for_update(skip_locked=True)
        )
        waiting = result.scalars().all()

        assigned: list[ChatSession] = []
        for session in waiting:
            counselor = await self.select_counselor()
            if counselor is None:
                break
            await self.assign(session, counselor)
            assigned.append(session)

        if assigned:
            logger.info(
                "waiting_queue_drained",
                assigned=len(assigned),
                still_waiting=len(waiting) - len(assigned),
            )
        return assigned


async def announce_assignment(relay: RealtimeRelay, session: ChatSession) -> None:
    """Tell both participants a counselor has been assigned."""
    data = {
        "session_id": session.id,
        "counselor_id": session.counselor_id,
        "status": session.status,
    }
    await relay.emit(RealtimeRelay.account_room(session.user_id), "session:assigned", data)
    if session.counselor_id is not None:
        await relay.emit(
            RealtimeRelay.account_room(session.counselor_id), "session:assigned", data
        )
