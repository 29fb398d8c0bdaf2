"""Chat session endpoints.

Every mutating handler commits before it pushes a realtime event, so anything
a connected client sees is already durable.
"""

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import (
    get_current_principal,
    get_db,
    get_escalation_notifier,
    get_realtime_relay,
    get_session_service,
    require_user,
)
from app.models.chat_session import SessionStatus
from app.schemas.chat import (
    MessageCreateRequest,
    MessageEditRequest,
    MessageListResponse,
    MessageResponse,
    SessionStateSummary,
)
from app.schemas.session import (
    SessionActionResponse,
    SessionCreateRequest,
    SessionCreateResponse,
    SessionEscalateRequest,
    SessionListResponse,
    SessionRateRequest,
    SessionResponse,
    SessionWithCounselor,
)
from app.services.auth import Principal
from app.services.chat.escalation import EscalationNotifier
from app.services.chat.matcher import announce_assignment
from app.services.chat.sessions import SessionService
from app.services.realtime.relay import RealtimeRelay

router = APIRouter(prefix="/sessions", tags=["sessions"])


@router.get("", response_model=SessionListResponse)
async def list_sessions(
    status_filter: SessionStatus | None = Query(default=None, alias="status"),
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    principal: Principal = Depends(get_current_principal),
    sessions: SessionService = Depends(get_session_service),
) -> SessionListResponse:
    """The caller's sessions, newest first."""
    rows, total = await sessions.list_sessions(
        principal,
        status=status_filter.value if status_filter else None,
        limit=limit,
        offset=offset,
    )
    return SessionListResponse(
        sessions=[SessionWithCounselor.model_validate(row) for row in rows],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.post(
    "",
    response_model=SessionCreateResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_session(
    body: SessionCreateRequest,
    principal: Principal = Depends(require_user),
    db: AsyncSession = Depends(get_db),
    sessions: SessionService = Depends(get_session_service),
    relay: RealtimeRelay = Depends(get_realtime_relay),
) -> SessionCreateResponse:
    """Open a chat session and match a counselor if one is free."""
    session = await sessions.create_session(
        principal,
        topic=body.topic,
        description=body.description,
        priority=body.priority.value,
        is_anonymous=body.is_anonymous,
    )
    await db.commit()

    assigned = session.counselor_id is not None
    if assigned:
        await announce_assignment(relay, session)

    return SessionCreateResponse(
        session=SessionResponse.model_validate(session),
        counselor_assigned=assigned,
    )


@router.get("/{session_id}/messages", response_model=MessageListResponse)
async def get_messages(
    session_id: UUID,
    limit: int = Query(default=50, ge=1, le=100),
    before: datetime | None = Query(default=None),
    principal: Principal = Depends(get_current_principal),
    sessions: SessionService = Depends(get_session_service),
) -> MessageListResponse:
    """A page of messages, oldest first. Marks the other party's messages read."""
    session, messages = await sessions.fetch_messages(
        principal, session_id, limit=limit, before=before
    )
    return MessageListResponse(
        messages=[MessageResponse.model_validate(m) for m in messages],
        session=SessionStateSummary.model_validate(session),
    )


@router.post(
    "/{session_id}/messages",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
)
async def send_message(
    session_id: UUID,
    body: MessageCreateRequest,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
    sessions: SessionService = Depends(get_session_service),
    relay: RealtimeRelay = Depends(get_realtime_relay),
) -> MessageResponse:
    message = await sessions.send_message(
        principal,
        session_id,
        body=body.message,
        message_kind=body.message_kind,
        attachment_url=body.attachment_url,
    )
    await db.commit()

    response = MessageResponse.model_validate(message)
    await relay.emit(
        RealtimeRelay.session_room(session_id),
        "chat:message",
        response.model_dump(mode="json"),
    )
    return response


@router.put(
    "/{session_id}/messages/{message_id}",
    response_model=MessageResponse,
)
async def edit_message(
    session_id: UUID,
    message_id: UUID,
    body: MessageEditRequest,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
    sessions: SessionService = Depends(get_session_service),
    relay: RealtimeRelay = Depends(get_realtime_relay),
) -> MessageResponse:
    message = await sessions.edit_message(
        principal, session_id, message_id, body=body.message
    )
    await db.commit()

    response = MessageResponse.model_validate(message)
    await relay.emit(
        RealtimeRelay.session_room(session_id),
        "chat:message_edited",
        response.model_dump(mode="json"),
    )
    return response


@router.put("/{session_id}/rate", response_model=SessionActionResponse)
async def rate_session(
    session_id: UUID,
    body: SessionRateRequest,
    principal: Principal = Depends(require_user),
    sessions: SessionService = Depends(get_session_service),
) -> SessionActionResponse:
    session = await sessions.rate_session(
        principal, session_id, rating=body.rating, feedback=body.feedback
    )
    return SessionActionResponse(session=SessionResponse.model_validate(session))


@router.put("/{session_id}/end", response_model=SessionActionResponse)
async def end_session(
    session_id: UUID,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
    sessions: SessionService = Depends(get_session_service),
    relay: RealtimeRelay = Depends(get_realtime_relay),
) -> SessionActionResponse:
    session = await sessions.end_session(principal, session_id)
    await db.commit()

    await relay.emit(
        RealtimeRelay.session_room(session_id),
        "session:closed",
        {
            "session_id": session.id,
            "ended_by": principal.kind.value,
            "duration": session.duration,
        },
    )
    return SessionActionResponse(session=SessionResponse.model_validate(session))


@router.put("/{session_id}/escalate", response_model=SessionActionResponse)
async def escalate_session(
    session_id: UUID,
    body: SessionEscalateRequest,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
    sessions: SessionService = Depends(get_session_service),
    notifier: EscalationNotifier = Depends(get_escalation_notifier),
    relay: RealtimeRelay = Depends(get_realtime_relay),
) -> SessionActionResponse:
    """Flag the session for urgent follow-up and fire the crisis webhook."""
    session = await sessions.escalate_session(principal, session_id, reason=body.reason)
    await db.commit()

    await notifier.notify(session)
    await relay.emit(
        RealtimeRelay.session_room(session_id),
        "session:escalated",
        {"session_id": session.id, "escalated_by": principal.kind.value},
    )
    return SessionActionResponse(session=SessionResponse.model_validate(session))
