"""Inbound socket event handling.

Clients send JSON frames shaped {"event": <name>, "data": {...}}. Each event
name maps to one handler below. Anything malformed or not permitted is
answered with an ``error`` frame to the sender only; nothing here raises
back into the socket loop.
"""

from __future__ import annotations

import json
from collections.abc import Awaitable, Callable
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.exceptions import InternalError, MentalSpaceError
from app.services.auth import AccountKind, Principal
from app.services.chat.sessions import SessionService
from app.services.realtime.relay import Connection, RealtimeRelay

logger = structlog.get_logger(__name__)

Handler = Callable[["RealtimeGateway", Connection, dict[str, Any]], Awaitable[None]]
_HANDLERS: dict[str, Handler] = {}


def handles(event: str) -> Callable[[Handler], Handler]:
    def register(fn: Handler) -> Handler:
        _HANDLERS[event] = fn
        return fn

    return register


class FrameError(Exception):
    def __init__(self, code: str, message: str) -> None:
        self.code = code
        self.message = message
        super().__init__(message)


def _session_id(data: dict[str, Any]) -> UUID:
    raw = data.get("session_id")
    if not raw:
        raise FrameError("INVALID_PAYLOAD", "session_id is required")
    try:
        return UUID(str(raw))
    except ValueError as e:
        raise FrameError("INVALID_PAYLOAD", "Invalid session_id format") from e


class RealtimeGateway:
    """Routes client frames for one relay."""

    def __init__(
        self,
        relay: RealtimeRelay,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        self._relay = relay
        self._session_factory = session_factory

    async def open(self, websocket: Any, principal: Principal) -> Connection:
        conn = self._relay.connect(websocket, principal.id, principal.kind.value)
        if principal.is_counselor:
            await self._relay.broadcast(
                "counselor:online", {"counselor_id": principal.id}, exclude=conn
            )
        return conn

    async def close(self, conn: Connection) -> None:
        self._relay.disconnect(conn)
        if conn.account_kind == AccountKind.COUNSELOR.value:
            await self._relay.broadcast(
                "counselor:offline", {"counselor_id": conn.account_id}
            )

    async def receive(self, conn: Connection, raw: str | None) -> None:
        """Decode one text frame and dispatch it. `None` stands for a binary frame."""
        try:
            if raw is None:
                raise FrameError("INVALID_FRAME", "Only text frames are accepted")
            try:
                frame = json.loads(raw)
            except ValueError as e:
                raise FrameError("INVALID_FRAME", "Frame is not valid JSON") from e
            if not isinstance(frame, dict) or not isinstance(frame.get("event"), str):
                raise FrameError("INVALID_FRAME", "Frame must carry an event name")

            handler = _HANDLERS.get(frame["event"])
            if handler is None:
                raise FrameError("UNKNOWN_EVENT", f"Unknown event {frame['event']}")

            data = frame.get("data") or {}
            if not isinstance(data, dict):
                raise FrameError("INVALID_PAYLOAD", "data must be an object")
            await handler(self, conn, data)

        except FrameError as e:
            await self._reject(conn, e.code, e.message)
        except MentalSpaceError as e:
            await self._reject(conn, e.code, e.message)
        except Exception as e:
            logger.error(
                "relay_frame_failed",
                account_id=str(conn.account_id),
                error_type=type(e).__name__,
                error=str(e),
            )
            error = InternalError()
            await self._reject(conn, error.code, error.message)

    async def _reject(self, conn: Connection, code: str, message: str) -> None:
        logger.info(
            "relay_frame_rejected",
            account_id=str(conn.account_id),
            code=code,
        )
        await self._relay.send(conn, "error", {"code": code, "message": message})

    async def _require_participant(self, conn: Connection, session_id: UUID) -> None:
        principal = Principal(
            id=conn.account_id,
            kind=AccountKind(conn.account_kind),
            is_active=True,
            account=None,
        )
        async with self._session_factory() as db:
            await SessionService(db).get_for_participant(principal, session_id)

    def _require_member(self, conn: Connection, session_id: UUID) -> str:
        room = RealtimeRelay.session_room(session_id)
        if not self._relay.is_member(conn, room):
            raise FrameError("NOT_IN_ROOM", "Join the session before sending to it")
        return room


@handles("chat:join")
async def _join(gateway: RealtimeGateway, conn: Connection, data: dict[str, Any]) -> None:
    session_id = _session_id(data)
    await gateway._require_participant(conn, session_id)

    room = RealtimeRelay.session_room(session_id)
    gateway._relay.join(conn, room)
    await gateway._relay.emit(
        room,
        "user:joined",
        {"session_id": session_id, "account_id": conn.account_id},
        exclude=conn,
    )


@handles("chat:leave")
async def _leave(gateway: RealtimeGateway, conn: Connection, data: dict[str, Any]) -> None:
    session_id = _session_id(data)
    room = RealtimeRelay.session_room(session_id)
    if not gateway._relay.is_member(conn, room):
        return
    gateway._relay.leave(conn, room)
    await gateway._relay.emit(
        room,
        "user:left",
        {"session_id": session_id, "account_id": conn.account_id},
    )


@handles("chat:message")
async def _message(gateway: RealtimeGateway, conn: Connection, data: dict[str, Any]) -> None:
    session_id = _session_id(data)
    room = gateway._require_member(conn, session_id)
    message = data.get("message")
    if not isinstance(message, str) or not message:
        raise FrameError("INVALID_PAYLOAD", "message is required")

    await gateway._relay.emit(
        room,
        "chat:message",
        {
            "session_id": session_id,
            "sender_id": conn.account_id,
            "sender_kind": conn.account_kind,
            "message": message,
        },
        exclude=conn,
    )


@handles("chat:typing")
async def _typing(gateway: RealtimeGateway, conn: Connection, data: dict[str, Any]) -> None:
    session_id = _session_id(data)
    room = gateway._require_member(conn, session_id)
    await gateway._relay.emit(
        room,
        "chat:typing",
        {
            "session_id": session_id,
            "account_id": conn.account_id,
            "is_typing": bool(data.get("is_typing", False)),
        },
        exclude=conn,
    )
