"""WebSocket endpoint for live chat events.

The bearer token is checked during the handshake, from the ``token`` query
parameter or an ``Authorization: Bearer`` header. A missing or rejected token
closes the socket with 1008 (policy violation) before it is accepted.
"""

import structlog
from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.api.deps import bearer_token, get_realtime_relay
from app.core.exceptions import MentalSpaceError
from app.db.postgres import get_session_factory
from app.services.auth import AuthService, Principal
from app.services.realtime.gateway import RealtimeGateway
from app.services.realtime.relay import RealtimeRelay

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["realtime"])


async def _authenticate(
    token: str | None,
    session_factory: async_sessionmaker[AsyncSession],
) -> Principal | None:
    if not token:
        return None
    try:
        async with session_factory() as db:
            return await AuthService(db).resolve(token)
    except MentalSpaceError as e:
        logger.info("relay_handshake_rejected", code=e.code)
        return None


@router.websocket("/ws")
async def realtime(
    websocket: WebSocket,
    token: str | None = Query(default=None),
    relay: RealtimeRelay = Depends(get_realtime_relay),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> None:
    token = token or bearer_token(websocket.headers.get("authorization"))
    principal = await _authenticate(token, session_factory)
    if principal is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    gateway = RealtimeGateway(relay, session_factory)
    conn = await gateway.open(websocket, principal)
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            await gateway.receive(conn, message.get("text"))
    except WebSocketDisconnect:
        pass
    finally:
        await gateway.close(conn)
