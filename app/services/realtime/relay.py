"""In-process realtime relay over WebSockets.

Rooms are plain sets of connections held in this process:
  - ``chat:{session_id}``  joined explicitly by session participants
  - ``user:{account_id}``  joined automatically on connect

Delivery is best effort and fire-and-forget. A party that is not connected
when an event is emitted never sees it; the REST message endpoints are the
durable path. A failing socket is logged and skipped, never surfaced to the
emitter. Membership lives in local memory, so every party must be connected
to the same process.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Protocol
from uuid import UUID

import structlog
from fastapi.encoders import jsonable_encoder

logger = structlog.get_logger(__name__)


class SocketLike(Protocol):
    async def send_json(self, data: Any) -> None: ...


@dataclass(eq=False)
class Connection:
    """One connected socket and the rooms it belongs to."""

    websocket: SocketLike
    account_id: UUID
    account_kind: str
    rooms: set[str] = field(default_factory=set)


class RealtimeRelay:
    """Room-based pub/sub for live chat notifications."""

    def __init__(self) -> None:
        self._rooms: dict[str, set[Connection]] = defaultdict(set)
        self._connections: set[Connection] = set()

    @staticmethod
    def session_room(session_id: UUID | str) -> str:
        return f"chat:{session_id}"

    @staticmethod
    def account_room(account_id: UUID | str) -> str:
        return f"user:{account_id}"

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    def connect(
        self, websocket: SocketLike, account_id: UUID, account_kind: str
    ) -> Connection:
        conn = Connection(
            websocket=websocket, account_id=account_id, account_kind=account_kind
        )
        self._connections.add(conn)
        self.join(conn, self.account_room(account_id))
        logger.info(
            "relay_connected",
            account_id=str(account_id),
            account_kind=account_kind,
            connections=len(self._connections),
        )
        return conn

    def disconnect(self, conn: Connection) -> None:
        for room in list(conn.rooms):
            self.leave(conn, room)
        self._connections.discard(conn)
        logger.info(
            "relay_disconnected",
            account_id=str(conn.account_id),
            connections=len(self._connections),
        )

    def join(self, conn: Connection, room: str) -> None:
        self._rooms[room].add(conn)
        conn.rooms.add(room)

    def leave(self, conn: Connection, room: str) -> None:
        members = self._rooms.get(room)
        if members is not None:
            members.discard(conn)
            if not members:
                del self._rooms[room]
        conn.rooms.discard(room)

    def is_member(self, conn: Connection, room: str) -> bool:
        return room in conn.rooms

    def members(self, room: str) -> set[Connection]:
        return set(self._rooms.get(room, ()))

    async def emit(
        self,
        room: str,
        event: str,
        data: dict[str, Any],
        exclude: Connection | None = None,
    ) -> int:
        """Send an event to every member of a room. Returns deliveries made."""
        targets = [c for c in self._rooms.get(room, ()) if c is not exclude]
        return await self._deliver(targets, event, data)

    async def broadcast(
        self,
        event: str,
        data: dict[str, Any],
        exclude: Connection | None = None,
    ) -> int:
        """Send an event to every connected party."""
        targets = [c for c in self._connections if c is not exclude]
        return await self._deliver(targets, event, data)

    async def send(self, conn: Connection, event: str, data: dict[str, Any]) -> bool:
        """Send an event to a single connection."""
        return await self._send(conn, {"event": event, "data": jsonable_encoder(data)})

    async def _deliver(
        self, targets: list[Connection], event: str, data: dict[str, Any]
    ) -> int:
        if not targets:
            return 0
        frame = {"event": event, "data": jsonable_encoder(data)}
        results = await asyncio.gather(
            *(self._send(c, frame) for c in targets), return_exceptions=True
        )
        return sum(1 for r in results if r is True)

    async def _send(self, conn: Connection, frame: dict[str, Any]) -> bool:
        try:
            await conn.websocket.send_json(frame)
            return True
        except Exception as e:
            logger.warning(
                "relay_send_failed",
                account_id=str(conn.account_id),
                relay_event=frame.get("event"),
                error=str(e),
            )
            return False


relay = RealtimeRelay()


def get_relay() -> RealtimeRelay:
    """FastAPI dependency returning the process-wide relay."""
    return relay
