"""Unit tests for the in-process realtime relay.

Tests:
  - connect auto-joins the account room
  - room members receive emitted events, non-members do not
  - the excluded connection is skipped
  - a failing socket does not stop delivery to the others
  - disconnect removes the connection from every room
"""

from __future__ import annotations

import uuid

import pytest

from app.services.realtime.relay import RealtimeRelay
from tests.conftest import FakeSocket


class TestRooms:
    def test_connect_joins_account_room(self, relay: RealtimeRelay) -> None:
        account_id = uuid.uuid4()
        conn = relay.connect(FakeSocket(), account_id, "user")

        assert relay.is_member(conn, f"user:{account_id}")
        assert relay.connection_count == 1

    def test_disconnect_leaves_all_rooms(self, relay: RealtimeRelay) -> None:
        conn = relay.connect(FakeSocket(), uuid.uuid4(), "user")
        room = RealtimeRelay.session_room(uuid.uuid4())
        relay.join(conn, room)

        relay.disconnect(conn)

        assert relay.members(room) == set()
        assert conn.rooms == set()
        assert relay.connection_count == 0

    def test_leave_only_affects_that_room(self, relay: RealtimeRelay) -> None:
        conn = relay.connect(FakeSocket(), uuid.uuid4(), "counselor")
        first, second = "chat:a", "chat:b"
        relay.join(conn, first)
        relay.join(conn, second)

        relay.leave(conn, first)

        assert not relay.is_member(conn, first)
        assert relay.is_member(conn, second)


class TestEmit:
    @pytest.mark.asyncio
    async def test_members_receive_non_members_do_not(
        self, relay: RealtimeRelay
    ) -> None:
        inside, outside = FakeSocket(), FakeSocket()
        conn = relay.connect(inside, uuid.uuid4(), "user")
        relay.connect(outside, uuid.uuid4(), "user")
        relay.join(conn, "chat:s1")

        delivered = await relay.emit("chat:s1", "chat:typing", {"is_typing": True})

        assert delivered == 1
        assert inside.events("chat:typing") == [
            {"event": "chat:typing", "data": {"is_typing": True}}
        ]
        assert outside.sent == []

    @pytest.mark.asyncio
    async def test_excluded_connection_is_skipped(self, relay: RealtimeRelay) -> None:
        sender_socket, peer_socket = FakeSocket(), FakeSocket()
        sender = relay.connect(sender_socket, uuid.uuid4(), "user")
        peer = relay.connect(peer_socket, uuid.uuid4(), "counselor")
        relay.join(sender, "chat:s1")
        relay.join(peer, "chat:s1")

        await relay.emit("chat:s1", "chat:message", {"message": "hi"}, exclude=sender)

        assert sender_socket.sent == []
        assert len(peer_socket.events("chat:message")) == 1

    @pytest.mark.asyncio
    async def test_failing_socket_does_not_block_others(
        self, relay: RealtimeRelay
    ) -> None:
        broken, healthy = FakeSocket(fail=True), FakeSocket()
        relay.join(relay.connect(broken, uuid.uuid4(), "user"), "chat:s1")
        relay.join(relay.connect(healthy, uuid.uuid4(), "user"), "chat:s1")

        delivered = await relay.emit("chat:s1", "session:closed", {"session_id": "s1"})

        assert delivered == 1
        assert len(healthy.events("session:closed")) == 1

    @pytest.mark.asyncio
    async def test_emit_to_empty_room(self, relay: RealtimeRelay) -> None:
        assert await relay.emit("chat:nobody", "chat:typing", {}) == 0

    @pytest.mark.asyncio
    async def test_payload_is_json_encoded(self, relay: RealtimeRelay) -> None:
        socket = FakeSocket()
        account_id = uuid.uuid4()
        relay.connect(socket, account_id, "user")

        await relay.emit(
            RealtimeRelay.account_room(account_id),
            "session:assigned",
            {"session_id": account_id},
        )

        assert socket.sent[0]["data"] == {"session_id": str(account_id)}

    @pytest.mark.asyncio
    async def test_broadcast_reaches_everyone_but_excluded(
        self, relay: RealtimeRelay
    ) -> None:
        a, b, c = FakeSocket(), FakeSocket(), FakeSocket()
        conn_a = relay.connect(a, uuid.uuid4(), "counselor")
        relay.connect(b, uuid.uuid4(), "user")
        relay.connect(c, uuid.uuid4(), "user")

        delivered = await relay.broadcast("counselor:online", {}, exclude=conn_a)

        assert delivered == 2
        assert a.sent == []
