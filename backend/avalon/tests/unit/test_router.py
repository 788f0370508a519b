from unittest.mock import AsyncMock, patch

import pytest

from avalon.messaging.types import SessionErrorCode, SessionMessageType
from avalon.tests.helpers.session import create_started_game, game_state
from avalon.tests.mocks.connection import MockConnection


class TestMessageRouter:
    @pytest.fixture
    async def connection(self, message_router):
        connection = MockConnection()
        await message_router.handle_connect(connection)
        return connection

    async def test_invalid_message(self, message_router, connection):
        await message_router.handle_message(connection, {"type": "create_room", "target_count": 6})
        msg = connection.last_message()
        assert msg["type"] == SessionMessageType.ERROR
        assert msg["code"] == SessionErrorCode.INVALID_MESSAGE

    async def test_create_and_leave_room(self, message_router, session_manager, connection):
        await message_router.handle_message(connection, {"type": "create_room", "host_name": "Ann", "target_count": 5})
        assert connection.last_message()["type"] == SessionMessageType.ROOM_CREATED
        assert session_manager.is_in_room(connection.connection_id)

        await message_router.handle_message(connection, {"type": "leave_room"})
        assert connection.last_message()["type"] == SessionMessageType.ROOM_LEFT
        assert session_manager.room_count == 0

    async def test_join_with_lowercase_code(self, message_router, session_manager, connection):
        await message_router.handle_message(connection, {"type": "create_room", "host_name": "Ann", "target_count": 5})
        code = connection.last_message()["code"]

        guest = MockConnection()
        await message_router.handle_connect(guest)
        await message_router.handle_message(guest, {"type": "join_room", "code": code.lower(), "player_name": "Bob"})

        assert guest.last_message()["type"] == SessionMessageType.PLAYER_JOINED
        assert session_manager.get_room(code).player_count == 2

    async def test_game_action_routed(self, message_router, session_manager):
        code, connections = await create_started_game(session_manager)
        await message_router.handle_message(connections[0], {"type": "submit_vote", "code": code, "vote": True})
        # NIGHT: the vote is rejected by the engine and answered privately
        assert connections[0].last_message()["code"] == "invalid_phase"
        assert game_state(session_manager, code).votes == {}

    async def test_game_action_without_game(self, message_router, connection):
        await message_router.handle_message(connection, {"type": "submit_vote", "code": "ABCDE", "vote": True})
        assert connection.last_message()["code"] == SessionErrorCode.NOT_IN_GAME

    async def test_expected_error_becomes_action_failed(self, message_router, session_manager, connection):
        with patch.object(session_manager, "handle_game_action", AsyncMock(side_effect=ValueError("bad"))):
            await message_router.handle_message(connection, {"type": "submit_vote", "code": "ABCDE", "vote": True})
        assert connection.last_message() == {"type": "error", "code": "action_failed", "message": "bad"}

    async def test_unexpected_error_closes_game(self, message_router, session_manager):
        code, connections = await create_started_game(session_manager)
        with patch.object(session_manager, "handle_game_action", AsyncMock(side_effect=ZeroDivisionError)):
            await message_router.handle_message(connections[0], {"type": "submit_vote", "code": code, "vote": True})
        assert all(conn.close_code == 1011 for conn in connections)

    async def test_disconnect_leaves_room(self, message_router, session_manager, connection):
        await message_router.handle_message(connection, {"type": "create_room", "host_name": "Ann", "target_count": 5})
        await message_router.handle_disconnect(connection)
        assert session_manager.room_count == 0
        # no room_left is sent to a closed socket
        assert connection.last_message()["type"] == SessionMessageType.ROOM_CREATED

    async def test_disconnect_leaves_game(self, message_router, session_manager):
        code, connections = await create_started_game(session_manager)
        await message_router.handle_disconnect(connections[0])
        assert session_manager.get_game(code).player_count == 5
        assert not session_manager.is_in_active_game(connections[0].connection_id)
