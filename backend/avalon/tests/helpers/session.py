"""Helpers for driving a SessionManager through lobby and game flows."""

from __future__ import annotations

from typing import TYPE_CHECKING

from avalon.logic.enums import Role
from avalon.messaging.types import SessionMessageType
from avalon.tests.mocks.connection import MockConnection

if TYPE_CHECKING:
    from avalon.logic.state import AvalonGameState
    from avalon.session.manager import SessionManager


async def create_room_with_players(
    manager: SessionManager,
    player_count: int = 6,
    target_count: int | None = None,
) -> tuple[str, list[MockConnection]]:
    """Open a room hosted by Player0 and join Player1..PlayerN-1 into it."""
    host = MockConnection()
    manager.register_connection(host)
    await manager.create_room(host, "Player0", target_count or player_count)
    created = host.messages_of_type(SessionMessageType.ROOM_CREATED)
    code = created[0]["code"]

    connections = [host]
    for i in range(1, player_count):
        conn = MockConnection()
        manager.register_connection(conn)
        await manager.join_room(conn, code, f"Player{i}")
        connections.append(conn)
    return code, connections


async def create_started_game(
    manager: SessionManager,
    player_count: int = 6,
) -> tuple[str, list[MockConnection]]:
    """Create a full room, start its game and clear message history."""
    code, connections = await create_room_with_players(manager, player_count)
    await manager.start_game(connections[0], code)
    for conn in connections:
        conn.clear()
    return code, connections


async def fire_pending(manager: SessionManager, code: str) -> None:
    """Fire the game's armed transition now instead of waiting for its delay."""
    pending = manager.scheduler.get_pending(code)
    assert pending is not None, f"no transition armed for {code}"
    manager.scheduler.cancel(code)
    await manager._handle_scheduled_transition(code, pending)


def game_state(manager: SessionManager, code: str) -> AvalonGameState:
    state = manager._game_service.get_game_state(code)
    assert state is not None
    return state


def connection_for(manager: SessionManager, code: str, player_id: str) -> MockConnection:
    game = manager.get_game(code)
    assert game is not None
    return next(p.connection for p in game.players.values() if p.player_id == player_id)


def connection_with_role(manager: SessionManager, code: str, role: Role) -> MockConnection:
    state = game_state(manager, code)
    return connection_for(manager, code, state.players_with_role(role)[0].player_id)
