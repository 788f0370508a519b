"""Room lifecycle management: creation, joining, leaving, and handing a full room to the game layer."""

from __future__ import annotations

import asyncio
import contextlib
import time
from typing import TYPE_CHECKING, Any
from uuid import uuid4

import structlog

from avalon.logic.settings import MIN_PLAYERS
from avalon.messaging.types import (
    ErrorMessage,
    PlayerJoinedMessage,
    PlayerLeftMessage,
    RoomCreatedMessage,
    RoomJoinedMessage,
    RoomLeftMessage,
    SessionErrorCode,
)
from avalon.session.broadcast import broadcast_to_players
from avalon.session.codes import allocate_room_code
from avalon.session.room import Room, RoomPlayer

if TYPE_CHECKING:
    from collections.abc import Callable, Coroutine

    from avalon.messaging.protocol import ConnectionProtocol

logger = structlog.get_logger()

_ROOM_REAPER_INTERVAL = 30  # seconds between reaper checks


class RoomManager:
    """Manage room lifecycle: creation, join/leave, host migration, and start.

    Owns all lobby state (_rooms, _room_players, _room_locks). Uses a callback
    (on_start) to hand a started room to the game layer without
    knowing about game-layer concerns.
    """

    def __init__(
        self,
        *,
        on_start: Callable[[Room], Coroutine[Any, Any, None]],
        is_in_active_game: Callable[[str], bool],
        is_game_running: Callable[[str], bool],
        room_ttl_seconds: int = 0,
        require_full_room: bool = True,
    ) -> None:
        self._on_start = on_start
        self._is_in_active_game = is_in_active_game
        self._is_game_running = is_game_running
        self._room_ttl_seconds = room_ttl_seconds
        self._require_full_room = require_full_room
        self._rooms: dict[str, Room] = {}
        self._room_players: dict[str, RoomPlayer] = {}  # connection_id -> RoomPlayer
        self._room_locks: dict[str, asyncio.Lock] = {}
        self._room_reaper_task: asyncio.Task[None] | None = None

    # --- Public API ---

    def get_room(self, code: str) -> Room | None:
        return self._rooms.get(code)

    def is_in_room(self, connection_id: str) -> bool:
        return connection_id in self._room_players

    def is_code_taken(self, code: str) -> bool:
        return code in self._rooms or self._is_game_running(code)

    @property
    def room_count(self) -> int:
        return len(self._rooms)

    async def create_room(self, connection: ConnectionProtocol, host_name: str, target_count: int) -> Room | None:
        """Open a new lobby with the creator seated as host."""
        if await self._reject_if_busy(connection):
            return None

        code = allocate_room_code(self.is_code_taken)
        room = Room(code=code, target_count=target_count, host_connection_id=connection.connection_id)
        host = RoomPlayer(connection=connection, player_id=str(uuid4()), name=host_name, room_code=code)
        room.players[connection.connection_id] = host
        self._rooms[code] = room
        self._room_players[connection.connection_id] = host
        self._room_locks[code] = asyncio.Lock()

        structlog.contextvars.bind_contextvars(game_id=code)
        logger.info("room created", target_count=target_count)

        await connection.send_message(
            RoomCreatedMessage(code=code, player_id=host.player_id, players=room.get_player_info()).model_dump(),
        )
        return room

    async def join_room(self, connection: ConnectionProtocol, code: str, player_name: str) -> None:
        """Handle a player joining a lobby. Rejected joins never touch the player list."""
        if await self._reject_if_busy(connection):
            return

        room_lock = self._room_locks.get(code)
        if room_lock is None:
            await self._send_missing_room_error(connection, code)
            return

        async with room_lock:
            if await self._validate_join_room(code, player_name, connection):
                return

            room = self._rooms[code]
            room_player = RoomPlayer(
                connection=connection,
                player_id=str(uuid4()),
                name=player_name,
                room_code=code,
            )
            self._room_players[connection.connection_id] = room_player
            room.players[connection.connection_id] = room_player

            # Capture snapshot inside the lock for messages sent outside
            player_info = room.get_player_info()

        structlog.contextvars.bind_contextvars(game_id=code)
        logger.info("player joined room", player_count=len(player_info))

        await connection.send_message(
            RoomJoinedMessage(code=code, player_id=room_player.player_id, players=player_info).model_dump(),
        )
        await self._broadcast_to_room(room=room, message=PlayerJoinedMessage(players=player_info).model_dump())

    async def leave_room(self, connection: ConnectionProtocol, *, notify_player: bool = True) -> None:
        """Handle a player leaving a lobby; the host role passes on in join order."""
        room_player = self._room_players.get(connection.connection_id)
        if room_player is None:
            return

        code = room_player.room_code
        player_name = room_player.name
        room_lock = self._room_locks.get(code)
        should_cleanup = False
        if room_lock is None:
            # Room already cleaned up; just remove the stale room_player reference.
            self._room_players.pop(connection.connection_id, None)
            return

        async with room_lock:
            room = self._rooms.get(code)
            if room is None:
                self._room_players.pop(connection.connection_id, None)
                return

            room.players.pop(connection.connection_id, None)
            self._room_players.pop(connection.connection_id, None)

            if room.is_host(connection.connection_id):
                room.host_connection_id = next(iter(room.players), None)

            should_cleanup = room.is_empty
            if should_cleanup:
                self._rooms.pop(code, None)
            player_info = room.get_player_info()

        # Clean up the lock outside the async with block to avoid
        # deleting the lock while still holding it.
        if should_cleanup:
            self._room_locks.pop(code, None)
            logger.info("room closed, last player left", game_id=code)

        if notify_player:
            with contextlib.suppress(RuntimeError, OSError, ConnectionError):
                await connection.send_message(RoomLeftMessage().model_dump())

        if not should_cleanup:
            await self._broadcast_to_room(room=room, message=PlayerJoinedMessage(players=player_info).model_dump())
            await self._broadcast_to_room(room=room, message=PlayerLeftMessage(player_name=player_name).model_dump())

    async def start_game(self, connection: ConnectionProtocol, code: str) -> None:
        """Host starts the game; the room leaves the lobby registry and becomes a game."""
        room_player = self._room_players.get(connection.connection_id)
        if room_player is None or room_player.room_code != code:
            await self._send_error(connection, SessionErrorCode.NOT_IN_ROOM, "You are not in that room")
            return

        room_lock = self._room_locks.get(code)
        if room_lock is None:
            return

        async with room_lock:
            room = self._rooms.get(code)
            if room is None or room.transitioning:
                return

            if not room.is_host(connection.connection_id):
                await self._send_error(connection, SessionErrorCode.NOT_HOST, "Only the host can start the game")
                return

            if self._require_full_room and not room.is_full:
                await self._send_error(
                    connection,
                    SessionErrorCode.NOT_ENOUGH_PLAYERS,
                    f"Room needs {room.target_count} players, has {room.player_count}",
                )
                return

            if room.player_count < MIN_PLAYERS:
                await self._send_error(
                    connection,
                    SessionErrorCode.NOT_ENOUGH_PLAYERS,
                    f"At least {MIN_PLAYERS} players are required",
                )
                return

            room.transitioning = True
            room_players = list(room.players.values())

            # Clean up room state before transition
            for rp in room_players:
                self._room_players.pop(rp.connection_id, None)
            self._rooms.pop(code, None)

        # Clean up the lock outside the async with block.
        self._room_locks.pop(code, None)
        logger.info("room starting game", game_id=code, player_count=len(room_players))

        # Delegate game creation to the callback (SessionManager handles game-layer concerns)
        await self._on_start(room)

    # --- Room reaper ---

    def start_room_reaper(self) -> None:
        """Start the periodic room reaper task. Idempotent."""
        if self._room_ttl_seconds <= 0:
            return
        if self._room_reaper_task is not None and not self._room_reaper_task.done():
            return
        self._room_reaper_task = asyncio.create_task(self._room_reaper_loop())

    async def stop_room_reaper(self) -> None:
        """Stop the room reaper task."""
        if self._room_reaper_task is not None:
            self._room_reaper_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._room_reaper_task
            self._room_reaper_task = None

    async def _room_reaper_loop(self) -> None:
        """Periodically check for and close expired rooms."""
        while True:
            await asyncio.sleep(_ROOM_REAPER_INTERVAL)
            try:
                await self._reap_expired_rooms()
            except Exception:
                logger.exception("room reaper encountered an error")

    async def _reap_expired_rooms(self) -> None:
        """Close all player connections in lobbies that have exceeded the TTL.

        Each expired room is removed under its lock (preventing new joins)
        before its connections are closed.
        """
        now = time.monotonic()
        expired_candidates = [
            room.code
            for room in list(self._rooms.values())
            if now - room.created_at > self._room_ttl_seconds and not room.transitioning
        ]
        for code in expired_candidates:
            room_lock = self._room_locks.get(code)
            if room_lock is None:
                continue

            players_to_close: list[RoomPlayer] = []
            async with room_lock:
                room = self._rooms.get(code)
                if room is None or room.transitioning:
                    continue

                logger.info("room expired, closing", game_id=code, age_seconds=round(now - room.created_at))
                players_to_close = list(room.players.values())
                for rp in players_to_close:
                    self._room_players.pop(rp.connection_id, None)
                self._rooms.pop(code, None)

            # Clean up the lock outside the async with block.
            self._room_locks.pop(code, None)

            for player in players_to_close:
                with contextlib.suppress(RuntimeError, OSError, ConnectionError):
                    await player.connection.close(code=1000, reason="room_expired")

    # --- Internal helpers ---

    async def _reject_if_busy(self, connection: ConnectionProtocol) -> bool:
        """A connection owns at most one player: reject if it is already seated somewhere."""
        if self._is_in_active_game(connection.connection_id):
            await self._send_error(
                connection,
                SessionErrorCode.ALREADY_IN_GAME,
                "You must leave your current game first",
            )
            return True
        if connection.connection_id in self._room_players:
            await self._send_error(
                connection,
                SessionErrorCode.ALREADY_IN_ROOM,
                "You must leave your current room first",
            )
            return True
        return False

    async def _send_missing_room_error(self, connection: ConnectionProtocol, code: str) -> None:
        if self._is_game_running(code):
            await self._send_error(connection, SessionErrorCode.GAME_IN_PROGRESS, "Game already started")
        else:
            await self._send_error(connection, SessionErrorCode.ROOM_NOT_FOUND, "Room not found")

    async def _validate_join_room(
        self,
        code: str,
        player_name: str,
        connection: ConnectionProtocol,
    ) -> bool:
        """Validate room join preconditions under the room lock.

        Returns True if validation failed (error already sent), False if the join is allowed.
        """
        room = self._rooms.get(code)
        if room is None:
            await self._send_missing_room_error(connection, code)
            return True

        if room.transitioning:
            await self._send_error(connection, SessionErrorCode.GAME_IN_PROGRESS, "Game already started")
            return True

        if room.is_full:
            await self._send_error(connection, SessionErrorCode.ROOM_FULL, "Room is full")
            return True

        if player_name in room.player_names:
            await self._send_error(
                connection,
                SessionErrorCode.NAME_TAKEN,
                "That name is already taken in this room",
            )
            return True

        return False

    async def _broadcast_to_room(
        self,
        room: Room,
        message: dict[str, Any],
    ) -> None:
        """Broadcast a message to all players in a room."""
        await broadcast_to_players(room.players, message)

    @staticmethod
    async def _send_error(connection: ConnectionProtocol, code: SessionErrorCode, message: str) -> None:
        logger.warning("session error sent to client", error_code=code.value, error_message=message)
        await connection.send_message(ErrorMessage(code=code, message=message).model_dump())
