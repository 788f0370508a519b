from __future__ import annotations

import asyncio
import contextlib
import time
from typing import TYPE_CHECKING, Any

import structlog

from avalon.logic.events import BroadcastTarget, ErrorEvent, GameOverEvent, SeatTarget
from avalon.messaging.event_payload import service_event_payload
from avalon.messaging.types import ErrorMessage, PlayerLeftMessage, SessionErrorCode
from avalon.session.broadcast import broadcast_to_players
from avalon.session.models import Game, Player
from avalon.session.room_manager import RoomManager
from avalon.session.scheduler import PhaseScheduler
from avalon.session.types import SessionStats

if TYPE_CHECKING:
    from avalon.logic.enums import GameAction
    from avalon.logic.events import ServiceEvent
    from avalon.logic.service import GameService
    from avalon.logic.state import PendingTransition
    from avalon.logic.types import SeatConfig
    from avalon.messaging.protocol import ConnectionProtocol
    from avalon.session.room import Room

logger = structlog.get_logger()

_GAME_REAPER_INTERVAL = 5  # seconds between ended-game retirement checks


class SessionManager:
    """
    Own every live connection, lobby room and running game.

    Each game has one asyncio.Lock; every player action and every fired
    scheduled transition for that game runs under it, so the game's state is
    read and replaced without interleaving. Connections are closed outside
    the lock since a close triggers the disconnect handler, which takes the
    same lock.
    """

    def __init__(
        self,
        game_service: GameService,
        *,
        max_capacity: int = 100,
        room_ttl_seconds: int = 0,
        ended_game_ttl_seconds: float = 60,
        require_full_room: bool = True,
    ) -> None:
        self._game_service = game_service
        self._max_capacity = max_capacity
        self._ended_game_ttl_seconds = ended_game_ttl_seconds
        self._connections: dict[str, ConnectionProtocol] = {}
        self._players: dict[str, Player] = {}  # connection_id -> Player
        self._games: dict[str, Game] = {}  # game_id (room code) -> Game
        self._game_locks: dict[str, asyncio.Lock] = {}  # game_id -> Lock
        self._scheduler = PhaseScheduler(
            on_fire=self._handle_scheduled_transition,
            on_failure=self.close_game,
        )
        self._game_reaper_task: asyncio.Task[None] | None = None
        self._room_manager = RoomManager(
            on_start=self._handle_room_start,
            is_in_active_game=self.is_in_active_game,
            is_game_running=self.is_game_running,
            room_ttl_seconds=room_ttl_seconds,
            require_full_room=require_full_room,
        )

    def _get_game_lock(self, game_id: str) -> asyncio.Lock | None:
        """Get the per-game lock, or None if the game has no lock (not yet started or already retired)."""
        return self._game_locks.get(game_id)

    def register_connection(self, connection: ConnectionProtocol) -> None:
        self._connections[connection.connection_id] = connection

    def unregister_connection(self, connection: ConnectionProtocol) -> None:
        self._connections.pop(connection.connection_id, None)
        self._players.pop(connection.connection_id, None)

    def get_game(self, game_id: str) -> Game | None:
        return self._games.get(game_id)

    def is_game_running(self, game_id: str) -> bool:
        return game_id in self._games

    def is_in_active_game(self, connection_id: str) -> bool:
        player = self._players.get(connection_id)
        return player is not None and player.game_id is not None

    @property
    def game_count(self) -> int:
        return len(self._games)

    @property
    def room_count(self) -> int:
        return self._room_manager.room_count

    @property
    def scheduler(self) -> PhaseScheduler:
        return self._scheduler

    def stats(self) -> SessionStats:
        ended = sum(1 for game in self._games.values() if game.ended)
        return SessionStats(
            lobby_rooms=self.room_count,
            active_games=self.game_count - ended,
            ended_games=ended,
            connections=len(self._connections),
        )

    async def _send_error(self, connection: ConnectionProtocol, code: SessionErrorCode, message: str) -> None:
        logger.warning("session error sent to client", error_code=code.value, error_message=message)
        await connection.send_message(ErrorMessage(code=code, message=message).model_dump())

    # --- Room management (delegated to RoomManager) ---

    def get_room(self, code: str) -> Room | None:
        return self._room_manager.get_room(code)

    def is_in_room(self, connection_id: str) -> bool:
        return self._room_manager.is_in_room(connection_id)

    async def create_room(self, connection: ConnectionProtocol, host_name: str, target_count: int) -> None:
        if self.room_count + self.game_count >= self._max_capacity:
            await self._send_error(connection, SessionErrorCode.SERVER_AT_CAPACITY, "Server at capacity")
            return
        await self._room_manager.create_room(connection, host_name, target_count)

    async def join_room(self, connection: ConnectionProtocol, code: str, player_name: str) -> None:
        await self._room_manager.join_room(connection, code, player_name)

    async def leave_room(self, connection: ConnectionProtocol, *, notify_player: bool = True) -> None:
        await self._room_manager.leave_room(connection, notify_player=notify_player)

    async def start_game(self, connection: ConnectionProtocol, code: str) -> None:
        await self._room_manager.start_game(connection, code)

    def start_reapers(self) -> None:
        """Start the lobby reaper and the ended-game retirement loop. Idempotent."""
        self._room_manager.start_room_reaper()
        if self._game_reaper_task is None or self._game_reaper_task.done():
            self._game_reaper_task = asyncio.create_task(self._game_reaper_loop())

    async def stop_reapers(self) -> None:
        await self._room_manager.stop_room_reaper()
        if self._game_reaper_task is not None:
            self._game_reaper_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._game_reaper_task
            self._game_reaper_task = None

    async def shutdown(self) -> None:
        """Cancel every pending transition and background loop."""
        self._scheduler.cancel_all()
        await self.stop_reapers()

    # --- Game start ---

    async def _handle_room_start(self, room: Room) -> None:
        """Create a Game from the room's players and start the Avalon engine."""
        code = room.code
        structlog.contextvars.bind_contextvars(game_id=code)
        game = Game(game_id=code)
        self._games[code] = game

        for rp in room.players.values():
            player = Player(
                connection=rp.connection,
                player_id=rp.player_id,
                name=rp.name,
                game_id=code,
            )
            self._players[rp.connection_id] = player
            game.players[rp.connection_id] = player

        await self._start_avalon_game(game, room.seat_configs())

    async def _start_avalon_game(self, game: Game, seat_configs: list[SeatConfig]) -> None:
        game.started = True
        events = await self._game_service.start_game(game.game_id, seat_configs)

        # startup failed (e.g. unsupported player count): report and drop the game
        if any(isinstance(e.data, ErrorEvent) for e in events):
            await self._broadcast_events(game, events)
            await self._retire_game(game.game_id, reason="start_failed")
            return

        # all players may have disconnected during the start_game await
        if self._games.get(game.game_id) is not game or game.is_empty:
            self._game_service.cleanup_game(game.game_id)
            return

        for player in game.players.values():
            player.seat = self._game_service.get_player_seat(game.game_id, player.player_id)

        self._game_locks[game.game_id] = asyncio.Lock()
        async with self._game_locks[game.game_id]:
            await self._broadcast_events(game, events)
            self._apply_schedule(game, changed=True)

    # --- Game actions ---

    async def handle_game_action(
        self,
        connection: ConnectionProtocol,
        code: str,
        action: GameAction,
        data: dict[str, Any],
    ) -> None:
        player = self._players.get(connection.connection_id)
        if player is None or player.game_id is None or player.game_id != code:
            await self._send_error(connection, SessionErrorCode.NOT_IN_GAME, "You are not playing in that game")
            return

        game = self._games.get(code)
        if game is None:
            return

        structlog.contextvars.bind_contextvars(game_id=code, seat=player.seat)
        lock = self._get_game_lock(code)
        if lock is None:
            await self._send_error(connection, SessionErrorCode.NOT_IN_GAME, "Game has not started yet")
            return

        async with lock:
            if self._games.get(code) is not game:
                return
            generation = self._current_generation(code)
            events = await self._game_service.handle_action(
                game_id=code,
                player_id=player.player_id,
                action=action,
                data=data,
            )
            errors = [e for e in events if isinstance(e.data, ErrorEvent)]
            for error in errors:
                with contextlib.suppress(RuntimeError, OSError, ConnectionError):
                    await connection.send_message(service_event_payload(error))
            await self._broadcast_events(game, [e for e in events if not isinstance(e.data, ErrorEvent)])
            self._apply_schedule(game, changed=self._current_generation(code) != generation)
            self._mark_if_ended(game, events)

    async def _handle_scheduled_transition(self, game_id: str, pending: PendingTransition) -> None:
        """Fire a delayed transition under the game lock; stale transitions do nothing."""
        lock = self._get_game_lock(game_id)
        if lock is None:
            return

        async with lock:
            game = self._games.get(game_id)
            if game is None or game.ended:
                return
            structlog.contextvars.bind_contextvars(game_id=game_id)
            events = await self._game_service.handle_scheduled_transition(game_id, pending)
            if not events:
                return
            await self._broadcast_events(game, events)
            self._apply_schedule(game, changed=True)
            self._mark_if_ended(game, events)

    def _current_generation(self, game_id: str) -> int | None:
        state = self._game_service.get_game_state(game_id)
        return state.generation if state is not None else None

    def _apply_schedule(self, game: Game, *, changed: bool) -> None:
        """Arm the transition the last state change asked for.

        A state change that arms nothing cancels whatever was pending; a
        rejected action (no change) leaves the pending transition alone.
        """
        pending = self._game_service.pop_scheduled_transition(game.game_id)
        if pending is not None:
            self._scheduler.schedule(game.game_id, pending)
        elif changed:
            self._scheduler.cancel(game.game_id)

    def _mark_if_ended(self, game: Game, events: list[ServiceEvent]) -> None:
        if game.ended or not self._has_game_ended(events):
            return
        game.ended_at = time.monotonic()
        self._scheduler.cancel(game.game_id)
        logger.info("game over, retiring later", retire_in_seconds=self._ended_game_ttl_seconds)

    @staticmethod
    def _has_game_ended(events: list[ServiceEvent]) -> bool:
        return any(isinstance(event.data, GameOverEvent) for event in events)

    async def _broadcast_events(self, game: Game, events: list[ServiceEvent]) -> None:
        """Broadcast events with target-based filtering using typed targets."""
        seat_to_player = {p.seat: p for p in game.players.values() if p.seat is not None}

        for event in events:
            message = service_event_payload(event)
            if isinstance(event.target, BroadcastTarget):
                await self._broadcast_to_game(game, message)
            elif isinstance(event.target, SeatTarget):
                player = seat_to_player.get(event.target.seat)
                if player:
                    with contextlib.suppress(RuntimeError, OSError, ConnectionError):
                        await player.connection.send_message(message)

    async def _broadcast_to_game(
        self,
        game: Game,
        message: dict[str, Any],
    ) -> None:
        await broadcast_to_players(game.players, message)

    # --- Leaving and retirement ---

    async def leave_game(self, connection: ConnectionProtocol) -> None:
        """Drop a disconnected player's connection from its game.

        There is no reconnection, so a game still in play ends at once with
        no winner; the others are told who left and receive game_over. A game
        without connections is retired.
        """
        player = self._players.get(connection.connection_id)
        if player is None or player.game_id is None:
            return

        game_id = player.game_id
        game = self._games.get(game_id)
        player.game_id = None
        player.seat = None
        if game is None:
            return

        lock = self._get_game_lock(game_id)
        if lock is None:
            game.players.pop(connection.connection_id, None)
            logger.info("player left game before it started", game_id=game_id)
            await self._broadcast_to_game(game, PlayerLeftMessage(player_name=player.name).model_dump())
        else:
            async with lock:
                game.players.pop(connection.connection_id, None)
                logger.info("player left game", game_id=game_id)
                await self._broadcast_to_game(game, PlayerLeftMessage(player_name=player.name).model_dump())
                if not game.ended and self._games.get(game_id) is game:
                    events = await self._game_service.handle_player_left(game_id, player.player_id)
                    await self._broadcast_events(game, events)
                    self._apply_schedule(game, changed=bool(events))
                    self._mark_if_ended(game, events)

        if game.is_empty:
            await self._retire_game(game_id, reason="abandoned")

    async def _retire_game(self, game_id: str, *, reason: str) -> None:
        """Remove a game: cancel its transition, drop its state and close what is still connected."""
        game = self._games.pop(game_id, None)
        if game is None:
            return
        logger.info("game retired", game_id=game_id, reason=reason)
        self._scheduler.cleanup_game(game_id)
        self._game_locks.pop(game_id, None)
        self._game_service.cleanup_game(game_id)

        players = list(game.players.values())
        for player in players:
            player.game_id = None
            player.seat = None
        for player in players:
            with contextlib.suppress(RuntimeError, OSError, ConnectionError):
                await player.connection.close(code=1000, reason="game_ended")

    async def _game_reaper_loop(self) -> None:
        """Periodically retire games that ended more than ended_game_ttl_seconds ago."""
        while True:
            await asyncio.sleep(_GAME_REAPER_INTERVAL)
            try:
                await self.retire_ended_games()
            except Exception:
                logger.exception("game reaper encountered an error")

    async def retire_ended_games(self) -> None:
        now = time.monotonic()
        expired = [
            game.game_id
            for game in list(self._games.values())
            if game.ended_at is not None and now - game.ended_at >= self._ended_game_ttl_seconds
        ]
        for game_id in expired:
            await self._retire_game(game_id, reason="game_ended")

    async def close_game_on_error(self, connection: ConnectionProtocol) -> None:
        """
        Close all player connections after an unrecoverable error.

        The WebSocket disconnect handlers clean up session state (remove
        players, retire the empty game) when the connections close.
        """
        player = self._players.get(connection.connection_id)
        if player is None or player.game_id is None:
            return
        await self.close_game(player.game_id)

    async def close_game(self, game_id: str) -> None:
        """Close every connection of a game with 1011 (internal error)."""
        game = self._games.get(game_id)
        if game is None:
            return

        for p in list(game.players.values()):
            with contextlib.suppress(RuntimeError, OSError, ConnectionError):
                await p.connection.close(code=1011, reason="internal_error")
