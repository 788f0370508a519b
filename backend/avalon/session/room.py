"""Room model for the pre-game lobby phase."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from pydantic import BaseModel

from avalon.logic.settings import MAX_PLAYERS, MIN_PLAYERS
from avalon.logic.types import SeatConfig

if TYPE_CHECKING:
    from avalon.messaging.protocol import ConnectionProtocol


class RoomPlayerInfo(BaseModel):
    """Player info for room state messages."""

    player_id: str
    name: str
    is_host: bool


def validate_target_count(target_count: int) -> None:
    if not (MIN_PLAYERS <= target_count <= MAX_PLAYERS):
        raise ValueError(f"target_count must be {MIN_PLAYERS}-{MAX_PLAYERS}, got {target_count}")


@dataclass
class RoomPlayer:
    """Represent a player in a room (pre-game lobby).

    player_id is issued by the server on join and stays with the player
    for the whole game; connection_id only identifies the socket.
    """

    connection: ConnectionProtocol
    player_id: str
    name: str
    room_code: str

    @property
    def connection_id(self) -> str:
        return self.connection.connection_id


@dataclass
class Room:
    """Pre-game lobby where players gather until the host starts the game.

    Players are kept in join order, which becomes the seat (and king
    rotation) order of the game.
    """

    code: str
    target_count: int
    host_connection_id: str | None = None
    transitioning: bool = False
    players: dict[str, RoomPlayer] = field(default_factory=dict)  # connection_id -> RoomPlayer
    created_at: float = field(default_factory=time.monotonic)

    def __post_init__(self) -> None:
        validate_target_count(self.target_count)

    @property
    def player_names(self) -> list[str]:
        return [p.name for p in self.players.values()]

    @property
    def player_count(self) -> int:
        return len(self.players)

    @property
    def is_empty(self) -> bool:
        return self.player_count == 0

    @property
    def is_full(self) -> bool:
        return self.player_count >= self.target_count

    def is_host(self, connection_id: str) -> bool:
        return self.host_connection_id == connection_id

    def get_player_info(self) -> list[RoomPlayerInfo]:
        """Return player info for room state messages, in join order."""
        return [
            RoomPlayerInfo(player_id=p.player_id, name=p.name, is_host=self.is_host(p.connection_id))
            for p in self.players.values()
        ]

    def seat_configs(self) -> list[SeatConfig]:
        """Hand the lobby's players to the engine in join order."""
        return [
            SeatConfig(player_id=p.player_id, name=p.name, is_host=self.is_host(p.connection_id))
            for p in self.players.values()
        ]
