from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from avalon.messaging.protocol import ConnectionProtocol


@dataclass
class Player:
    """Represent a connected player in the session layer.

    Lifecycle:
    - Created when the host starts the room's game (game_id is set)
    - On game start: seat is assigned from the engine's seating
    - On leave_game: game_id and seat are cleared to None
    - On unregister: Player is removed from the registry entirely
    """

    connection: ConnectionProtocol
    player_id: str
    name: str
    game_id: str | None = None
    seat: int | None = None

    @property
    def connection_id(self) -> str:
        return self.connection.connection_id


@dataclass
class Game:
    """A running game. game_id is the room code it was started from."""

    game_id: str
    started: bool = False
    ended_at: float | None = None  # time.monotonic() when the game reached END
    players: dict[str, Player] = field(default_factory=dict)  # connection_id -> Player

    @property
    def ended(self) -> bool:
        return self.ended_at is not None

    @property
    def player_names(self) -> list[str]:
        return [p.name for p in self.players.values()]

    @property
    def player_count(self) -> int:
        return len(self.players)

    @property
    def is_empty(self) -> bool:
        return self.player_count == 0
