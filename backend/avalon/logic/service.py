from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from avalon.logic.enums import GameAction
    from avalon.logic.events import ServiceEvent
    from avalon.logic.settings import GameSettings
    from avalon.logic.state import AvalonGameState, PendingTransition
    from avalon.logic.types import SeatConfig


class GameService(ABC):
    """
    Abstract interface for game logic.

    Events returned by methods carry a typed target:
    - BroadcastTarget: send to all players in the game
    - SeatTarget(seat): send only to the player at that seat

    Methods that change state may also leave a delayed transition behind;
    the session layer collects it with pop_scheduled_transition and fires it
    through handle_scheduled_transition.
    """

    @abstractmethod
    async def start_game(
        self,
        game_id: str,
        seat_configs: list[SeatConfig],
        *,
        seed: str | None = None,
        settings: GameSettings | None = None,
    ) -> list[ServiceEvent]:
        """
        Start a game with the given players, seated in the given order.

        Returns the private game_started event of every seat followed by the
        public NIGHT snapshot. When seed is None a random seed is generated.
        """
        ...

    @abstractmethod
    async def handle_action(
        self,
        game_id: str,
        player_id: str,
        action: GameAction,
        data: dict[str, Any],
    ) -> list[ServiceEvent]:
        """
        Handle a game action from a player.

        Rule violations come back as an error event addressed to the player's
        seat; the game state is left untouched.
        """
        ...

    @abstractmethod
    async def handle_scheduled_transition(
        self,
        game_id: str,
        pending: PendingTransition,
    ) -> list[ServiceEvent]:
        """Apply a delayed transition; stale transitions return no events."""
        ...

    @abstractmethod
    async def handle_player_left(self, game_id: str, player_id: str) -> list[ServiceEvent]:
        """
        End a running game whose player lost its connection.

        Returns the game_over event, or nothing if the game already ended.
        """
        ...

    @abstractmethod
    def pop_scheduled_transition(self, game_id: str) -> PendingTransition | None:
        """Return and forget the transition armed by the last state change."""
        ...

    @abstractmethod
    def get_player_seat(self, game_id: str, player_id: str) -> int | None:
        """Get the seat number for a player id."""
        ...

    @abstractmethod
    def get_game_state(self, game_id: str) -> AvalonGameState | None:
        """Return the current game state, or None if game doesn't exist."""
        ...

    @abstractmethod
    def cleanup_game(self, game_id: str) -> None:
        """
        Remove all game state for a game that was retired or abandoned.
        """
        ...
