"""
Immutable game state models for Avalon.

Every transition in avalon.logic.game returns a new AvalonGameState built with
model_copy; nothing mutates a state in place. The session layer stores the
latest state per room and never shares it across rooms.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from avalon.logic.enums import EndReason, GamePhase, Role, Team, TransitionType
from avalon.logic.settings import GameSettings


class AvalonPlayer(BaseModel):
    """A seated player. Seat order is join order and never changes."""

    model_config = ConfigDict(frozen=True)

    seat: int
    player_id: str
    name: str
    is_host: bool = False
    role: Role | None = None


class PendingTransition(BaseModel):
    """A delayed transition, valid only while phase and generation still match."""

    model_config = ConfigDict(frozen=True)

    transition: TransitionType
    from_phase: GamePhase
    generation: int
    delay_seconds: float


class AvalonGameState(BaseModel):
    model_config = ConfigDict(frozen=True)

    game_id: str
    players: tuple[AvalonPlayer, ...]
    settings: GameSettings = Field(default_factory=GameSettings)
    seed: str = ""
    phase: GamePhase = GamePhase.LOBBY
    king_seat: int = 0
    current_quest: int = 1
    quest_results: tuple[bool, ...] = ()
    quest_config: tuple[int, ...] = ()
    failed_votes: int = 0
    proposed_team: tuple[str, ...] = ()
    votes: dict[str, bool] = Field(default_factory=dict)
    quest_moves: dict[str, bool] = Field(default_factory=dict)
    timer_end: int | None = None  # epoch milliseconds, advisory
    resolving: bool = False  # result on display, waiting for a scheduled transition
    generation: int = 0
    winner: Team | None = None
    end_reason: EndReason | None = None

    @property
    def player_count(self) -> int:
        return len(self.players)

    @property
    def king(self) -> AvalonPlayer:
        return self.players[self.king_seat]

    @property
    def required_team_size(self) -> int | None:
        if not self.quest_config or self.current_quest > len(self.quest_config):
            return None
        return self.quest_config[self.current_quest - 1]

    @property
    def is_over(self) -> bool:
        return self.phase == GamePhase.END

    def find_player(self, player_id: str) -> AvalonPlayer | None:
        return next((p for p in self.players if p.player_id == player_id), None)

    def players_with_role(self, role: Role) -> list[AvalonPlayer]:
        return [p for p in self.players if p.role == role]
