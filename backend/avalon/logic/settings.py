"""Centralized game settings for Avalon - quest sizes and phase timings."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from avalon.logic.enums import TeamSelectionTimeoutPolicy
from avalon.logic.exceptions import UnsupportedPlayerCountError

MIN_PLAYERS = 5
MAX_PLAYERS = 10
SUPPORTED_PLAYER_COUNTS = tuple(range(MIN_PLAYERS, MAX_PLAYERS + 1))

# player count with the Mordred/Minion/Merlin deck; other counts use generic roles
SPECIAL_ROLES_PLAYER_COUNT = 6

MISSIONS_TO_WIN = 3
MAX_FAILED_VOTES = 5

# required team size per mission, indexed by player count
QUEST_CONFIG: dict[int, tuple[int, ...]] = {
    5: (2, 3, 2, 3, 3),
    6: (2, 3, 4, 3, 4),
    7: (2, 3, 3, 4, 4),
    8: (3, 4, 4, 5, 5),
    9: (3, 4, 4, 5, 5),
    10: (3, 4, 4, 5, 5),
}


class GameSettings(BaseModel):
    """
    Configuration for one Avalon game.

    Timings are in seconds. Defaults match the reference pacing: a five second
    night, a four second vote reveal, a five second mission reveal and a three
    minute team-selection window.
    """

    model_config = ConfigDict(frozen=True)

    night_seconds: float = Field(default=5.0, ge=0)
    vote_reveal_seconds: float = Field(default=4.0, ge=0)
    quest_reveal_seconds: float = Field(default=5.0, ge=0)
    team_selection_seconds: float = Field(default=180.0, gt=0)
    team_selection_timeout: TeamSelectionTimeoutPolicy = TeamSelectionTimeoutPolicy.REJECT


def validate_player_count(player_count: int) -> None:
    if player_count not in SUPPORTED_PLAYER_COUNTS:
        raise UnsupportedPlayerCountError(
            f"player count must be {MIN_PLAYERS}-{MAX_PLAYERS}, got {player_count}",
        )


def get_quest_config(player_count: int) -> tuple[int, ...]:
    """Return the required team size of each mission for a player count."""
    validate_player_count(player_count)
    return QUEST_CONFIG[player_count]
