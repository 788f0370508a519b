"""
Pydantic models shared by the logic layer and the wire payloads.
"""

from pydantic import BaseModel, ConfigDict, Field, StrictBool

from avalon.logic.enums import VoteChoice
from avalon.logic.settings import MAX_PLAYERS


class VoteDetail(BaseModel):
    """How one player voted, revealed after the tally."""

    model_config = ConfigDict(frozen=True)

    name: str
    vote: VoteChoice


class VoteOutcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    passed: bool
    approvals: int
    rejections: int
    votes: list[VoteDetail]


class QuestOutcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool
    fail_count: int


class SeatConfig(BaseModel):
    """A player handed from the lobby to the engine at game start."""

    model_config = ConfigDict(frozen=True)

    player_id: str
    name: str
    is_host: bool = False


class ProposeTeamActionData(BaseModel):
    model_config = ConfigDict(frozen=True)

    selected_player_ids: list[str] = Field(min_length=1, max_length=MAX_PLAYERS)


class VoteActionData(BaseModel):
    """True approves the proposed team."""

    model_config = ConfigDict(frozen=True)

    vote: StrictBool


class QuestMoveActionData(BaseModel):
    """True plays a success card, False a fail card."""

    model_config = ConfigDict(frozen=True)

    move: StrictBool


class AssassinateActionData(BaseModel):
    model_config = ConfigDict(frozen=True)

    target_id: str = Field(min_length=1, max_length=64)
