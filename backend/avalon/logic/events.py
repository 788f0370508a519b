"""Domain event models and service event transport container.

Domain event classes are the canonical event types of the logic layer.
ServiceEvent is the transport wrapper used to route events to clients.
convert_events() maps domain events into ServiceEvent containers with typed
routing targets.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Literal

from pydantic import BaseModel, ConfigDict, model_validator

from avalon.logic.enums import EndReason, GameErrorCode, GamePhase, Role, Team
from avalon.logic.types import VoteDetail

# ---------------------------------------------------------------------------
# Typed routing targets
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BroadcastTarget:
    """Event should be sent to all players in the room."""


@dataclass(frozen=True)
class SeatTarget:
    """Event should be sent to a specific seat."""

    seat: int


EventTarget = BroadcastTarget | SeatTarget


def seat_target(seat: int) -> str:
    return f"seat_{seat}"


def parse_wire_target(value: str) -> EventTarget:
    """Parse a string target ("all" or "seat_N") into a typed EventTarget."""
    if value == "all":
        return BroadcastTarget()
    if value.startswith("seat_"):
        return SeatTarget(seat=int(value.split("_")[1]))
    raise ValueError(f"invalid target value: {value}")


# ---------------------------------------------------------------------------
# Event type enum
# ---------------------------------------------------------------------------


class EventType(StrEnum):
    """Types of game events. Values are the outbound message types."""

    GAME_STARTED = "game_started"
    GAME_STATE = "update_gamestate"
    VOTE_RESULT = "vote_result"
    QUEST_RESULT = "quest_result"
    PROPOSAL_EXPIRED = "proposal_expired"
    GAME_OVER = "game_over"
    ERROR = "error"


# ---------------------------------------------------------------------------
# Domain event models
# ---------------------------------------------------------------------------


class GameEvent(BaseModel):
    """Base class for all domain game events."""

    model_config = ConfigDict(frozen=True)

    type: EventType
    target: str


class GameStartedEvent(GameEvent):
    """Private start-of-game briefing; the payload differs per seat."""

    type: Literal[EventType.GAME_STARTED] = EventType.GAME_STARTED
    role: Role
    knowledge: list[str]
    quest_config: list[int]
    player_count: int
    phase: GamePhase = GamePhase.NIGHT


class GameStateEvent(GameEvent):
    """Public snapshot of the room's progress."""

    type: Literal[EventType.GAME_STATE] = EventType.GAME_STATE
    target: str = "all"
    phase: GamePhase
    king: str  # player_id of the current king
    current_quest: int
    quest_results: list[bool]
    failed_votes: int
    required_count: int | None = None
    proposed_team: list[str] | None = None
    timer_end: int | None = None


class VoteResultEvent(GameEvent):
    type: Literal[EventType.VOTE_RESULT] = EventType.VOTE_RESULT
    target: str = "all"
    passed: bool
    votes: list[VoteDetail]
    approvals: int
    rejections: int


class QuestResultEvent(GameEvent):
    type: Literal[EventType.QUEST_RESULT] = EventType.QUEST_RESULT
    target: str = "all"
    success: bool
    fail_count: int


class ProposalExpiredEvent(GameEvent):
    """The king let the team-selection deadline pass; counted as a rejection."""

    type: Literal[EventType.PROPOSAL_EXPIRED] = EventType.PROPOSAL_EXPIRED
    target: str = "all"
    king: str
    failed_votes: int


class GameOverEvent(GameEvent):
    """winner is None when a player left mid-game."""

    type: Literal[EventType.GAME_OVER] = EventType.GAME_OVER
    target: str = "all"
    winner: Team | None
    reason: EndReason


class ErrorEvent(GameEvent):
    """Event sent to a player whose action was rejected."""

    type: Literal[EventType.ERROR] = EventType.ERROR
    code: GameErrorCode
    message: str


Event = (
    GameStartedEvent
    | GameStateEvent
    | VoteResultEvent
    | QuestResultEvent
    | ProposalExpiredEvent
    | GameOverEvent
    | ErrorEvent
)


# ---------------------------------------------------------------------------
# Service event transport container
# ---------------------------------------------------------------------------


class ServiceEvent(BaseModel):
    """Event transport container for the game service layer.

    Uses typed internal targets (BroadcastTarget / SeatTarget) for routing.
    """

    model_config = {"arbitrary_types_allowed": True}

    event: EventType
    data: GameEvent
    target: EventTarget = BroadcastTarget()

    @model_validator(mode="after")
    def _ensure_event_matches_data(self) -> ServiceEvent:
        if self.event != self.data.type:
            raise ValueError(f"ServiceEvent.event '{self.event}' does not match data.type '{self.data.type}'")
        return self


def convert_events(raw_events: list[GameEvent]) -> list[ServiceEvent]:
    """Wrap domain events into service events with typed targets."""
    return [
        ServiceEvent(event=event.type, data=event, target=parse_wire_target(event.target)) for event in raw_events
    ]
