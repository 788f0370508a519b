from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, StrictBool, TypeAdapter, field_validator

from avalon.logic.enums import GameAction
from avalon.logic.settings import MAX_PLAYERS, MIN_PLAYERS
from avalon.session.room import RoomPlayerInfo

# ASCII control character boundaries for input validation
_SPACE_ORD = 0x20
_DEL_ORD = 0x7F

ROOM_CODE_LENGTH = 5
_ROOM_CODE_PATTERN = rf"^[A-Za-z0-9]{{{ROOM_CODE_LENGTH}}}$"
_MAX_NAME_LENGTH = 32
_MAX_PLAYER_ID_LENGTH = 64


class ClientMessageType(StrEnum):
    CREATE_ROOM = "create_room"
    JOIN_ROOM = "join_room"
    LEAVE_ROOM = "leave_room"
    START_GAME = "start_game"
    PROPOSE_TEAM = "propose_team"
    SUBMIT_VOTE = "submit_vote"
    SUBMIT_QUEST_MOVE = "submit_quest_move"
    ASSASSINATE = "assassinate"


class SessionMessageType(StrEnum):
    ROOM_CREATED = "room_created"
    ROOM_JOINED = "room_joined"
    ROOM_LEFT = "room_left"
    PLAYER_JOINED = "player_joined"
    PLAYER_LEFT = "player_left"
    ERROR = "error"


class SessionErrorCode(StrEnum):
    ALREADY_IN_GAME = "already_in_game"
    ALREADY_IN_ROOM = "already_in_room"
    ROOM_NOT_FOUND = "room_not_found"
    ROOM_FULL = "room_full"
    GAME_IN_PROGRESS = "game_in_progress"
    NAME_TAKEN = "name_taken"
    NOT_IN_ROOM = "not_in_room"
    NOT_IN_GAME = "not_in_game"
    NOT_HOST = "not_host"
    NOT_ENOUGH_PLAYERS = "not_enough_players"
    INVALID_MESSAGE = "invalid_message"
    ACTION_FAILED = "action_failed"
    RATE_LIMITED = "rate_limited"
    SERVER_AT_CAPACITY = "server_at_capacity"


def _validate_display_name(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("name must not be blank")
    if any(ord(c) < _SPACE_ORD or ord(c) == _DEL_ORD for c in value):
        raise ValueError("name must not contain control characters")
    return value


class _RoomCodeMessage(BaseModel):
    """Base for messages addressed to a room by its code; codes are case-insensitive."""

    code: str = Field(pattern=_ROOM_CODE_PATTERN)

    @field_validator("code")
    @classmethod
    def _normalize_code(cls, v: str) -> str:
        return v.upper()


class CreateRoomMessage(BaseModel):
    type: Literal[ClientMessageType.CREATE_ROOM] = ClientMessageType.CREATE_ROOM
    host_name: str = Field(min_length=1, max_length=_MAX_NAME_LENGTH)
    target_count: int = Field(ge=MIN_PLAYERS, le=MAX_PLAYERS, strict=True)

    @field_validator("host_name")
    @classmethod
    def _validate_host_name(cls, v: str) -> str:
        return _validate_display_name(v)


class JoinRoomMessage(_RoomCodeMessage):
    type: Literal[ClientMessageType.JOIN_ROOM] = ClientMessageType.JOIN_ROOM
    player_name: str = Field(min_length=1, max_length=_MAX_NAME_LENGTH)

    @field_validator("player_name")
    @classmethod
    def _validate_player_name(cls, v: str) -> str:
        return _validate_display_name(v)


class LeaveRoomMessage(BaseModel):
    type: Literal[ClientMessageType.LEAVE_ROOM] = ClientMessageType.LEAVE_ROOM


class StartGameMessage(_RoomCodeMessage):
    type: Literal[ClientMessageType.START_GAME] = ClientMessageType.START_GAME


class ProposeTeamMessage(_RoomCodeMessage):
    type: Literal[ClientMessageType.PROPOSE_TEAM] = ClientMessageType.PROPOSE_TEAM
    selected_player_ids: list[Annotated[str, Field(min_length=1, max_length=_MAX_PLAYER_ID_LENGTH)]] = Field(
        min_length=1,
        max_length=MAX_PLAYERS,
    )


class SubmitVoteMessage(_RoomCodeMessage):
    """vote is True to approve the proposed team."""

    type: Literal[ClientMessageType.SUBMIT_VOTE] = ClientMessageType.SUBMIT_VOTE
    vote: StrictBool


class SubmitQuestMoveMessage(_RoomCodeMessage):
    """move is True for success, False for fail."""

    type: Literal[ClientMessageType.SUBMIT_QUEST_MOVE] = ClientMessageType.SUBMIT_QUEST_MOVE
    move: StrictBool


class AssassinateMessage(_RoomCodeMessage):
    type: Literal[ClientMessageType.ASSASSINATE] = ClientMessageType.ASSASSINATE
    target_id: str = Field(min_length=1, max_length=_MAX_PLAYER_ID_LENGTH)


# client message type -> game action it dispatches
GAME_ACTION_BY_MESSAGE: dict[ClientMessageType, GameAction] = {
    ClientMessageType.PROPOSE_TEAM: GameAction.PROPOSE_TEAM,
    ClientMessageType.SUBMIT_VOTE: GameAction.SUBMIT_VOTE,
    ClientMessageType.SUBMIT_QUEST_MOVE: GameAction.SUBMIT_QUEST_MOVE,
    ClientMessageType.ASSASSINATE: GameAction.ASSASSINATE,
}

ClientMessage = (
    CreateRoomMessage
    | JoinRoomMessage
    | LeaveRoomMessage
    | StartGameMessage
    | ProposeTeamMessage
    | SubmitVoteMessage
    | SubmitQuestMoveMessage
    | AssassinateMessage
)


class RoomCreatedMessage(BaseModel):
    type: Literal[SessionMessageType.ROOM_CREATED] = SessionMessageType.ROOM_CREATED
    code: str
    player_id: str
    players: list[RoomPlayerInfo]


class RoomJoinedMessage(BaseModel):
    """Sent to the joiner only, so it learns its own player_id."""

    type: Literal[SessionMessageType.ROOM_JOINED] = SessionMessageType.ROOM_JOINED
    code: str
    player_id: str
    players: list[RoomPlayerInfo]


class RoomLeftMessage(BaseModel):
    type: Literal[SessionMessageType.ROOM_LEFT] = SessionMessageType.ROOM_LEFT


class PlayerJoinedMessage(BaseModel):
    """Full player list of the room after a join, leave or host change."""

    type: Literal[SessionMessageType.PLAYER_JOINED] = SessionMessageType.PLAYER_JOINED
    players: list[RoomPlayerInfo]


class PlayerLeftMessage(BaseModel):
    type: Literal[SessionMessageType.PLAYER_LEFT] = SessionMessageType.PLAYER_LEFT
    player_name: str


class ErrorMessage(BaseModel):
    type: Literal[SessionMessageType.ERROR] = SessionMessageType.ERROR
    code: SessionErrorCode
    message: str


_ClientMessage = Annotated[ClientMessage, Field(discriminator="type")]

_client_message_adapter = TypeAdapter(_ClientMessage)


def parse_client_message(data: dict[str, Any]) -> ClientMessage:
    """Parse a raw dict into a typed ClientMessage, discriminated by "type"."""
    return _client_message_adapter.validate_python(data)
