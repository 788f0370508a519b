"""
String enum definitions for Avalon game concepts.
"""

from enum import StrEnum


class Team(StrEnum):
    """Allegiance of a role, also used to name the winning side."""

    GOOD = "GOOD"
    EVIL = "EVIL"


class Role(StrEnum):
    """Secret roles dealt at game start.

    MORDRED, MINION and MERLIN are only dealt in 6-player games; every other
    player count uses the generic GOOD/EVIL pair.
    """

    MORDRED = "MORDRED"  # chief evil leader, sole assassin
    MINION = "MINION"  # subordinate evil leader
    MERLIN = "MERLIN"  # seer
    SERVANT = "SERVANT"
    EVIL = "EVIL"
    GOOD = "GOOD"

    @property
    def team(self) -> Team:
        return _ROLE_TEAMS[self]


_ROLE_TEAMS: dict[Role, Team] = {
    Role.MORDRED: Team.EVIL,
    Role.MINION: Team.EVIL,
    Role.EVIL: Team.EVIL,
    Role.MERLIN: Team.GOOD,
    Role.SERVANT: Team.GOOD,
    Role.GOOD: Team.GOOD,
}


class GamePhase(StrEnum):
    """Phase of an Avalon room."""

    LOBBY = "LOBBY"
    NIGHT = "NIGHT"
    TEAM_SELECTION = "TEAM_SELECTION"
    VOTE = "VOTE"
    QUEST = "QUEST"
    ASSASSINATION = "ASSASSINATION"
    END = "END"


class GameAction(StrEnum):
    """Actions dispatched from client to game service."""

    PROPOSE_TEAM = "propose_team"
    SUBMIT_VOTE = "submit_vote"
    SUBMIT_QUEST_MOVE = "submit_quest_move"
    ASSASSINATE = "assassinate"


class TransitionType(StrEnum):
    """Delayed transitions fired by the phase scheduler."""

    NIGHT_END = "night_end"
    VOTE_REJECTED = "vote_rejected"
    QUEST_RESOLVED = "quest_resolved"
    TEAM_SELECTION_TIMEOUT = "team_selection_timeout"


class TeamSelectionTimeoutPolicy(StrEnum):
    """What happens when the team-selection deadline passes."""

    NONE = "none"  # deadline is advisory only
    REJECT = "reject"  # expired deadline counts as a rejected proposal


class VoteChoice(StrEnum):
    APPROVE = "APPROVE"
    REJECT = "REJECT"


class EndReason(StrEnum):
    """Reasons reported in game_over."""

    FIVE_FAILED_VOTES = "5 failed votes"
    THREE_MISSIONS_FAILED = "3 missions failed"
    THREE_MISSIONS_SUCCEEDED = "3 missions succeeded"
    TARGET_ELIMINATED = "target eliminated"
    ELIMINATION_FAILED = "elimination failed"
    PLAYER_LEFT = "player left"


class GameErrorCode(StrEnum):
    """Error codes sent to clients for rejected game actions."""

    NOT_KING = "not_king"
    NOT_ASSASSIN = "not_assassin"
    NOT_SEATED = "not_seated"
    INVALID_PHASE = "invalid_phase"
    INVALID_TEAM = "invalid_team"
    INVALID_TARGET = "invalid_target"
    GAME_OVER = "game_over"
    GAME_NOT_FOUND = "game_not_found"
    UNSUPPORTED_PLAYER_COUNT = "unsupported_player_count"
    VALIDATION_ERROR = "validation_error"
    UNKNOWN_ACTION = "unknown_action"
