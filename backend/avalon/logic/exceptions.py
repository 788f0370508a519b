"""Typed domain exceptions for game rule violations.

All rule violations raised by the pure state machine are subclasses of
GameRuleError. The game service catches them at its boundary and converts
them into an error event addressed to the offending seat, so a rejected
action never mutates room state and never goes unanswered.
"""

from avalon.logic.enums import GameErrorCode


class GameRuleError(Exception):
    """Base exception for game rule violations."""

    code: GameErrorCode = GameErrorCode.INVALID_PHASE


class AuthorizationError(GameRuleError):
    """The sender is not allowed to perform this action right now."""


class NotKingError(AuthorizationError):
    code = GameErrorCode.NOT_KING


class NotAssassinError(AuthorizationError):
    code = GameErrorCode.NOT_ASSASSIN


class NotSeatedError(AuthorizationError):
    code = GameErrorCode.NOT_SEATED


class InvalidPhaseError(AuthorizationError):
    """Action does not belong to the current phase (or the phase is resolving)."""

    code = GameErrorCode.INVALID_PHASE


class InvalidTeamError(GameRuleError):
    """Proposed team has the wrong size, duplicates, or unknown players."""

    code = GameErrorCode.INVALID_TEAM


class InvalidTargetError(GameRuleError):
    code = GameErrorCode.INVALID_TARGET


class GameOverError(GameRuleError):
    """The game has ended; no further actions are accepted."""

    code = GameErrorCode.GAME_OVER


class UnsupportedPlayerCountError(GameRuleError):
    code = GameErrorCode.UNSUPPORTED_PLAYER_COUNT
