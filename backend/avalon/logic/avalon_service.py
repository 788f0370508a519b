"""
AvalonGameService implementation of the GameService interface.

Holds the latest frozen state of every running game and dispatches player
actions to the pure transition functions in avalon.logic.game. Rule
violations raised by those functions are turned into error events for the
offending seat here, at the service boundary.
"""

import time
from collections.abc import Callable
from typing import Any

import structlog
from pydantic import ValidationError

from avalon.logic.action_result import ActionResult
from avalon.logic.enums import GameAction, GameErrorCode
from avalon.logic.events import (
    ErrorEvent,
    EventType,
    ServiceEvent,
    convert_events,
    parse_wire_target,
    seat_target,
)
from avalon.logic.exceptions import GameRuleError
from avalon.logic.game import (
    abandon_game,
    apply_scheduled_transition,
    assassinate,
    init_game,
    propose_team,
    start_game,
    submit_quest_move,
    submit_vote,
)
from avalon.logic.service import GameService
from avalon.logic.settings import GameSettings
from avalon.logic.state import AvalonGameState, PendingTransition
from avalon.logic.types import (
    AssassinateActionData,
    ProposeTeamActionData,
    QuestMoveActionData,
    SeatConfig,
    VoteActionData,
)

logger = structlog.get_logger()


def _epoch_ms() -> int:
    return int(time.time() * 1000)


class AvalonGameService(GameService):
    """
    Game service for Avalon implementing the GameService interface.

    Maintains game states for multiple concurrent games. The clock is
    injectable so tests can pin team-selection deadlines.
    """

    def __init__(
        self,
        *,
        settings: GameSettings | None = None,
        clock: Callable[[], int] = _epoch_ms,
    ) -> None:
        self._games: dict[str, AvalonGameState] = {}
        self._scheduled: dict[str, PendingTransition] = {}
        self._settings = settings or GameSettings()
        self._clock = clock

    async def start_game(
        self,
        game_id: str,
        seat_configs: list[SeatConfig],
        *,
        seed: str | None = None,
        settings: GameSettings | None = None,
    ) -> list[ServiceEvent]:
        """
        Start a new Avalon game with the given players in join order.

        Returns the private briefing of every seat and the NIGHT snapshot.
        """
        try:
            state = init_game(game_id, seat_configs, seed=seed, settings=settings or self._settings)
            result = start_game(state)
        except GameRuleError as e:
            logger.warning("cannot start game", error_code=e.code.value, reason=str(e))
            return self._create_error_event(e.code, str(e))

        logger.info("game started", player_count=len(seat_configs), king_seat=result.new_state.king_seat)
        return self._apply_result(game_id, result)

    async def handle_action(
        self,
        game_id: str,
        player_id: str,
        action: GameAction,
        data: dict[str, Any],
    ) -> list[ServiceEvent]:
        state = self._games.get(game_id)
        if state is None:
            logger.debug("action for unknown game", action=action)
            return self._create_error_event(GameErrorCode.GAME_NOT_FOUND, "game not found")

        seat = self.get_player_seat(game_id, player_id)
        if seat is None:
            logger.warning("action from player not in game", action=action)
            return self._create_error_event(GameErrorCode.NOT_SEATED, "player not in game")

        target = seat_target(seat)
        try:
            result = self._dispatch(state, seat, action, data)
        except ValidationError as e:
            logger.warning("invalid action data", seat=seat, action=action, errors=e.error_count())
            return self._create_error_event(GameErrorCode.VALIDATION_ERROR, f"invalid action data: {e}", target)
        except GameRuleError as e:
            logger.info("action rejected", seat=seat, action=action, error_code=e.code.value, reason=str(e))
            return self._create_error_event(e.code, str(e), target)

        if result is None:
            logger.warning("unknown action", seat=seat, action=action)
            return self._create_error_event(GameErrorCode.UNKNOWN_ACTION, f"unknown action: {action}", target)

        logger.debug("action applied", seat=seat, action=action)
        return self._apply_result(game_id, result)

    def _dispatch(
        self,
        state: AvalonGameState,
        seat: int,
        action: GameAction,
        data: dict[str, Any],
    ) -> ActionResult | None:
        """Validate action data and run the matching transition."""
        if action == GameAction.PROPOSE_TEAM:
            proposal = ProposeTeamActionData.model_validate(data)
            return propose_team(state, seat, proposal.selected_player_ids)
        if action == GameAction.SUBMIT_VOTE:
            vote = VoteActionData.model_validate(data)
            return submit_vote(state, seat, approve=vote.vote)
        if action == GameAction.SUBMIT_QUEST_MOVE:
            move = QuestMoveActionData.model_validate(data)
            return submit_quest_move(state, seat, success=move.move)
        if action == GameAction.ASSASSINATE:
            target = AssassinateActionData.model_validate(data)
            return assassinate(state, seat, target.target_id)
        return None

    async def handle_scheduled_transition(
        self,
        game_id: str,
        pending: PendingTransition,
    ) -> list[ServiceEvent]:
        state = self._games.get(game_id)
        if state is None:
            return []
        result = apply_scheduled_transition(state, pending, self._clock())
        if result.new_state is None:
            logger.debug("stale transition skipped", transition=pending.transition)
            return []
        logger.info("scheduled transition applied", transition=pending.transition, phase=result.new_state.phase)
        return self._apply_result(game_id, result)

    async def handle_player_left(self, game_id: str, player_id: str) -> list[ServiceEvent]:
        state = self._games.get(game_id)
        if state is None:
            return []
        result = abandon_game(state, player_id)
        if result.new_state is None:
            return []
        logger.info("game abandoned", phase=state.phase, player_id=player_id)
        return self._apply_result(game_id, result)

    def _apply_result(self, game_id: str, result: ActionResult) -> list[ServiceEvent]:
        """Store the new state and remember the transition it arms."""
        if result.new_state is not None:
            self._games[game_id] = result.new_state
            if result.scheduled is not None:
                self._scheduled[game_id] = result.scheduled
            else:
                self._scheduled.pop(game_id, None)
        return convert_events(result.events)

    def pop_scheduled_transition(self, game_id: str) -> PendingTransition | None:
        return self._scheduled.pop(game_id, None)

    def get_player_seat(self, game_id: str, player_id: str) -> int | None:
        state = self._games.get(game_id)
        if state is None:
            return None
        player = state.find_player(player_id)
        return player.seat if player is not None else None

    def get_game_state(self, game_id: str) -> AvalonGameState | None:
        """Return the current game state, or None if game doesn't exist."""
        return self._games.get(game_id)

    def cleanup_game(self, game_id: str) -> None:
        self._games.pop(game_id, None)
        self._scheduled.pop(game_id, None)

    def _create_error_event(
        self,
        code: GameErrorCode,
        message: str,
        target: str = "all",
    ) -> list[ServiceEvent]:
        """Create an error event wrapped in a ServiceEvent."""
        return [
            ServiceEvent(
                event=EventType.ERROR,
                data=ErrorEvent(code=code, message=message, target=target),
                target=parse_wire_target(target),
            ),
        ]
