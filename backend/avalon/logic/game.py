"""
Phase state machine for Avalon.

Every transition is a pure function taking the current frozen state and
returning an ActionResult with the events to deliver, the replacement state
and, where the phase ends on a timer, the delayed transition to arm. Rule
violations raise GameRuleError subclasses and leave the state untouched.

Phases: LOBBY -> NIGHT -> TEAM_SELECTION -> VOTE -> QUEST ->
(TEAM_SELECTION | ASSASSINATION) -> END, with VOTE -> TEAM_SELECTION on a
rejected proposal.
"""

from collections.abc import Sequence
from typing import Any

from avalon.logic.action_result import ActionResult
from avalon.logic.enums import EndReason, GamePhase, Role, Team, TeamSelectionTimeoutPolicy, TransitionType
from avalon.logic.events import (
    GameEvent,
    GameOverEvent,
    GameStartedEvent,
    GameStateEvent,
    ProposalExpiredEvent,
    QuestResultEvent,
    VoteResultEvent,
    seat_target,
)
from avalon.logic.exceptions import (
    GameOverError,
    InvalidPhaseError,
    InvalidTargetError,
    InvalidTeamError,
    NotAssassinError,
    NotKingError,
    NotSeatedError,
)
from avalon.logic.knowledge import knowledge_of
from avalon.logic.rng import generate_seed, pick_first_king, validate_seed_hex
from avalon.logic.roles import assign_roles
from avalon.logic.settings import (
    MAX_FAILED_VOTES,
    MISSIONS_TO_WIN,
    GameSettings,
    get_quest_config,
    validate_player_count,
)
from avalon.logic.state import AvalonGameState, AvalonPlayer, PendingTransition
from avalon.logic.tally import resolve_quest, tally_votes
from avalon.logic.types import SeatConfig

# phases that show the current mission's team size
_TEAM_PHASES = frozenset({GamePhase.TEAM_SELECTION, GamePhase.VOTE, GamePhase.QUEST})


def init_game(
    game_id: str,
    seat_configs: Sequence[SeatConfig],
    seed: str | None = None,
    settings: GameSettings | None = None,
) -> AvalonGameState:
    """
    Seat the lobby's players in join order and return a LOBBY state.

    When seed is None a fresh cryptographic seed is generated.
    """
    validate_player_count(len(seat_configs))
    game_seed = seed if seed is not None else generate_seed()
    validate_seed_hex(game_seed)
    players = tuple(
        AvalonPlayer(seat=seat, player_id=config.player_id, name=config.name, is_host=config.is_host)
        for seat, config in enumerate(seat_configs)
    )
    return AvalonGameState(
        game_id=game_id,
        players=players,
        settings=settings or GameSettings(),
        seed=game_seed,
    )


def _advance(state: AvalonGameState, **updates: Any) -> AvalonGameState:
    """Copy the state with updates applied and the generation bumped."""
    updates["generation"] = state.generation + 1
    return state.model_copy(update=updates)


def _next_king_seat(state: AvalonGameState) -> int:
    return (state.king_seat + 1) % state.player_count


def _schedule(state: AvalonGameState, transition: TransitionType, delay_seconds: float) -> PendingTransition:
    return PendingTransition(
        transition=transition,
        from_phase=state.phase,
        generation=state.generation,
        delay_seconds=delay_seconds,
    )


def build_state_event(state: AvalonGameState) -> GameStateEvent:
    """Public snapshot broadcast after every phase change."""
    return GameStateEvent(
        phase=state.phase,
        king=state.king.player_id,
        current_quest=state.current_quest,
        quest_results=list(state.quest_results),
        failed_votes=state.failed_votes,
        required_count=state.required_team_size if state.phase in _TEAM_PHASES else None,
        proposed_team=list(state.proposed_team) if state.phase in (GamePhase.VOTE, GamePhase.QUEST) else None,
        timer_end=state.timer_end if state.phase == GamePhase.TEAM_SELECTION else None,
    )


def _end_game(
    state: AvalonGameState,
    winner: Team | None,
    reason: EndReason,
    events: list[GameEvent],
    **updates: Any,
) -> ActionResult:
    new_state = _advance(
        state,
        phase=GamePhase.END,
        winner=winner,
        end_reason=reason,
        resolving=False,
        timer_end=None,
        **updates,
    )
    events.append(GameOverEvent(winner=winner, reason=reason))
    return ActionResult(events, new_state)


def _require_active(state: AvalonGameState) -> None:
    if state.is_over:
        raise GameOverError("game is over")


def _require_phase(state: AvalonGameState, phase: GamePhase) -> None:
    if state.phase != phase:
        raise InvalidPhaseError(f"action not allowed during {state.phase}")
    if state.resolving:
        raise InvalidPhaseError(f"{state.phase} result is being resolved")


def _require_seated(state: AvalonGameState, seat: int) -> AvalonPlayer:
    if not 0 <= seat < state.player_count:
        raise NotSeatedError(f"seat {seat} is not in this game")
    return state.players[seat]


def start_game(state: AvalonGameState) -> ActionResult:
    """
    Deal roles, brief every seat privately and enter NIGHT.

    The first king is drawn uniformly from the seats with a stream of the
    game seed separate from the role deal.
    """
    if state.phase != GamePhase.LOBBY:
        raise InvalidPhaseError("game already started")

    roles = assign_roles(state.player_count, state.seed)
    players = tuple(
        player.model_copy(update={"role": role}) for player, role in zip(state.players, roles, strict=True)
    )
    quest_config = get_quest_config(state.player_count)
    new_state = _advance(
        state,
        players=players,
        phase=GamePhase.NIGHT,
        king_seat=pick_first_king(state.seed, state.player_count),
        current_quest=1,
        quest_results=(),
        quest_config=quest_config,
        failed_votes=0,
        proposed_team=(),
        votes={},
        quest_moves={},
        timer_end=None,
        resolving=False,
    )

    events: list[GameEvent] = [
        GameStartedEvent(
            target=seat_target(player.seat),
            role=player.role,
            knowledge=knowledge_of(player, players),
            quest_config=list(quest_config),
            player_count=new_state.player_count,
        )
        for player in players
    ]
    events.append(build_state_event(new_state))
    scheduled = _schedule(new_state, TransitionType.NIGHT_END, new_state.settings.night_seconds)
    return ActionResult(events, new_state, scheduled)


def begin_team_selection(state: AvalonGameState, now_ms: int) -> ActionResult:
    """Open team selection for the current king with a fresh deadline."""
    settings = state.settings
    new_state = _advance(
        state,
        phase=GamePhase.TEAM_SELECTION,
        timer_end=now_ms + int(settings.team_selection_seconds * 1000),
        proposed_team=(),
        votes={},
        quest_moves={},
        resolving=False,
    )
    scheduled = None
    if settings.team_selection_timeout == TeamSelectionTimeoutPolicy.REJECT:
        scheduled = _schedule(new_state, TransitionType.TEAM_SELECTION_TIMEOUT, settings.team_selection_seconds)
    return ActionResult([build_state_event(new_state)], new_state, scheduled)


def expire_proposal(state: AvalonGameState, now_ms: int) -> ActionResult:
    """
    Count an expired team-selection deadline as a rejected proposal.

    The crown passes to the next seat and team selection restarts at once,
    unless this was the fifth consecutive rejection.
    """
    failed_votes = state.failed_votes + 1
    events: list[GameEvent] = [ProposalExpiredEvent(king=state.king.player_id, failed_votes=failed_votes)]
    if failed_votes >= MAX_FAILED_VOTES:
        return _end_game(state, Team.EVIL, EndReason.FIVE_FAILED_VOTES, events, failed_votes=failed_votes)

    rotated = _advance(state, failed_votes=failed_votes, king_seat=_next_king_seat(state))
    result = begin_team_selection(rotated, now_ms)
    return ActionResult(events + result.events, result.new_state, result.scheduled)


def propose_team(state: AvalonGameState, seat: int, team: Sequence[str]) -> ActionResult:
    """King proposes the mission team; everyone then votes on it."""
    _require_active(state)
    _require_phase(state, GamePhase.TEAM_SELECTION)
    _require_seated(state, seat)
    if seat != state.king_seat:
        raise NotKingError("only the king can propose a team")

    if len(set(team)) != len(team):
        raise InvalidTeamError("team contains duplicate players")
    unknown = [player_id for player_id in team if state.find_player(player_id) is None]
    if unknown:
        raise InvalidTeamError(f"unknown players in team: {unknown}")
    required = state.required_team_size
    if len(team) != required:
        raise InvalidTeamError(f"team must have exactly {required} players, got {len(team)}")

    new_state = _advance(
        state,
        phase=GamePhase.VOTE,
        proposed_team=tuple(team),
        votes={},
        timer_end=None,
    )
    return ActionResult([build_state_event(new_state)], new_state)


def submit_vote(state: AvalonGameState, seat: int, *, approve: bool) -> ActionResult:
    """
    Record a vote on the proposed team.

    Resubmitting replaces the earlier vote. The tally runs once every seated
    player has voted.
    """
    _require_active(state)
    _require_phase(state, GamePhase.VOTE)
    player = _require_seated(state, seat)

    votes = {**state.votes, player.player_id: approve}
    if len(votes) < state.player_count:
        return ActionResult([], _advance(state, votes=votes))

    outcome = tally_votes(state.players, votes)
    events: list[GameEvent] = [
        VoteResultEvent(
            passed=outcome.passed,
            votes=outcome.votes,
            approvals=outcome.approvals,
            rejections=outcome.rejections,
        ),
    ]

    if outcome.passed:
        new_state = _advance(
            state,
            phase=GamePhase.QUEST,
            votes={},
            quest_moves={},
            failed_votes=0,
        )
        events.append(build_state_event(new_state))
        return ActionResult(events, new_state)

    failed_votes = state.failed_votes + 1
    if failed_votes >= MAX_FAILED_VOTES:
        return _end_game(state, Team.EVIL, EndReason.FIVE_FAILED_VOTES, events, votes={}, failed_votes=failed_votes)

    new_state = _advance(
        state,
        votes={},
        failed_votes=failed_votes,
        king_seat=_next_king_seat(state),
        resolving=True,
    )
    scheduled = _schedule(new_state, TransitionType.VOTE_REJECTED, state.settings.vote_reveal_seconds)
    return ActionResult(events, new_state, scheduled)


def submit_quest_move(state: AvalonGameState, seat: int, *, success: bool) -> ActionResult:
    """
    Record a team member's secret mission card.

    Moves from players outside the proposed team are ignored. The mission is
    resolved once every team member has moved; a single fail fails it.
    """
    _require_active(state)
    _require_phase(state, GamePhase.QUEST)
    player = _require_seated(state, seat)
    if player.player_id not in state.proposed_team:
        return ActionResult([])

    moves = {**state.quest_moves, player.player_id: success}
    if len(moves) < len(state.proposed_team):
        return ActionResult([], _advance(state, quest_moves=moves))

    outcome = resolve_quest(moves)
    quest_results = (*state.quest_results, outcome.success)
    events: list[GameEvent] = [QuestResultEvent(success=outcome.success, fail_count=outcome.fail_count)]
    resolved = {
        "quest_results": quest_results,
        "current_quest": state.current_quest + 1,
        "quest_moves": {},
    }

    evil_wins = quest_results.count(False)
    good_wins = len(quest_results) - evil_wins

    if evil_wins >= MISSIONS_TO_WIN:
        return _end_game(state, Team.EVIL, EndReason.THREE_MISSIONS_FAILED, events, **resolved)

    if good_wins >= MISSIONS_TO_WIN:
        if not state.players_with_role(Role.MORDRED):
            return _end_game(state, Team.GOOD, EndReason.THREE_MISSIONS_SUCCEEDED, events, **resolved)
        new_state = _advance(state, phase=GamePhase.ASSASSINATION, **resolved)
        events.append(build_state_event(new_state))
        return ActionResult(events, new_state)

    new_state = _advance(state, king_seat=_next_king_seat(state), resolving=True, **resolved)
    scheduled = _schedule(new_state, TransitionType.QUEST_RESOLVED, state.settings.quest_reveal_seconds)
    return ActionResult(events, new_state, scheduled)


def assassinate(state: AvalonGameState, seat: int, target_id: str) -> ActionResult:
    """Mordred names the player he believes is Merlin; the game ends either way."""
    _require_active(state)
    _require_phase(state, GamePhase.ASSASSINATION)
    player = _require_seated(state, seat)
    if player.role != Role.MORDRED:
        raise NotAssassinError("only mordred can assassinate")

    target = state.find_player(target_id)
    if target is None:
        raise InvalidTargetError(f"unknown target: {target_id}")

    if target.role == Role.MERLIN:
        return _end_game(state, Team.EVIL, EndReason.TARGET_ELIMINATED, [])
    return _end_game(state, Team.GOOD, EndReason.ELIMINATION_FAILED, [])


def abandon_game(state: AvalonGameState, player_id: str) -> ActionResult:
    """
    End the game because a seated player left.

    Votes, missions and the assassination wait on every seat they involve,
    so the game ends with no winner instead of waiting for a player who is gone.
    """
    if state.is_over or state.find_player(player_id) is None:
        return ActionResult([])
    return _end_game(state, None, EndReason.PLAYER_LEFT, [])


def is_stale(state: AvalonGameState, pending: PendingTransition) -> bool:
    """A scheduled transition is stale once the phase or generation moved on."""
    return state.phase != pending.from_phase or state.generation != pending.generation


def apply_scheduled_transition(state: AvalonGameState, pending: PendingTransition, now_ms: int) -> ActionResult:
    """Fire a delayed transition, or do nothing if it has gone stale."""
    if is_stale(state, pending):
        return ActionResult([])

    match pending.transition:
        case TransitionType.NIGHT_END | TransitionType.VOTE_REJECTED | TransitionType.QUEST_RESOLVED:
            return begin_team_selection(state, now_ms)
        case TransitionType.TEAM_SELECTION_TIMEOUT:
            return expire_proposal(state, now_ms)
        case _:
            raise ValueError(f"unknown transition: {pending.transition}")
