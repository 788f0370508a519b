"""SessionManager game flow: action routing, scheduled transitions, game end and retirement."""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from avalon.logic.avalon_service import AvalonGameService
from avalon.logic.enums import EndReason, GameAction, GamePhase, Role, Team, TransitionType
from avalon.logic.settings import GameSettings
from avalon.messaging.types import SessionErrorCode, SessionMessageType
from avalon.session.manager import SessionManager
from avalon.tests.helpers.session import (
    connection_for,
    connection_with_role,
    create_started_game,
    fire_pending,
    game_state,
)
from avalon.tests.mocks.connection import MockConnection


async def _propose(manager: SessionManager, code: str, team: list[str] | None = None) -> list[str]:
    state = game_state(manager, code)
    if team is None:
        team = [p.player_id for p in state.players[: state.required_team_size]]
    king = connection_for(manager, code, state.king.player_id)
    await manager.handle_game_action(king, code, GameAction.PROPOSE_TEAM, {"selected_player_ids": team})
    return team


async def _vote_all(manager: SessionManager, code: str, connections: list[MockConnection], *, approve: bool) -> None:
    for conn in connections:
        await manager.handle_game_action(conn, code, GameAction.SUBMIT_VOTE, {"vote": approve})


async def _play_quest(manager: SessionManager, code: str, team: list[str], *, success: bool = True) -> None:
    for player_id in team:
        conn = connection_for(manager, code, player_id)
        await manager.handle_game_action(conn, code, GameAction.SUBMIT_QUEST_MOVE, {"move": success})


class TestGameStart:
    async def test_night_end_is_armed(self, session_manager):
        code, _ = await create_started_game(session_manager)
        pending = session_manager.scheduler.get_pending(code)
        assert pending.transition == TransitionType.NIGHT_END

    async def test_night_end_opens_team_selection(self, session_manager):
        code, connections = await create_started_game(session_manager)
        await fire_pending(session_manager, code)

        for conn in connections:
            snapshot = conn.last_message()
            assert snapshot["type"] == "update_gamestate"
            assert snapshot["phase"] == GamePhase.TEAM_SELECTION
            assert snapshot["required_count"] == 2
            assert "timer_end" in snapshot
        assert session_manager.scheduler.get_pending(code).transition == TransitionType.TEAM_SELECTION_TIMEOUT


class TestGameActions:
    async def test_action_outside_game_rejected(self, session_manager, mock_connection):
        code, _ = await create_started_game(session_manager)
        session_manager.register_connection(mock_connection)
        await session_manager.handle_game_action(mock_connection, code, GameAction.SUBMIT_VOTE, {"vote": True})
        assert mock_connection.last_message()["code"] == SessionErrorCode.NOT_IN_GAME

    async def test_action_for_other_game_rejected(self, session_manager):
        code, connections = await create_started_game(session_manager)
        await session_manager.handle_game_action(connections[0], "OTHER", GameAction.SUBMIT_VOTE, {"vote": True})
        assert connections[0].last_message()["code"] == SessionErrorCode.NOT_IN_GAME
        assert game_state(session_manager, code).phase == GamePhase.NIGHT

    async def test_rule_error_only_reaches_sender(self, session_manager):
        code, connections = await create_started_game(session_manager)
        await fire_pending(session_manager, code)
        for conn in connections:
            conn.clear()

        state = game_state(session_manager, code)
        not_king = state.players[(state.king_seat + 1) % state.player_count]
        sender = connection_for(session_manager, code, not_king.player_id)
        await session_manager.handle_game_action(
            sender,
            code,
            GameAction.PROPOSE_TEAM,
            {"selected_player_ids": ["a", "b"]},
        )

        assert sender.sent_messages == [
            {"type": "error", "code": "not_king", "message": "only the king can propose a team"},
        ]
        for conn in connections:
            if conn is not sender:
                assert conn.sent_messages == []

    async def test_rejected_action_keeps_pending_timeout(self, session_manager):
        code, connections = await create_started_game(session_manager)
        await fire_pending(session_manager, code)
        pending = session_manager.scheduler.get_pending(code)

        await session_manager.handle_game_action(connections[0], code, GameAction.SUBMIT_VOTE, {"vote": True})

        assert session_manager.scheduler.get_pending(code) == pending

    async def test_proposal_cancels_selection_timeout(self, session_manager):
        code, _ = await create_started_game(session_manager)
        await fire_pending(session_manager, code)
        await _propose(session_manager, code)

        assert game_state(session_manager, code).phase == GamePhase.VOTE
        assert not session_manager.scheduler.has_pending(code)

    async def test_vote_result_broadcast(self, session_manager):
        code, connections = await create_started_game(session_manager)
        await fire_pending(session_manager, code)
        await _propose(session_manager, code)
        for conn in connections:
            conn.clear()

        await _vote_all(session_manager, code, connections, approve=True)

        for conn in connections:
            vote_result = conn.messages_of_type("vote_result")[0]
            assert vote_result["passed"] is True
            assert vote_result["approvals"] == 6
            assert len(vote_result["votes"]) == 6
        assert game_state(session_manager, code).phase == GamePhase.QUEST

    async def test_rejected_vote_reveal_then_next_king(self, session_manager):
        code, connections = await create_started_game(session_manager)
        await fire_pending(session_manager, code)
        first_king = game_state(session_manager, code).king_seat
        await _propose(session_manager, code)
        await _vote_all(session_manager, code, connections, approve=False)

        assert session_manager.scheduler.get_pending(code).transition == TransitionType.VOTE_REJECTED
        await fire_pending(session_manager, code)

        state = game_state(session_manager, code)
        assert state.phase == GamePhase.TEAM_SELECTION
        assert state.king_seat == (first_king + 1) % 6
        assert state.failed_votes == 1

    async def test_stale_transition_is_ignored(self, session_manager):
        code, _ = await create_started_game(session_manager)
        night_end = session_manager.scheduler.get_pending(code)
        await fire_pending(session_manager, code)
        generation = game_state(session_manager, code).generation

        await session_manager._handle_scheduled_transition(code, night_end)

        assert game_state(session_manager, code).generation == generation

    async def test_transition_for_retired_game_is_ignored(self, session_manager):
        code, connections = await create_started_game(session_manager)
        pending = session_manager.scheduler.get_pending(code)
        for conn in connections:
            await session_manager.leave_game(conn)

        await session_manager._handle_scheduled_transition(code, pending)
        assert session_manager.get_game(code) is None


class TestGameEnd:
    async def _play_to_assassination(self, manager: SessionManager, code: str, connections) -> None:
        await fire_pending(manager, code)
        for quest in range(3):
            team = await _propose(manager, code)
            await _vote_all(manager, code, connections, approve=True)
            await _play_quest(manager, code, team)
            if quest < 2:
                await fire_pending(manager, code)

    async def test_assassination_ends_game(self, session_manager):
        code, connections = await create_started_game(session_manager)
        await self._play_to_assassination(session_manager, code, connections)
        assert game_state(session_manager, code).phase == GamePhase.ASSASSINATION

        state = game_state(session_manager, code)
        merlin = state.players_with_role(Role.MERLIN)[0]
        assassin = connection_with_role(session_manager, code, Role.MORDRED)
        await session_manager.handle_game_action(
            assassin,
            code,
            GameAction.ASSASSINATE,
            {"target_id": merlin.player_id},
        )

        for conn in connections:
            assert conn.last_message() == {"type": "game_over", "winner": "EVIL", "reason": "target eliminated"}
        game = session_manager.get_game(code)
        assert game.ended
        assert not session_manager.scheduler.has_pending(code)

    async def test_wrong_player_cannot_assassinate(self, session_manager):
        code, connections = await create_started_game(session_manager)
        await self._play_to_assassination(session_manager, code, connections)

        minion = connection_with_role(session_manager, code, Role.MINION)
        await session_manager.handle_game_action(minion, code, GameAction.ASSASSINATE, {"target_id": "x"})

        assert minion.last_message()["code"] == "not_assassin"
        assert game_state(session_manager, code).phase == GamePhase.ASSASSINATION

    async def test_five_rejections_end_game(self, session_manager):
        code, connections = await create_started_game(session_manager)
        await fire_pending(session_manager, code)
        for attempt in range(5):
            await _propose(session_manager, code)
            await _vote_all(session_manager, code, connections, approve=False)
            if attempt < 4:
                await fire_pending(session_manager, code)

        assert connections[0].last_message() == {
            "type": "game_over",
            "winner": "EVIL",
            "reason": "5 failed votes",
        }
        assert session_manager.get_game(code).ended

    async def test_ended_game_retired_after_ttl(self, game_service):
        manager = SessionManager(game_service, ended_game_ttl_seconds=0)
        code, connections = await create_started_game(manager)
        await fire_pending(manager, code)
        for attempt in range(5):
            await _propose(manager, code)
            await _vote_all(manager, code, connections, approve=False)
            if attempt < 4:
                await fire_pending(manager, code)

        await manager.retire_ended_games()

        assert manager.get_game(code) is None
        assert game_service.get_game_state(code) is None
        for conn in connections:
            assert conn.close_code == 1000
            assert conn.close_reason == "game_ended"
            assert not manager.is_in_active_game(conn.connection_id)

    async def test_running_game_not_retired(self, game_service):
        manager = SessionManager(game_service, ended_game_ttl_seconds=0)
        code, connections = await create_started_game(manager)
        await manager.retire_ended_games()
        assert manager.get_game(code) is not None
        assert not connections[0].is_closed
        await manager.shutdown()


class TestLeavingGame:
    async def test_disconnect_during_vote_ends_game(self, session_manager):
        code, connections = await create_started_game(session_manager)
        await fire_pending(session_manager, code)
        await _propose(session_manager, code)
        king_seat = game_state(session_manager, code).king_seat
        leaver_index = (king_seat + 1) % 6
        leaver = connections[leaver_index]
        remaining = [c for c in connections if c is not leaver]

        await session_manager.leave_game(leaver)

        state = game_state(session_manager, code)
        assert len(state.players) == 6
        assert state.phase == GamePhase.END
        assert state.winner is None
        assert session_manager.get_game(code).ended
        assert not session_manager.scheduler.has_pending(code)
        for conn in remaining:
            assert conn.messages_of_type(SessionMessageType.PLAYER_LEFT) == [
                {"type": "player_left", "player_name": f"Player{leaver_index}"},
            ]
            assert conn.last_message() == {"type": "game_over", "reason": "player left"}

        # nobody can act in the ended game; it waits for retirement
        await _vote_all(session_manager, code, remaining[:1], approve=True)
        assert remaining[0].last_message()["code"] == "game_over"

    @pytest.mark.parametrize("phase", [GamePhase.NIGHT, GamePhase.TEAM_SELECTION, GamePhase.QUEST])
    async def test_disconnect_in_any_phase_ends_game(self, session_manager, phase):
        code, connections = await create_started_game(session_manager)
        if phase != GamePhase.NIGHT:
            await fire_pending(session_manager, code)
        if phase == GamePhase.QUEST:
            await _propose(session_manager, code)
            await _vote_all(session_manager, code, connections, approve=True)
        assert game_state(session_manager, code).phase == phase

        await session_manager.leave_game(connections[0])

        assert game_state(session_manager, code).end_reason == EndReason.PLAYER_LEFT
        assert session_manager.get_game(code).ended
        assert not session_manager.scheduler.has_pending(code)

    async def test_abandoned_game_retired_after_ttl(self, game_service):
        manager = SessionManager(game_service, ended_game_ttl_seconds=0)
        code, connections = await create_started_game(manager)

        await manager.leave_game(connections[0])
        await manager.retire_ended_games()

        assert manager.get_game(code) is None
        for conn in connections[1:]:
            assert conn.close_code == 1000

    async def test_last_leaver_retires_game(self, session_manager, game_service):
        code, connections = await create_started_game(session_manager)
        for conn in connections:
            await session_manager.leave_game(conn)

        assert session_manager.get_game(code) is None
        assert game_service.get_game_state(code) is None
        assert not session_manager.scheduler.has_pending(code)

    async def test_close_game_on_error(self, session_manager):
        code, connections = await create_started_game(session_manager)
        await session_manager.close_game_on_error(connections[0])
        for conn in connections:
            assert conn.close_code == 1011

    async def test_stats(self, session_manager):
        await create_started_game(session_manager)
        stats = session_manager.stats()
        assert stats.active_games == 1
        assert stats.ended_games == 0
        assert stats.lobby_rooms == 0
        assert stats.connections == 6


class TestScheduledFiring:
    async def test_transition_fires_on_its_own(self):
        service = AvalonGameService(settings=GameSettings(night_seconds=0, team_selection_seconds=600))
        manager = SessionManager(service)
        code, _ = await create_started_game(manager)

        for _ in range(10):
            await asyncio.sleep(0)

        assert game_state(manager, code).phase == GamePhase.TEAM_SELECTION
        await manager.shutdown()

    async def test_failing_transition_closes_game(self, session_manager, game_service):
        code, connections = await create_started_game(session_manager)
        night_end = session_manager.scheduler.get_pending(code)

        with patch.object(game_service, "handle_scheduled_transition", AsyncMock(side_effect=KeyError("seat"))):
            session_manager.scheduler.schedule(code, night_end.model_copy(update={"delay_seconds": 0}))
            for _ in range(10):
                await asyncio.sleep(0)

        for conn in connections:
            assert conn.close_code == 1011
            assert conn.close_reason == "internal_error"


class TestFivePlayerGame:
    async def test_third_success_ends_game_for_good(self, session_manager):
        code, connections = await create_started_game(session_manager, player_count=5)
        assert not game_state(session_manager, code).players_with_role(Role.MORDRED)
        await fire_pending(session_manager, code)

        for quest in range(3):
            team = await _propose(session_manager, code)
            await _vote_all(session_manager, code, connections, approve=True)
            await _play_quest(session_manager, code, team)
            if quest < 2:
                await fire_pending(session_manager, code)

        state = game_state(session_manager, code)
        assert state.quest_results == (True, True, True)
        assert state.phase == GamePhase.END
        assert state.winner == Team.GOOD
        for conn in connections:
            assert conn.last_message() == {"type": "game_over", "winner": "GOOD", "reason": "3 missions succeeded"}
        assert session_manager.get_game(code).ended
        assert not session_manager.scheduler.has_pending(code)
