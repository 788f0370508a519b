from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog
from pydantic import ValidationError

from avalon.logic.exceptions import GameRuleError
from avalon.messaging.types import (
    GAME_ACTION_BY_MESSAGE,
    AssassinateMessage,
    CreateRoomMessage,
    ErrorMessage,
    JoinRoomMessage,
    LeaveRoomMessage,
    ProposeTeamMessage,
    SessionErrorCode,
    StartGameMessage,
    SubmitQuestMoveMessage,
    SubmitVoteMessage,
    parse_client_message,
)

if TYPE_CHECKING:
    from avalon.messaging.protocol import ConnectionProtocol
    from avalon.session.manager import SessionManager

logger = structlog.get_logger()


_GAME_ACTION_TYPES = (
    ProposeTeamMessage,
    SubmitVoteMessage,
    SubmitQuestMoveMessage,
    AssassinateMessage,
)


class MessageRouter:
    """
    Routes incoming messages to appropriate handlers.

    This class contains pure business logic and can be tested
    without real WebSocket connections.
    """

    def __init__(self, session_manager: SessionManager) -> None:
        self._session_manager = session_manager

    async def handle_message(
        self,
        connection: ConnectionProtocol,
        raw_message: dict[str, Any],
    ) -> None:
        try:
            message = parse_client_message(raw_message)
        except (ValidationError, KeyError, TypeError, ValueError) as e:
            logger.warning("invalid message", connection_id=connection.connection_id, error=str(e))
            await connection.send_message(
                ErrorMessage(code=SessionErrorCode.INVALID_MESSAGE, message=str(e)).model_dump(),
            )
            return

        if isinstance(message, CreateRoomMessage):
            await self._session_manager.create_room(
                connection,
                host_name=message.host_name,
                target_count=message.target_count,
            )
        elif isinstance(message, JoinRoomMessage):
            await self._session_manager.join_room(connection, message.code, message.player_name)
        elif isinstance(message, LeaveRoomMessage):
            await self._session_manager.leave_room(connection)
        elif isinstance(message, StartGameMessage):
            await self._session_manager.start_game(connection, message.code)
        elif isinstance(message, _GAME_ACTION_TYPES):
            await self._handle_game_action(connection, message)

    async def _handle_game_action(
        self,
        connection: ConnectionProtocol,
        message: ProposeTeamMessage | SubmitVoteMessage | SubmitQuestMoveMessage | AssassinateMessage,
    ) -> None:
        """Route a game action message, handling expected and fatal errors."""
        try:
            data = message.model_dump(exclude={"type", "code"})
            action = GAME_ACTION_BY_MESSAGE[message.type]
            await self._session_manager.handle_game_action(
                connection=connection,
                code=message.code,
                action=action,
                data=data,
            )
        except (GameRuleError, ValueError, KeyError, TypeError) as e:
            logger.warning("action failed", connection_id=connection.connection_id, error=str(e))
            await connection.send_message(
                ErrorMessage(code=SessionErrorCode.ACTION_FAILED, message=str(e)).model_dump(),
            )
        except Exception:
            logger.exception("fatal error during game action", connection_id=connection.connection_id)
            await self._session_manager.close_game_on_error(connection)

    async def handle_connect(self, connection: ConnectionProtocol) -> None:
        self._session_manager.register_connection(connection)

    async def handle_disconnect(self, connection: ConnectionProtocol) -> None:
        await self._session_manager.leave_room(connection, notify_player=False)
        await self._session_manager.leave_game(connection)
        self._session_manager.unregister_connection(connection)
