import pytest

from avalon.logic.avalon_service import AvalonGameService
from avalon.logic.settings import GameSettings
from avalon.messaging.router import MessageRouter
from avalon.session.manager import SessionManager
from avalon.tests.mocks.connection import MockConnection

# Delays long enough that scheduled transitions never fire on their own;
# session tests fire them explicitly.
SLOW_SETTINGS = GameSettings(
    night_seconds=60,
    vote_reveal_seconds=60,
    quest_reveal_seconds=60,
    team_selection_seconds=600,
)


@pytest.fixture
def game_service():
    return AvalonGameService(settings=SLOW_SETTINGS, clock=lambda: 1_000_000)


@pytest.fixture
async def session_manager(game_service):
    manager = SessionManager(game_service)
    yield manager
    await manager.shutdown()


@pytest.fixture
def message_router(session_manager):
    return MessageRouter(session_manager)


@pytest.fixture
def mock_connection():
    return MockConnection()
