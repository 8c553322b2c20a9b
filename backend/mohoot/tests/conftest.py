import pytest

from mohoot.logic.settings import GameSettings
from mohoot.messaging.router import MessageRouter
from mohoot.session.manager import SessionManager
from mohoot.tests.helpers.auth import TEST_TICKET_SECRET
from mohoot.tests.helpers.quiz import FakeClock
from mohoot.tests.mocks import MockConnection
from shared.db import Database, SqlitePlayedSessionRepository, SqliteStatsRepository


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def game_settings():
    return GameSettings()


@pytest.fixture
def db():
    database = Database(":memory:")
    database.connect()
    yield database
    database.close()


@pytest.fixture
def stats_repository(db):
    return SqliteStatsRepository(db)


@pytest.fixture
def session_repository(db):
    return SqlitePlayedSessionRepository(db)


@pytest.fixture
def session_manager(game_settings, clock, stats_repository, session_repository):
    return SessionManager(
        game_settings,
        clock=clock,
        stats_repository=stats_repository,
        session_repository=session_repository,
    )


@pytest.fixture
def message_router(session_manager):
    return MessageRouter(session_manager, ticket_secret=TEST_TICKET_SECRET)


@pytest.fixture
def mock_connection():
    return MockConnection()
