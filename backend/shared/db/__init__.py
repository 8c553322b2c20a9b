"""SQLite database layer: connection management and repository implementations."""

from shared.db.connection import Database
from shared.db.session_repository import SqlitePlayedSessionRepository
from shared.db.stats_repository import SqliteStatsRepository

__all__ = [
    "Database",
    "SqlitePlayedSessionRepository",
    "SqliteStatsRepository",
]
