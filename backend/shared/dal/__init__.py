"""Data access layer: repository interfaces and shared persistence models."""

from shared.dal.models import AnswerRecord, PlayedSession, PlayedSessionStanding, PlayerStats
from shared.dal.paths import session_path, stats_path
from shared.dal.session_repository import PlayedSessionRepository
from shared.dal.stats_repository import StatsRepository

__all__ = [
    "AnswerRecord",
    "PlayedSession",
    "PlayedSessionRepository",
    "PlayedSessionStanding",
    "PlayerStats",
    "StatsRepository",
    "session_path",
    "stats_path",
]
