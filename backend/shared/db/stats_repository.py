"""SQLite-backed stats repository."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog

from shared.dal.models import AnswerRecord, PlayerStats
from shared.dal.stats_repository import StatsRepository

if TYPE_CHECKING:
    from shared.db.connection import Database

logger = structlog.get_logger()

_COUNTER_COLUMNS = (
    "total_games_played",
    "total_games_won",
    "total_questions_answered",
    "total_correct_answers",
    "total_incorrect_answers",
    "total_score",
    "total_playtime",
)


def _increment_sql(columns: tuple[str, ...]) -> str:
    """Build an atomic upsert that adds to each column (creating the row at zero)."""
    placeholders = ", ".join("?" for _ in columns)
    updates = ", ".join(f"{col} = {col} + excluded.{col}" for col in columns)
    return (
        f"INSERT INTO player_stats (user_id, {', '.join(columns)}) VALUES (?, {placeholders}) "  # noqa: S608
        f"ON CONFLICT(user_id) DO UPDATE SET {updates}"
    )


class SqliteStatsRepository(StatsRepository):
    """SQLite implementation of StatsRepository.

    Every counter update is one INSERT ... ON CONFLICT DO UPDATE statement
    that adds to the stored value inside the database, so two writers for the
    same user never overwrite each other.
    """

    def __init__(self, db: Database) -> None:
        self._db = db
        self._lock = asyncio.Lock()

    async def _increment(self, user_id: str, **amounts: int) -> None:
        for column, amount in amounts.items():
            if column not in _COUNTER_COLUMNS:
                raise ValueError(f"Unknown stats counter '{column}'")
            if amount < 0:
                raise ValueError(f"Stats counters never decrease, got {column}={amount}")
        columns = tuple(amounts)
        async with self._lock:
            self._db.connection.execute(_increment_sql(columns), (user_id, *amounts.values()))
            self._db.connection.commit()

    async def record_game_played(self, user_id: str) -> None:
        await self._increment(user_id, total_games_played=1)

    async def record_game_won(self, user_id: str) -> None:
        await self._increment(user_id, total_games_won=1)

    async def record_question_answered(self, user_id: str, *, correct: bool) -> None:
        if correct:
            await self._increment(user_id, total_questions_answered=1, total_correct_answers=1)
        else:
            await self._increment(user_id, total_questions_answered=1, total_incorrect_answers=1)

    async def add_score(self, user_id: str, points: int) -> None:
        if points == 0:
            return
        await self._increment(user_id, total_score=points)

    async def add_playtime(self, user_id: str, seconds: int) -> None:
        if seconds == 0:
            return
        await self._increment(user_id, total_playtime=seconds)

    async def get_stats(self, user_id: str) -> PlayerStats:
        """Return totals for a user; never-written counters read as zero."""
        row = self._db.connection.execute(
            f"SELECT {', '.join(_COUNTER_COLUMNS)} FROM player_stats WHERE user_id = ?",  # noqa: S608
            (user_id,),
        ).fetchone()
        if row is None:
            return PlayerStats()
        return PlayerStats(**{col: value or 0 for col, value in zip(_COUNTER_COLUMNS, row, strict=True)})

    async def record_answer(self, user_id: str, record: AnswerRecord) -> None:
        async with self._lock:
            self._db.connection.execute(
                "INSERT INTO answer_history (user_id, answered_at, data) VALUES (?, ?, ?)",
                (user_id, record.answered_at.isoformat(), record.model_dump_json()),
            )
            self._db.connection.commit()

    async def get_recent_answers(self, user_id: str, limit: int = 20) -> list[AnswerRecord]:
        """Most recent answers first."""
        rows = self._db.connection.execute(
            "SELECT data FROM answer_history WHERE user_id = ? ORDER BY id DESC LIMIT ?",
            (user_id, limit),
        ).fetchall()
        return [AnswerRecord.model_validate_json(row[0]) for row in rows]
