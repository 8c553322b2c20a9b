"""SQLite-backed played session repository."""

from __future__ import annotations

import asyncio
import json
import sqlite3
from typing import TYPE_CHECKING

import structlog

from shared.dal.models import PlayedSession, PlayedSessionStanding
from shared.dal.session_repository import PlayedSessionRepository

if TYPE_CHECKING:
    from datetime import datetime

    from shared.db.connection import Database

logger = structlog.get_logger()


class SqlitePlayedSessionRepository(PlayedSessionRepository):
    """Stores full session records as JSON with indexed columns for queries."""

    def __init__(self, db: Database) -> None:
        self._db = db
        self._lock = asyncio.Lock()

    async def create_session(self, session: PlayedSession) -> None:
        """Insert a session record. Logs a warning and returns on a duplicate key."""
        async with self._lock:
            try:
                self._db.connection.execute(
                    "INSERT INTO played_sessions (id, session_key, started_at, ended_at, end_reason, data) "
                    "VALUES (?, ?, ?, ?, ?, ?)",
                    (
                        session.session_id,
                        session.session_key,
                        session.started_at.isoformat(),
                        session.ended_at.isoformat() if session.ended_at else None,
                        session.end_reason,
                        session.model_dump_json(),
                    ),
                )
                self._db.connection.commit()
            except sqlite3.IntegrityError:
                self._db.connection.rollback()
                logger.warning(
                    "session already recorded, ignoring duplicate create",
                    session_id=session.session_id,
                    session_key=session.session_key,
                )

    async def finish_session(
        self,
        session_id: str,
        ended_at: datetime,
        end_reason: str = "completed",
        standings: list[PlayedSessionStanding] | None = None,
    ) -> None:
        """Record the end of a session. Sessions that already ended are left untouched.

        When standings is None the standings stored at creation are kept.
        """
        ended_at_iso = ended_at.isoformat()
        async with self._lock:
            if standings is not None:
                standings_json = json.dumps([s.model_dump() for s in standings])
                cursor = self._db.connection.execute(
                    "UPDATE played_sessions SET "
                    "ended_at = ?, "
                    "end_reason = ?, "
                    "data = json_set(data, '$.ended_at', ?, '$.end_reason', ?, '$.standings', json(?)) "
                    "WHERE id = ? AND ended_at IS NULL",
                    (ended_at_iso, end_reason, ended_at_iso, end_reason, standings_json, session_id),
                )
            else:
                cursor = self._db.connection.execute(
                    "UPDATE played_sessions SET "
                    "ended_at = ?, "
                    "end_reason = ?, "
                    "data = json_set(data, '$.ended_at', ?, '$.end_reason', ?) "
                    "WHERE id = ? AND ended_at IS NULL",
                    (ended_at_iso, end_reason, ended_at_iso, end_reason, session_id),
                )
            self._db.connection.commit()
            if cursor.rowcount == 0:
                logger.warning("finish_session had no effect (not found or already ended)", session_id=session_id)

    async def get_session(self, session_id: str) -> PlayedSession | None:
        row = self._db.connection.execute(
            "SELECT data FROM played_sessions WHERE id = ?",
            (session_id,),
        ).fetchone()
        if row is None:
            return None
        return PlayedSession.model_validate_json(row[0])
