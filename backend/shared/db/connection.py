"""SQLite database connection and schema management."""

import os
import sqlite3
from pathlib import Path

import structlog

logger = structlog.get_logger()

_DB_FILE_PERMISSIONS = 0o600
_MEMORY_PATH = ":memory:"

_SCHEMA_SQL = """\
CREATE TABLE IF NOT EXISTS player_stats (
    user_id TEXT PRIMARY KEY,
    total_games_played INTEGER NOT NULL DEFAULT 0,
    total_games_won INTEGER NOT NULL DEFAULT 0,
    total_questions_answered INTEGER NOT NULL DEFAULT 0,
    total_correct_answers INTEGER NOT NULL DEFAULT 0,
    total_incorrect_answers INTEGER NOT NULL DEFAULT 0,
    total_score INTEGER NOT NULL DEFAULT 0,
    total_playtime INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS answer_history (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    answered_at TEXT NOT NULL,
    data TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_answer_history_user
    ON answer_history (user_id, id);

CREATE TABLE IF NOT EXISTS played_sessions (
    id TEXT PRIMARY KEY,
    session_key TEXT NOT NULL,
    started_at TEXT NOT NULL,
    ended_at TEXT,
    end_reason TEXT,
    data TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_played_sessions_key
    ON played_sessions (session_key, started_at);
"""


class Database:
    """SQLite database wrapper with schema bootstrap."""

    def __init__(self, path: str | Path) -> None:
        self._path = str(path)
        self._conn: sqlite3.Connection | None = None

    @property
    def connection(self) -> sqlite3.Connection:
        """Return the active connection or raise if disconnected."""
        if self._conn is None:
            raise RuntimeError("Database is not connected")
        return self._conn

    @property
    def is_memory(self) -> bool:
        return self._path == _MEMORY_PATH

    def connect(self) -> None:
        """Open the database, create the schema if needed, and restrict file access to the owner."""
        if self.is_memory:
            self._conn = sqlite3.connect(_MEMORY_PATH, check_same_thread=False)
        else:
            Path(self._path).parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(self._path, check_same_thread=False)
            self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA busy_timeout=5000")
        self._conn.executescript(_SCHEMA_SQL)

        if not self.is_memory:
            _restrict_to_owner(self._path)
        logger.info("database connected", path=self._path)

    def close(self) -> None:
        conn, self._conn = self._conn, None
        if conn is not None:
            conn.close()


def _restrict_to_owner(db_path: str) -> None:
    """chmod 0600 the database and its WAL/SHM files. Failures are logged, not raised."""
    if os.name != "posix":  # pragma: no cover
        return
    for path in (Path(db_path + suffix) for suffix in ("", "-wal", "-shm")):
        if not path.exists():
            continue
        try:
            path.chmod(_DB_FILE_PERMISSIONS)
        except OSError as e:
            logger.warning("could not restrict database file", path=str(path), error=str(e))
