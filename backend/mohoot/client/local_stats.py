"""Per-device cache of a player's lifetime stats.

Used when the client cannot reach a shared stats store. The blob is stored
under `{namespace}_player_stats` with camelCase keys and is always read back
merged over zero defaults.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog
from pydantic import ValidationError

from shared.dal.models import PlayerStats

if TYPE_CHECKING:
    from shared.storage import KeyValueStorage

logger = structlog.get_logger()


class LocalStatsCache:
    def __init__(self, storage: KeyValueStorage, namespace: str = "mohoot") -> None:
        self._storage = storage
        self._key = f"{namespace}_player_stats"

    @property
    def key(self) -> str:
        return self._key

    def load(self) -> PlayerStats:
        stored = self._storage.get(self._key)
        if not isinstance(stored, dict):
            return PlayerStats()
        known = {k: v for k, v in stored.items() if k in _FIELD_ALIASES}
        try:
            return PlayerStats.model_validate(known)
        except ValidationError:
            logger.warning("cached stats are corrupt, using defaults", key=self._key)
            return PlayerStats()

    def save(self, stats: PlayerStats) -> None:
        self._storage.set(self._key, stats.model_dump(by_alias=True))

    def update(
        self,
        *,
        games_played: bool = False,
        games_won: bool = False,
        questions_answered: bool = False,
        correct: bool = False,
        incorrect: bool = False,
        add_score: int = 0,
        add_playtime: int = 0,
    ) -> PlayerStats:
        """Apply increments to the cached totals and return the new totals."""
        if add_score < 0 or add_playtime < 0:
            raise ValueError("stats increments must not be negative")
        current = self.load()
        increments: dict[str, Any] = {
            "total_games_played": int(games_played),
            "total_games_won": int(games_won),
            "total_questions_answered": int(questions_answered),
            "total_correct_answers": int(correct),
            "total_incorrect_answers": int(incorrect),
            "total_score": add_score,
            "total_playtime": add_playtime,
        }
        updated = current.model_copy(
            update={field: getattr(current, field) + amount for field, amount in increments.items()},
        )
        self.save(updated)
        return updated

    def clear(self) -> PlayerStats:
        self._storage.delete(self._key)
        return PlayerStats()


_FIELD_ALIASES = {field.alias or name for name, field in PlayerStats.model_fields.items()}
