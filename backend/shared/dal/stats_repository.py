"""Abstract interface for per-user stats persistence."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from shared.dal.models import AnswerRecord, PlayerStats


class StatsRepository(ABC):
    """Increment-only stats store.

    Every write must be a single atomic increment on the backing store, never
    a read followed by a write, so concurrent sessions for the same user
    cannot lose updates. Negative amounts are rejected.
    """

    @abstractmethod
    async def record_game_played(self, user_id: str) -> None: ...

    @abstractmethod
    async def record_game_won(self, user_id: str) -> None: ...

    @abstractmethod
    async def record_question_answered(self, user_id: str, *, correct: bool) -> None: ...

    @abstractmethod
    async def add_score(self, user_id: str, points: int) -> None: ...

    @abstractmethod
    async def add_playtime(self, user_id: str, seconds: int) -> None: ...

    @abstractmethod
    async def get_stats(self, user_id: str) -> PlayerStats: ...

    @abstractmethod
    async def record_answer(self, user_id: str, record: AnswerRecord) -> None: ...

    @abstractmethod
    async def get_recent_answers(self, user_id: str, limit: int = 20) -> list[AnswerRecord]: ...
