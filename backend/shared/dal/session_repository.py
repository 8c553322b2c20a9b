"""Abstract interface for played session persistence."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from datetime import datetime

    from shared.dal.models import PlayedSession, PlayedSessionStanding


class PlayedSessionRepository(ABC):
    @abstractmethod
    async def create_session(self, session: PlayedSession) -> None: ...

    @abstractmethod
    async def finish_session(
        self,
        session_id: str,
        ended_at: datetime,
        end_reason: str = "completed",
        standings: list[PlayedSessionStanding] | None = None,
    ) -> None: ...

    @abstractmethod
    async def get_session(self, session_id: str) -> PlayedSession | None: ...
