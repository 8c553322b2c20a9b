"""Persistence models for the data access layer."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class PlayerStats(BaseModel, frozen=True):
    """Running per-user totals. All counters only ever grow."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    total_games_played: int = 0
    total_games_won: int = 0
    total_questions_answered: int = 0
    total_correct_answers: int = 0
    total_incorrect_answers: int = 0
    total_score: int = 0
    total_playtime: int = 0  # seconds


class AnswerRecord(BaseModel, frozen=True):
    """One answered question in a player's history."""

    quiz_id: str
    question_text: str
    time_taken_ms: int = Field(ge=0)
    is_correct: bool
    points_earned: int = Field(ge=0)
    answered_at: datetime


class PlayedSessionStanding(BaseModel, frozen=True):
    """Final placement of one player in a finished session."""

    user_id: str
    nickname: str
    score: int
    won: bool = False


class PlayedSession(BaseModel, frozen=True):
    """Record of a hosted session persisted to storage."""

    session_id: str  # unique per hosted game; PINs are reused once a session ends
    session_key: str  # artifacts/{appId}/sessions/{pin}
    pin: str
    host_id: str
    quiz_id: str
    quiz_title: str = ""
    started_at: datetime
    ended_at: datetime | None = None
    end_reason: str | None = None  # "completed" | "abandoned" | "expired"
    num_questions: int = 0
    standings: list[PlayedSessionStanding] = Field(default_factory=list)
