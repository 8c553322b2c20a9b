"""
Pydantic models for quiz content and session state.

All models are frozen; transitions build new instances with model_copy().
Wire (and log) serialization uses camelCase field names so every client
reads the same document shape regardless of which side produced it.
"""

from typing import Self
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from mohoot.logic.enums import QuestionType, SessionStatus

CHOICE_SLOTS = 4
NON_CHOICE_ANSWER_IDX = -1
MAX_QUESTION_SECONDS = 600

_MODEL_CONFIG = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


class Question(BaseModel):
    model_config = _MODEL_CONFIG

    text: str = Field(min_length=1, max_length=1000)
    image: str | None = None
    type: QuestionType = QuestionType.CHOICE
    answers: tuple[str, ...] = ()
    correct: int | None = None
    correct_text: str | None = None
    duration: int = Field(default=20, ge=1, le=MAX_QUESTION_SECONDS)  # seconds

    @model_validator(mode="after")
    def _validate_answer_key(self) -> Self:
        if self.type == QuestionType.CHOICE:
            if len(self.answers) != CHOICE_SLOTS:
                raise ValueError(f"CHOICE questions need exactly {CHOICE_SLOTS} answers, got {len(self.answers)}")
            if self.correct is None or not 0 <= self.correct < CHOICE_SLOTS:
                raise ValueError("CHOICE questions need a correct index in 0..3")
        elif self.type == QuestionType.TYPING:
            if self.correct_text is None or not self.correct_text.strip():
                raise ValueError("TYPING questions need a non-blank correctText")
        return self

    @property
    def duration_ms(self) -> int:
        return self.duration * 1000


class Quiz(BaseModel):
    model_config = _MODEL_CONFIG

    title: str = Field(min_length=1, max_length=200)
    questions: tuple[Question, ...] = Field(min_length=1, max_length=200)


class PlayerRecord(BaseModel):
    """One joined player's sub-record inside the session."""

    model_config = _MODEL_CONFIG

    nickname: str
    photo: str = ""
    score: int = Field(default=0, ge=0)
    last_answer_idx: int | None = None  # CHOICE index, or -1 for other types
    last_answered_round_id: int | None = None


class BuzzedPlayer(BaseModel):
    model_config = _MODEL_CONFIG

    uid: str
    timestamp: int  # epoch ms of the winning claim


class SessionState(BaseModel):
    """The shared session document, owned by one server-side actor.

    round_id is 0 in the lobby and grows by one each time a question opens.
    revision grows on every committed change; subscribers drop deliveries
    whose revision they have already seen.
    session_id is unique per hosted game, so it still tells two games apart
    after a PIN is reused.
    """

    model_config = _MODEL_CONFIG

    session_id: str = Field(default_factory=lambda: uuid4().hex)
    pin: str
    host_id: str
    quiz_id: str
    quiz_snapshot: Quiz
    status: SessionStatus = SessionStatus.LOBBY
    current_question_index: int = 0
    round_id: int = 0
    start_time: int | None = None
    end_time: int | None = None
    players: dict[str, PlayerRecord] = Field(default_factory=dict)
    buzzed_player: BuzzedPlayer | None = None
    locked_players: tuple[str, ...] = ()
    started_at: int | None = None
    revision: int = 0

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class AnswerResult(BaseModel):
    """Outcome of an accepted answer, computed by the session owner."""

    model_config = _MODEL_CONFIG

    round_id: int
    question_index: int
    correct: bool
    points: int
    time_taken_ms: int


class LeaderboardEntry(BaseModel):
    model_config = _MODEL_CONFIG

    rank: int
    user_id: str
    nickname: str
    score: int
