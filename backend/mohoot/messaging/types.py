from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, Strict, TypeAdapter, field_validator

from mohoot.logic.enums import BuzzOutcome, EndReason
from shared.validators import reject_control_characters

_TICKET_FIELD = Field(min_length=1, max_length=2000)
_USER_ID_FIELD = Field(min_length=1, max_length=128)
_ROUND_FIELD = Field(ge=1)

MAX_NICKNAME_LENGTH = 40
MAX_TYPED_ANSWER_LENGTH = 200


class ClientMessageType(StrEnum):
    JOIN = "join"
    HOST = "host"
    START_GAME = "start_game"
    REVEAL_LEADERBOARD = "reveal_leaderboard"
    ADVANCE = "advance"
    AWARD_BUZZER = "award_buzzer"
    LOCK_BUZZER = "lock_buzzer"
    END_SESSION = "end_session"
    SUBMIT_ANSWER = "submit_answer"
    BUZZ = "buzz"
    PING = "ping"


class SessionMessageType(StrEnum):
    SESSION_STATE = "session_state"
    JOINED = "joined"
    HOST_ATTACHED = "host_attached"
    ANSWER_RESULT = "answer_result"
    BUZZ_RESULT = "buzz_result"
    BUZZER_JUDGED = "buzzer_judged"
    SESSION_ENDED = "session_ended"
    ERROR = "session_error"
    PONG = "pong"


class SessionErrorCode(StrEnum):
    SESSION_NOT_FOUND = "session_not_found"
    INVALID_MESSAGE = "invalid_message"
    INVALID_TICKET = "invalid_ticket"
    NOT_HOST = "not_host"
    NOT_JOINED = "not_joined"
    INVALID_TRANSITION = "invalid_transition"
    ANSWER_REJECTED = "answer_rejected"
    BUZZER_JUDGEMENT = "buzzer_judgement"
    CAPACITY = "capacity"
    ACTION_FAILED = "action_failed"
    RATE_LIMITED = "rate_limited"


class JoinMessage(BaseModel):
    type: Literal[ClientMessageType.JOIN] = ClientMessageType.JOIN
    ticket: str = _TICKET_FIELD
    nickname: str = Field(min_length=1, max_length=MAX_NICKNAME_LENGTH)
    photo: str = Field(default="", max_length=2048)

    @field_validator("nickname")
    @classmethod
    def _validate_nickname(cls, v: str) -> str:
        v = reject_control_characters(v).strip()
        if not v:
            raise ValueError("nickname must not be blank")
        return v


class HostMessage(BaseModel):
    type: Literal[ClientMessageType.HOST] = ClientMessageType.HOST
    ticket: str = _TICKET_FIELD


class StartGameMessage(BaseModel):
    type: Literal[ClientMessageType.START_GAME] = ClientMessageType.START_GAME


class RevealLeaderboardMessage(BaseModel):
    type: Literal[ClientMessageType.REVEAL_LEADERBOARD] = ClientMessageType.REVEAL_LEADERBOARD


class AdvanceMessage(BaseModel):
    type: Literal[ClientMessageType.ADVANCE] = ClientMessageType.ADVANCE


class AwardBuzzerMessage(BaseModel):
    type: Literal[ClientMessageType.AWARD_BUZZER] = ClientMessageType.AWARD_BUZZER
    user_id: str = _USER_ID_FIELD


class LockBuzzerMessage(BaseModel):
    type: Literal[ClientMessageType.LOCK_BUZZER] = ClientMessageType.LOCK_BUZZER
    user_id: str = _USER_ID_FIELD


class EndSessionMessage(BaseModel):
    type: Literal[ClientMessageType.END_SESSION] = ClientMessageType.END_SESSION


class SubmitAnswerMessage(BaseModel):
    """A CHOICE index or a TYPING text answer for the given round."""

    type: Literal[ClientMessageType.SUBMIT_ANSWER] = ClientMessageType.SUBMIT_ANSWER
    round_id: int = _ROUND_FIELD
    answer: Annotated[int, Strict()] | Annotated[str, Field(max_length=MAX_TYPED_ANSWER_LENGTH)]


class BuzzMessage(BaseModel):
    type: Literal[ClientMessageType.BUZZ] = ClientMessageType.BUZZ
    round_id: int = _ROUND_FIELD


class PingMessage(BaseModel):
    type: Literal[ClientMessageType.PING] = ClientMessageType.PING


HostCommandMessage = (
    StartGameMessage
    | RevealLeaderboardMessage
    | AdvanceMessage
    | AwardBuzzerMessage
    | LockBuzzerMessage
    | EndSessionMessage
)

ClientMessage = (
    JoinMessage | HostMessage | HostCommandMessage | SubmitAnswerMessage | BuzzMessage | PingMessage
)


class SessionStateMessage(BaseModel):
    """Whole-session snapshot. `session` uses camelCase field names."""

    type: Literal[SessionMessageType.SESSION_STATE] = SessionMessageType.SESSION_STATE
    session: dict[str, Any]


class JoinedMessage(BaseModel):
    type: Literal[SessionMessageType.JOINED] = SessionMessageType.JOINED
    pin: str
    user_id: str


class HostAttachedMessage(BaseModel):
    type: Literal[SessionMessageType.HOST_ATTACHED] = SessionMessageType.HOST_ATTACHED
    pin: str


class AnswerResultMessage(BaseModel):
    type: Literal[SessionMessageType.ANSWER_RESULT] = SessionMessageType.ANSWER_RESULT
    round_id: int
    correct: bool
    points: int
    time_taken_ms: int


class BuzzResultMessage(BaseModel):
    type: Literal[SessionMessageType.BUZZ_RESULT] = SessionMessageType.BUZZ_RESULT
    round_id: int
    outcome: BuzzOutcome


class BuzzerJudgedMessage(BaseModel):
    """Sent to the judged player once the host rules on their buzz."""

    type: Literal[SessionMessageType.BUZZER_JUDGED] = SessionMessageType.BUZZER_JUDGED
    round_id: int
    user_id: str
    correct: bool
    points: int


class SessionEndedMessage(BaseModel):
    type: Literal[SessionMessageType.SESSION_ENDED] = SessionMessageType.SESSION_ENDED
    reason: EndReason


class ErrorMessage(BaseModel):
    type: Literal[SessionMessageType.ERROR] = SessionMessageType.ERROR
    code: SessionErrorCode
    message: str


class PongMessage(BaseModel):
    type: Literal[SessionMessageType.PONG] = SessionMessageType.PONG


_client_message_adapter = TypeAdapter(Annotated[ClientMessage, Field(discriminator="type")])


def parse_client_message(data: dict[str, Any]) -> ClientMessage:
    """Parse a raw dict into a typed ClientMessage, discriminated on `type`."""
    return _client_message_adapter.validate_python(data)
