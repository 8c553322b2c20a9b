"""
String enum definitions for quiz session concepts.
"""

from enum import Enum


class SessionStatus(str, Enum):
    """Lifecycle states of a session.

    LOBBY -> QUESTION -> LEADERBOARD -> QUESTION -> ... -> FINISHED
    """

    LOBBY = "LOBBY"
    QUESTION = "QUESTION"
    LEADERBOARD = "LEADERBOARD"
    FINISHED = "FINISHED"


class QuestionType(str, Enum):
    CHOICE = "CHOICE"
    TYPING = "TYPING"
    BUZZER = "BUZZER"


class BuzzOutcome(str, Enum):
    """Result of a buzzer claim attempt. Only CLAIMED changes the session."""

    CLAIMED = "claimed"
    TAKEN = "taken"
    LOCKED = "locked"
    CLOSED = "closed"
    NOT_BUZZER = "not_buzzer"
    STALE_ROUND = "stale_round"


class AnswerRejection(str, Enum):
    """Why an answer submission was refused without touching the session."""

    NOT_ACCEPTING = "not_accepting"
    STALE_ROUND = "stale_round"
    ALREADY_ANSWERED = "already_answered"
    WINDOW_CLOSED = "window_closed"
    WRONG_TYPE = "wrong_type"
    INVALID_ANSWER = "invalid_answer"


class EndReason(str, Enum):
    COMPLETED = "completed"
    ABANDONED = "abandoned"
    EXPIRED = "expired"
