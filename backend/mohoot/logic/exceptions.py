"""Typed domain exceptions for quiz session rule violations.

Domain logic raises subclasses of QuizError instead of raw ValueError.
The session manager converts them to session_error messages at the
connection boundary; none of them close the connection.
"""

from mohoot.logic.enums import AnswerRejection, SessionStatus


class QuizError(Exception):
    """Base exception for quiz session rule violations."""


class SessionNotFoundError(QuizError):
    """No live session exists for the PIN (unknown, expired, or ended)."""

    def __init__(self, pin: str) -> None:
        self.pin = pin
        super().__init__(f"session {pin} not found")


class InvalidTransitionError(QuizError):
    """The requested state machine transition is not allowed from the current status."""

    def __init__(self, *, action: str, status: SessionStatus) -> None:
        self.action = action
        self.status = status
        super().__init__(f"cannot {action} while session is {status.value}")


class NotHostError(QuizError):
    """A host-only command came from a connection that is not the session host."""


class NotJoinedError(QuizError):
    """A player command came from a connection that has not joined the session."""


class AnswerRejectedError(QuizError):
    """An answer submission was refused. The session is unchanged."""

    def __init__(self, reason: AnswerRejection) -> None:
        self.reason = reason
        super().__init__(f"answer rejected: {reason.value}")


class BuzzerJudgementError(QuizError):
    """The host judged a player who does not currently hold the buzzer."""


class CapacityError(QuizError):
    """No room for another session (capacity reached or no free PIN found)."""
