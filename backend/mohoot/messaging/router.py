from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import structlog
from pydantic import ValidationError

from mohoot.logic.exceptions import (
    AnswerRejectedError,
    BuzzerJudgementError,
    CapacityError,
    InvalidTransitionError,
    NotHostError,
    NotJoinedError,
    QuizError,
    SessionNotFoundError,
)
from mohoot.messaging.types import (
    AdvanceMessage,
    AwardBuzzerMessage,
    BuzzMessage,
    EndSessionMessage,
    HostMessage,
    JoinMessage,
    LockBuzzerMessage,
    PingMessage,
    RevealLeaderboardMessage,
    SessionErrorCode,
    StartGameMessage,
    SubmitAnswerMessage,
    parse_client_message,
)
from shared.auth.player_ticket import verify_player_ticket

if TYPE_CHECKING:
    from mohoot.messaging.protocol import ConnectionProtocol
    from mohoot.session.manager import SessionManager

logger = logging.getLogger(__name__)

INTERNAL_ERROR_CLOSE_CODE = 1011

_ERROR_CODES: dict[type[QuizError], SessionErrorCode] = {
    SessionNotFoundError: SessionErrorCode.SESSION_NOT_FOUND,
    InvalidTransitionError: SessionErrorCode.INVALID_TRANSITION,
    NotHostError: SessionErrorCode.NOT_HOST,
    NotJoinedError: SessionErrorCode.NOT_JOINED,
    AnswerRejectedError: SessionErrorCode.ANSWER_REJECTED,
    BuzzerJudgementError: SessionErrorCode.BUZZER_JUDGEMENT,
    CapacityError: SessionErrorCode.CAPACITY,
}


def error_code_for(error: QuizError) -> SessionErrorCode:
    for error_type, code in _ERROR_CODES.items():
        if isinstance(error, error_type):
            return code
    return SessionErrorCode.ACTION_FAILED


class MessageRouter:
    """
    Routes parsed client messages to the session manager.

    Rule violations come back to the sender as session_error messages and
    leave the connection open. Anything unexpected is logged and the
    connection is closed with 1011.
    """

    def __init__(self, session_manager: SessionManager, *, ticket_secret: str) -> None:
        self._session_manager = session_manager
        self._ticket_secret = ticket_secret

    async def handle_message(
        self,
        connection: ConnectionProtocol,
        raw_message: dict[str, Any],
    ) -> None:
        try:
            message = parse_client_message(raw_message)
        except (ValidationError, KeyError, TypeError, ValueError) as e:
            logger.warning("invalid message from %s: %s", connection.connection_id, e)
            await self._session_manager.send_error(connection, SessionErrorCode.INVALID_MESSAGE, str(e))
            return

        try:
            await self._dispatch(connection, message)
        except QuizError as e:
            await self._session_manager.send_error(connection, error_code_for(e), str(e))
        except Exception:
            logger.exception("fatal error handling %s for %s", message.type, connection.connection_id)
            await connection.close(code=INTERNAL_ERROR_CLOSE_CODE, reason="internal_error")

    async def _dispatch(self, connection: ConnectionProtocol, message: Any) -> None:  # noqa: ANN401
        manager = self._session_manager
        if isinstance(message, JoinMessage):
            user_id = await self._verify_ticket(connection, message.ticket)
            if user_id is not None:
                await manager.join(connection, connection.pin, user_id, message.nickname, message.photo)
        elif isinstance(message, HostMessage):
            user_id = await self._verify_ticket(connection, message.ticket)
            if user_id is not None:
                await manager.attach_host(connection, connection.pin, user_id)
        elif isinstance(message, StartGameMessage):
            await manager.start_game(connection)
        elif isinstance(message, RevealLeaderboardMessage):
            await manager.reveal_leaderboard(connection)
        elif isinstance(message, AdvanceMessage):
            await manager.advance(connection)
        elif isinstance(message, AwardBuzzerMessage):
            await manager.award_buzzer(connection, message.user_id)
        elif isinstance(message, LockBuzzerMessage):
            await manager.lock_buzzer(connection, message.user_id)
        elif isinstance(message, EndSessionMessage):
            await manager.end_session(connection)
        elif isinstance(message, SubmitAnswerMessage):
            await manager.submit_answer(connection, message.round_id, message.answer)
        elif isinstance(message, BuzzMessage):
            await manager.buzz(connection, message.round_id)
        elif isinstance(message, PingMessage):
            await manager.handle_ping(connection)

    async def _verify_ticket(self, connection: ConnectionProtocol, ticket_str: str) -> str | None:
        """Return the ticket's user_id, or send INVALID_TICKET and return None."""
        ticket = verify_player_ticket(ticket_str, self._ticket_secret)
        if ticket is None:
            await self._session_manager.send_error(connection, SessionErrorCode.INVALID_TICKET, "Invalid player ticket")
            return None
        structlog.contextvars.bind_contextvars(user_id=ticket.user_id)
        return ticket.user_id

    async def handle_disconnect(self, connection: ConnectionProtocol) -> None:
        await self._session_manager.disconnect(connection)
