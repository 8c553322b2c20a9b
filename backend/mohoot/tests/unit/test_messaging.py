import pytest
from pydantic import ValidationError

from mohoot.logic.enums import AnswerRejection, SessionStatus
from mohoot.logic.exceptions import (
    AnswerRejectedError,
    CapacityError,
    InvalidTransitionError,
    NotHostError,
    QuizError,
    SessionNotFoundError,
)
from mohoot.messaging.router import error_code_for
from mohoot.messaging.types import (
    BuzzMessage,
    ClientMessageType,
    JoinMessage,
    SessionErrorCode,
    SessionMessageType,
    SubmitAnswerMessage,
    parse_client_message,
)
from mohoot.tests.helpers.auth import make_test_ticket
from mohoot.tests.helpers.quiz import make_quiz
from mohoot.tests.mocks import MockConnection


class TestParseClientMessage:
    def test_join(self):
        message = parse_client_message({"type": "join", "ticket": "t", "nickname": "  Ann  "})
        assert isinstance(message, JoinMessage)
        assert message.nickname == "Ann"
        assert message.photo == ""

    @pytest.mark.parametrize("nickname", ["", "   ", "bad\x00name"])
    def test_join_rejects_bad_nickname(self, nickname):
        with pytest.raises(ValidationError):
            parse_client_message({"type": "join", "ticket": "t", "nickname": nickname})

    def test_submit_answer_keeps_int_and_str(self):
        choice = parse_client_message({"type": "submit_answer", "round_id": 1, "answer": 2})
        typed = parse_client_message({"type": "submit_answer", "round_id": 1, "answer": "Paris"})
        assert isinstance(choice, SubmitAnswerMessage)
        assert choice.answer == 2
        assert typed.answer == "Paris"

    def test_submit_answer_rejects_round_zero(self):
        with pytest.raises(ValidationError):
            parse_client_message({"type": "submit_answer", "round_id": 0, "answer": 1})

    def test_buzz(self):
        assert isinstance(parse_client_message({"type": "buzz", "round_id": 4}), BuzzMessage)

    def test_unknown_type_rejected(self):
        with pytest.raises(ValidationError):
            parse_client_message({"type": "self_destruct"})

    def test_all_client_types_parse(self):
        payloads = {
            ClientMessageType.HOST: {"ticket": "t"},
            ClientMessageType.START_GAME: {},
            ClientMessageType.REVEAL_LEADERBOARD: {},
            ClientMessageType.ADVANCE: {},
            ClientMessageType.AWARD_BUZZER: {"user_id": "u"},
            ClientMessageType.LOCK_BUZZER: {"user_id": "u"},
            ClientMessageType.END_SESSION: {},
            ClientMessageType.PING: {},
        }
        for message_type, fields in payloads.items():
            assert parse_client_message({"type": message_type.value, **fields}).type == message_type


class TestErrorCodes:
    @pytest.mark.parametrize(
        ("error", "code"),
        [
            (SessionNotFoundError("123456"), SessionErrorCode.SESSION_NOT_FOUND),
            (InvalidTransitionError(action="advance", status=SessionStatus.LOBBY), SessionErrorCode.INVALID_TRANSITION),
            (NotHostError("no"), SessionErrorCode.NOT_HOST),
            (AnswerRejectedError(AnswerRejection.ALREADY_ANSWERED), SessionErrorCode.ANSWER_REJECTED),
            (CapacityError("full"), SessionErrorCode.CAPACITY),
            (QuizError("other"), SessionErrorCode.ACTION_FAILED),
        ],
    )
    def test_domain_errors_map_to_codes(self, error, code):
        assert error_code_for(error) == code


class TestMessageRouter:
    async def test_invalid_message_returns_error(self, message_router, mock_connection):
        await message_router.handle_message(mock_connection, {"type": "nope"})
        error = mock_connection.last_of_type(SessionMessageType.ERROR)
        assert error["code"] == SessionErrorCode.INVALID_MESSAGE
        assert not mock_connection.is_closed

    async def test_join_with_bad_ticket(self, message_router, mock_connection):
        await message_router.handle_message(mock_connection, {"type": "join", "ticket": "forged.x", "nickname": "A"})
        assert mock_connection.last_of_type(SessionMessageType.ERROR)["code"] == SessionErrorCode.INVALID_TICKET

    async def test_join_unknown_pin_is_not_found(self, message_router):
        connection = MockConnection(pin="999999")
        await message_router.handle_message(
            connection,
            {"type": "join", "ticket": make_test_ticket("u1"), "nickname": "A"},
        )
        assert connection.last_of_type(SessionMessageType.ERROR)["code"] == SessionErrorCode.SESSION_NOT_FOUND
        assert not connection.is_closed

    async def test_join_and_host_attach(self, message_router, session_manager):
        pin = await session_manager.create_session(make_quiz(), "host-1")
        host = MockConnection(pin=pin)
        player = MockConnection(pin=pin)

        await message_router.handle_message(host, {"type": "host", "ticket": make_test_ticket("host-1")})
        await message_router.handle_message(
            player,
            {"type": "join", "ticket": make_test_ticket("u1"), "nickname": "Ann"},
        )

        assert host.last_of_type(SessionMessageType.HOST_ATTACHED)["pin"] == pin
        assert player.last_of_type(SessionMessageType.JOINED) == {"type": "joined", "pin": pin, "user_id": "u1"}
        snapshot = host.last_of_type(SessionMessageType.SESSION_STATE)["session"]
        assert snapshot["players"]["u1"]["nickname"] == "Ann"

    async def test_host_command_from_player_is_rejected(self, message_router, session_manager):
        pin = await session_manager.create_session(make_quiz(), "host-1")
        player = MockConnection(pin=pin)
        await message_router.handle_message(
            player,
            {"type": "join", "ticket": make_test_ticket("u1"), "nickname": "Ann"},
        )
        await message_router.handle_message(player, {"type": "start_game"})
        assert player.last_of_type(SessionMessageType.ERROR)["code"] == SessionErrorCode.NOT_HOST

    async def test_unexpected_error_closes_with_1011(self, message_router, session_manager, mock_connection):
        async def boom(_connection):
            raise RuntimeError("boom")

        session_manager.handle_ping = boom
        await message_router.handle_message(mock_connection, {"type": "ping"})
        assert mock_connection.is_closed
        assert mock_connection.close_code == 1011

    async def test_ping(self, message_router, mock_connection):
        await message_router.handle_message(mock_connection, {"type": "ping"})
        assert mock_connection.sent_messages == [{"type": "pong"}]
