"""
Client-side player agent.

Turns the stream of session messages from the server into local player
state: which screen to show, whether this round is already answered, and the
last answer or buzzer result. The agent never decides scores; it reacts to
what the server sends and guards against sending the same answer twice.

The transport is injected as a `send` coroutine so the agent runs the same
over a WebSocket or wired straight to a MessageRouter in tests.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any

import structlog

from mohoot.client.local_stats import LocalStatsCache
from mohoot.logic.clock import now_ms
from mohoot.logic.enums import BuzzOutcome, QuestionType, SessionStatus
from mohoot.messaging.types import ClientMessageType, SessionErrorCode, SessionMessageType
from shared.validators import is_valid_pin

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from shared.storage import KeyValueStorage

logger = structlog.get_logger()

# How many finished games to remember as already processed.
_MAX_FINISHED_GAMES = 50


class AgentView(StrEnum):
    JOIN = "JOIN"
    WAITING = "WAITING"
    LOBBY = "LOBBY"
    QUESTION = "QUESTION"
    ANSWERED = "ANSWERED"
    BUZZER_OPEN = "BUZZER_OPEN"
    BUZZED_SELF = "BUZZED_SELF"
    BUZZED_OTHER = "BUZZED_OTHER"
    LOCKED = "LOCKED"
    LEADERBOARD = "LEADERBOARD"
    FINISHED = "FINISHED"


class JoinValidationError(ValueError):
    """PIN or nickname rejected locally; nothing was sent."""


@dataclass(frozen=True)
class AnswerFeedback:
    round_id: int
    correct: bool
    points: int


@dataclass(frozen=True)
class GameOutcome:
    pin: str
    won: bool
    score: int
    max_score: int


class PlayerAgent:
    def __init__(
        self,
        user_id: str,
        ticket: str,
        send: Callable[[dict[str, Any]], Awaitable[None]],
        storage: KeyValueStorage,
        namespace: str = "mohoot",
        on_game_finished: Callable[[GameOutcome], None] | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.user_id = user_id
        self._ticket = ticket
        self._send = send
        self._storage = storage
        self._pin_key = f"{namespace}_player_pin"
        self._finished_key = f"{namespace}_finished_games"
        self._on_game_finished = on_game_finished
        self._clock = clock
        self.stats = LocalStatsCache(storage, namespace)

        self.pin: str | None = None
        self.nickname = ""
        self.session: dict[str, Any] | None = None
        self.last_revision = -1
        self.round_id = 0
        self.answered = False
        self.result: AnswerFeedback | None = None
        self.buzz_outcome: BuzzOutcome | None = None
        self.typed_answer = ""
        self.outcome: GameOutcome | None = None
        self.ended_reason: str | None = None
        self.last_error: tuple[str, str] | None = None

    # --- Joining ---

    async def join(self, pin: str, nickname: str, photo: str = "") -> None:
        """Validate locally, remember the PIN for resume, and send the join."""
        pin = pin.strip()
        nickname = nickname.strip()
        if not pin or not nickname:
            raise JoinValidationError("PIN and nickname are required")
        if not is_valid_pin(pin):
            raise JoinValidationError("PIN must be six digits")

        if pin != self.pin:
            self._reset_session_view()
        self.pin = pin
        self.nickname = nickname
        self.ended_reason = None
        self._storage.set(self._pin_key, pin)
        logger.info("joining session", pin=pin)
        await self._send(
            {"type": ClientMessageType.JOIN.value, "ticket": self._ticket, "nickname": nickname, "photo": photo},
        )

    def resume_pin(self) -> str | None:
        pin = self._storage.get(self._pin_key)
        return pin if isinstance(pin, str) and is_valid_pin(pin) else None

    async def resume(self, nickname: str) -> bool:
        """Re-join the remembered session, if any. Returns False when there is nothing to resume."""
        pin = self.resume_pin()
        if pin is None:
            return False
        await self.join(pin, nickname)
        return True

    # --- Incoming messages ---

    def handle_message(self, message: dict[str, Any]) -> None:
        kind = message.get("type")
        if kind == SessionMessageType.SESSION_STATE:
            self.on_snapshot(message.get("session"))
        elif kind == SessionMessageType.SESSION_ENDED:
            self.on_session_ended(message.get("reason"))
        elif kind == SessionMessageType.ERROR:
            self._on_error(message)
        elif kind == SessionMessageType.ANSWER_RESULT:
            self._on_feedback(message)
        elif kind == SessionMessageType.BUZZ_RESULT:
            if message.get("round_id") == self.round_id:
                self.buzz_outcome = BuzzOutcome(message["outcome"])
        elif kind == SessionMessageType.BUZZER_JUDGED:
            if message.get("user_id") == self.user_id:
                self._on_feedback(message)

    def on_snapshot(self, snapshot: dict[str, Any] | None) -> bool:
        """Apply one session delivery. Returns False if it was dropped as stale."""
        if snapshot is None:
            self.on_session_ended("deleted")
            return False
        if self.pin is None:
            return False

        revision = snapshot.get("revision", 0)
        if revision <= self.last_revision:
            return False
        self.last_revision = revision

        round_id = snapshot.get("roundId", 0)
        if round_id != self.round_id:
            self.round_id = round_id
            self.answered = False
            self.result = None
            self.buzz_outcome = None
            self.typed_answer = ""

        me = snapshot.get("players", {}).get(self.user_id)
        if me is not None and round_id > 0 and me.get("lastAnsweredRoundId") == round_id:
            self.answered = True

        self.session = snapshot
        if snapshot.get("status") == SessionStatus.FINISHED:
            self._process_finished(snapshot)
        return True

    def _process_finished(self, snapshot: dict[str, Any]) -> None:
        """Credit the finished game locally, once per game even across restarts.

        Games are told apart by sessionId, not PIN, because the server hands an
        ended game's PIN to the next session.
        """
        game_key = snapshot.get("sessionId") or f"{self.pin}@{snapshot.get('startedAt')}"
        processed = self._storage.get(self._finished_key)
        processed = list(processed) if isinstance(processed, list) else []
        if game_key in processed:
            return

        players = snapshot.get("players", {})
        scores = [player.get("score", 0) for player in players.values()]
        max_score = max(scores, default=0)
        me = players.get(self.user_id)
        score = me.get("score", 0) if me is not None else 0
        won = me is not None and score == max_score

        processed.append(game_key)
        self._storage.set(self._finished_key, processed[-_MAX_FINISHED_GAMES:])
        self.stats.update(games_played=True, games_won=won)
        self.outcome = GameOutcome(pin=self.pin, won=won, score=score, max_score=max_score)
        logger.info("game finished", pin=self.pin, won=won, score=score)
        if self._on_game_finished is not None:
            self._on_game_finished(self.outcome)

    def _on_feedback(self, message: dict[str, Any]) -> None:
        if message.get("round_id") != self.round_id or self.result is not None:
            return
        correct = bool(message.get("correct"))
        points = int(message.get("points", 0))
        self.answered = True
        self.result = AnswerFeedback(round_id=self.round_id, correct=correct, points=points)
        self.stats.update(questions_answered=True, correct=correct, incorrect=not correct, add_score=points)

    def _on_error(self, message: dict[str, Any]) -> None:
        code = message.get("code", "")
        self.last_error = (code, message.get("message", ""))
        if code == SessionErrorCode.SESSION_NOT_FOUND:
            self.on_session_ended("not_found")

    def on_session_ended(self, reason: str | None = None) -> None:
        """Forget the session and go back to the join screen."""
        logger.info("session ended", pin=self.pin, reason=reason)
        self._storage.delete(self._pin_key)
        self.pin = None
        self.ended_reason = reason
        self._reset_session_view()

    def on_connection_lost(self) -> None:
        self.on_session_ended("connection_lost")

    def _reset_session_view(self) -> None:
        self.session = None
        self.last_revision = -1
        self.round_id = 0
        self.answered = False
        self.result = None
        self.buzz_outcome = None
        self.typed_answer = ""
        self.outcome = None

    # --- Player actions ---

    def stage_typed_answer(self, text: str) -> None:
        self.typed_answer = text

    async def submit_answer(self, answer: int | str | None = None) -> bool:
        """Send this round's answer once. With no argument, sends the staged typed answer.

        Returns False without sending if the round is already answered, no
        question is open, or the answer window has closed.
        """
        if self.answered or self._status() != SessionStatus.QUESTION:
            return False
        end_time = self.session.get("endTime") if self.session is not None else None
        if end_time is not None and self._clock() > end_time:
            return False
        if answer is None:
            answer = self.typed_answer
        self.answered = True
        await self._send({"type": ClientMessageType.SUBMIT_ANSWER.value, "round_id": self.round_id, "answer": answer})
        return True

    async def buzz(self) -> bool:
        if self.view != AgentView.BUZZER_OPEN:
            return False
        await self._send({"type": ClientMessageType.BUZZ.value, "round_id": self.round_id})
        return True

    # --- Derived view ---

    def _status(self) -> str | None:
        return self.session.get("status") if self.session is not None else None

    def _question_type(self) -> str | None:
        if self.session is None:
            return None
        questions = self.session.get("quizSnapshot", {}).get("questions", [])
        index = self.session.get("currentQuestionIndex", 0)
        return questions[index].get("type") if 0 <= index < len(questions) else None

    @property
    def view(self) -> AgentView:
        if self.pin is None:
            return AgentView.JOIN
        status = self._status()
        if status is None:
            return AgentView.WAITING
        if status == SessionStatus.QUESTION:
            if self._question_type() == QuestionType.BUZZER:
                return self._buzzer_view()
            return AgentView.ANSWERED if self.answered else AgentView.QUESTION
        return AgentView(status)

    def _buzzer_view(self) -> AgentView:
        session = self.session or {}
        if self.user_id in session.get("lockedPlayers", []):
            return AgentView.LOCKED
        holder = session.get("buzzedPlayer")
        if holder is not None:
            return AgentView.BUZZED_SELF if holder.get("uid") == self.user_id else AgentView.BUZZED_OTHER
        return AgentView.BUZZER_OPEN
