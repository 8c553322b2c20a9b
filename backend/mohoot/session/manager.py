from __future__ import annotations

import asyncio
import contextlib
import time
import uuid
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import structlog

from mohoot.logic import buzzer, scoring, state_machine
from mohoot.logic.clock import now_ms
from mohoot.logic.enums import BuzzOutcome, EndReason, SessionStatus
from mohoot.logic.exceptions import (
    CapacityError,
    InvalidTransitionError,
    NotHostError,
    NotJoinedError,
    SessionNotFoundError,
)
from mohoot.logic.pin import generate_pin
from mohoot.logic.settings import GameSettings
from mohoot.messaging.types import (
    AnswerResultMessage,
    BuzzerJudgedMessage,
    BuzzResultMessage,
    ErrorMessage,
    HostAttachedMessage,
    JoinedMessage,
    PongMessage,
    SessionEndedMessage,
    SessionErrorCode,
    SessionStateMessage,
)
from mohoot.session.broadcast import broadcast_to_participants
from mohoot.session.models import LiveSession, Participant, Role
from shared.dal.models import AnswerRecord, PlayedSession, PlayedSessionStanding
from shared.dal.paths import session_path

if TYPE_CHECKING:
    from collections.abc import Callable

    from mohoot.logic.types import Quiz, SessionState
    from mohoot.messaging.protocol import ConnectionProtocol
    from shared.dal.session_repository import PlayedSessionRepository
    from shared.dal.stats_repository import StatsRepository

logger = structlog.get_logger()

_REAPER_INTERVAL = 30  # seconds between reaper checks
SESSION_ENDED_CLOSE_CODE = 1000
SESSION_ENDED_CLOSE_REASON = "session_ended"


class SessionManager:
    """
    Owns every live session on this server.

    Each session is a single actor: all reads that feed a transition and the
    write of its result happen under the session's asyncio.Lock, and the new
    snapshot is broadcast before the lock is released so every subscriber
    sees revisions in order.
    """

    def __init__(
        self,
        settings: GameSettings | None = None,
        *,
        max_sessions: int = 100,
        app_id: str = "default-app-id",
        session_ttl_seconds: int = 0,
        stats_repository: StatsRepository | None = None,
        session_repository: PlayedSessionRepository | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._settings = settings or GameSettings()
        self._max_sessions = max_sessions
        self._app_id = app_id
        self._session_ttl_seconds = session_ttl_seconds
        self._stats_repository = stats_repository
        self._session_repository = session_repository
        self._clock = clock
        self._sessions: dict[str, LiveSession] = {}  # pin -> LiveSession
        self._participants: dict[str, Participant] = {}  # connection_id -> Participant
        self._reaper_task: asyncio.Task[None] | None = None

    @property
    def settings(self) -> GameSettings:
        return self._settings

    @property
    def session_count(self) -> int:
        return len(self._sessions)

    @property
    def max_sessions(self) -> int:
        return self._max_sessions

    def get_session(self, pin: str) -> LiveSession | None:
        return self._sessions.get(pin)

    def _require_session(self, pin: str) -> LiveSession:
        live = self._sessions.get(pin)
        if live is None:
            raise SessionNotFoundError(pin)
        return live

    def _ensure_live(self, live: LiveSession) -> None:
        """Raise if `live` ended while the caller waited for its lock."""
        if self._sessions.get(live.pin) is not live:
            raise SessionNotFoundError(live.pin)

    def _require_role(self, connection: ConnectionProtocol, role: Role) -> tuple[Participant, LiveSession]:
        participant = self._participants.get(connection.connection_id)
        if participant is None or participant.role != role:
            if role == Role.HOST:
                raise NotHostError("only the session host can do that")
            raise NotJoinedError("join the session first")
        return participant, self._require_session(participant.pin)

    # --- Session lifecycle ---

    async def create_session(self, quiz: Quiz, host_id: str, quiz_id: str | None = None) -> str:
        """Open a LOBBY session for `quiz` and return its PIN.

        Raises CapacityError when the server is full or no free PIN is found.
        """
        if len(self._sessions) >= self._max_sessions:
            raise CapacityError(f"server is at capacity ({self._max_sessions} sessions)")
        pin = generate_pin(self._sessions, self._settings.pin_attempts)
        state = state_machine.create_session_state(pin, host_id, quiz_id or uuid.uuid4().hex, quiz)
        live = LiveSession(state=state, session_key=session_path(self._app_id, pin))
        self._sessions[pin] = live
        logger.info(
            "session created",
            pin=pin,
            host_id=host_id,
            session_id=live.session_id,
            session_key=live.session_key,
            num_questions=len(quiz.questions),
        )
        await self._record_session_start(live)
        return pin

    async def end_session(self, connection: ConnectionProtocol) -> None:
        _, live = self._require_role(connection, Role.HOST)
        reason = EndReason.COMPLETED if live.state.status == SessionStatus.FINISHED else EndReason.ABANDONED
        await self._end_session(live, reason)

    async def _end_session(self, live: LiveSession, reason: EndReason) -> None:
        """Remove the session, tell everyone, then close their connections outside the lock."""
        async with live.lock:
            if self._sessions.get(live.pin) is not live:
                return
            del self._sessions[live.pin]
            participants = list(live.participants.values())
            live.participants.clear()
            for participant in participants:
                self._participants.pop(participant.connection_id, None)
            await broadcast_to_participants(participants, SessionEndedMessage(reason=reason).model_dump())
        logger.info("session ended", pin=live.pin, reason=reason.value)

        for participant in participants:
            with contextlib.suppress(RuntimeError, OSError, ConnectionError):
                await participant.connection.close(
                    code=SESSION_ENDED_CLOSE_CODE,
                    reason=SESSION_ENDED_CLOSE_REASON,
                )
        # A completed game already stored its standings.
        if not live.stats_recorded:
            await self._record_session_finish(live, reason)

    # --- Attaching connections ---

    async def attach_host(self, connection: ConnectionProtocol, pin: str, user_id: str) -> None:
        live = self._require_session(pin)
        if user_id != live.host_id:
            raise NotHostError("ticket does not belong to the session host")
        async with live.lock:
            self._ensure_live(live)
            self._bind(live, Participant(connection=connection, user_id=user_id, pin=pin, role=Role.HOST))
            logger.info("host attached", pin=pin)
            await connection.send_message(HostAttachedMessage(pin=pin).model_dump())
            await connection.send_message(self._snapshot_message(live.state))

    async def join(
        self,
        connection: ConnectionProtocol,
        pin: str,
        user_id: str,
        nickname: str,
        photo: str = "",
    ) -> None:
        """Join (or re-join) a player. A re-join keeps the player's score."""
        live = self._require_session(pin)
        async with live.lock:
            self._ensure_live(live)
            bound = self._participants.get(connection.connection_id)
            if bound is not None and bound.role == Role.HOST and bound.pin == pin:
                raise InvalidTransitionError(
                    action="join as a player from the host connection",
                    status=live.state.status,
                )
            new_state = state_machine.join_player(live.state, user_id, nickname, photo)
            self._bind(live, Participant(connection=connection, user_id=user_id, pin=pin, role=Role.PLAYER))
            self._commit(live, new_state)
            logger.info("player joined", pin=pin, user_id=user_id, players=len(live.state.players))
            await connection.send_message(JoinedMessage(pin=pin, user_id=user_id).model_dump())
            await self._broadcast_state(live)

    def _bind(self, live: LiveSession, participant: Participant) -> None:
        previous = self._participants.get(participant.connection_id)
        if previous is not None and previous.pin != live.pin:
            other = self._sessions.get(previous.pin)
            if other is not None:
                other.participants.pop(participant.connection_id, None)
        self._participants[participant.connection_id] = participant
        live.participants[participant.connection_id] = participant
        live.touch()

    async def disconnect(self, connection: ConnectionProtocol) -> None:
        """Forget a closed connection. The player's record stays so a re-join resumes it."""
        participant = self._participants.pop(connection.connection_id, None)
        if participant is None:
            return
        live = self._sessions.get(participant.pin)
        if live is None:
            return
        async with live.lock:
            live.participants.pop(connection.connection_id, None)
        logger.info("participant disconnected", role=participant.role.value)

    # --- Host commands ---

    async def start_game(self, connection: ConnectionProtocol) -> None:
        _, live = self._require_role(connection, Role.HOST)
        async with live.lock:
            self._ensure_live(live)
            self._commit(live, state_machine.start_game(live.state, self._clock(), self._settings))
            logger.info("game started", pin=live.pin, players=len(live.state.players))
            await self._broadcast_state(live)

    async def reveal_leaderboard(self, connection: ConnectionProtocol) -> None:
        _, live = self._require_role(connection, Role.HOST)
        async with live.lock:
            self._ensure_live(live)
            self._commit(live, state_machine.reveal_leaderboard(live.state))
            await self._broadcast_state(live)

    async def advance(self, connection: ConnectionProtocol) -> None:
        _, live = self._require_role(connection, Role.HOST)
        async with live.lock:
            self._ensure_live(live)
            changed = self._commit(live, state_machine.advance(live.state, self._clock(), self._settings))
            if not changed:
                return
            if live.state.status == SessionStatus.FINISHED:
                logger.info("game finished", pin=live.pin)
                await self._record_completion(live)
            else:
                logger.info("question opened", pin=live.pin, round_id=live.state.round_id)
            await self._broadcast_state(live)

    async def award_buzzer(self, connection: ConnectionProtocol, user_id: str) -> None:
        _, live = self._require_role(connection, Role.HOST)
        async with live.lock:
            self._ensure_live(live)
            new_state, points = buzzer.award_buzzer_points(live.state, user_id, self._settings)
            buzzed_at = live.state.buzzed_player.timestamp if live.state.buzzed_player else self._clock()
            self._commit(live, new_state)
            await self._send_judgement(live, user_id, correct=True, points=points)
            await self._broadcast_state(live)
            judged = live.state
        await self._record_answer_stats(judged, user_id, correct=True, points=points, answered_at_ms=buzzed_at)

    async def lock_buzzer(self, connection: ConnectionProtocol, user_id: str) -> None:
        _, live = self._require_role(connection, Role.HOST)
        async with live.lock:
            self._ensure_live(live)
            buzzed_at = live.state.buzzed_player.timestamp if live.state.buzzed_player else self._clock()
            self._commit(live, buzzer.lock_buzzer_player(live.state, user_id))
            await self._send_judgement(live, user_id, correct=False, points=0)
            await self._broadcast_state(live)
            judged = live.state
        await self._record_answer_stats(judged, user_id, correct=False, points=0, answered_at_ms=buzzed_at)

    async def _send_judgement(self, live: LiveSession, user_id: str, *, correct: bool, points: int) -> None:
        message = BuzzerJudgedMessage(
            round_id=live.state.round_id,
            user_id=user_id,
            correct=correct,
            points=points,
        ).model_dump()
        logger.info("buzzer judged", pin=live.pin, user_id=user_id, correct=correct, points=points)
        await broadcast_to_participants(live.connections_for(user_id), message)

    # --- Player commands ---

    async def submit_answer(self, connection: ConnectionProtocol, round_id: int, answer: Any) -> None:  # noqa: ANN401
        participant, live = self._require_role(connection, Role.PLAYER)
        async with live.lock:
            self._ensure_live(live)
            now = self._clock()
            new_state, result = scoring.score_submission(
                live.state,
                participant.user_id,
                round_id,
                answer,
                now,
                self._settings,
            )
            self._commit(live, new_state)
            await connection.send_message(
                AnswerResultMessage(
                    round_id=result.round_id,
                    correct=result.correct,
                    points=result.points,
                    time_taken_ms=result.time_taken_ms,
                ).model_dump(),
            )
            await self._broadcast_state(live)
            answered = live.state
        await self._record_answer_stats(
            answered,
            participant.user_id,
            correct=result.correct,
            points=result.points,
            answered_at_ms=now,
            question_index=result.question_index,
            time_taken_ms=result.time_taken_ms,
        )

    async def buzz(self, connection: ConnectionProtocol, round_id: int) -> BuzzOutcome:
        participant, live = self._require_role(connection, Role.PLAYER)
        async with live.lock:
            self._ensure_live(live)
            new_state, outcome = buzzer.claim_buzzer(live.state, participant.user_id, round_id, self._clock())
            await connection.send_message(BuzzResultMessage(round_id=round_id, outcome=outcome).model_dump())
            if outcome == BuzzOutcome.CLAIMED:
                self._commit(live, new_state)
                logger.info("buzzer claimed", pin=live.pin, user_id=participant.user_id)
                await self._broadcast_state(live)
        return outcome

    async def handle_ping(self, connection: ConnectionProtocol) -> None:
        participant = self._participants.get(connection.connection_id)
        if participant is not None and (live := self._sessions.get(participant.pin)) is not None:
            live.touch()
        await connection.send_message(PongMessage().model_dump())

    async def send_error(self, connection: ConnectionProtocol, code: SessionErrorCode, message: str) -> None:
        logger.warning("session error sent to client", error_code=code.value, error_message=message)
        with contextlib.suppress(RuntimeError, OSError, ConnectionError):
            await connection.send_message(ErrorMessage(code=code, message=message).model_dump())

    # --- State plumbing ---

    @staticmethod
    def _commit(live: LiveSession, new_state: SessionState) -> bool:
        """Install `new_state` with the next revision. Must hold live.lock."""
        if new_state is live.state:
            return False
        live.state = new_state.model_copy(update={"revision": live.state.revision + 1})
        live.touch()
        return True

    @staticmethod
    def _snapshot_message(state: SessionState) -> dict[str, Any]:
        return SessionStateMessage(session=state.to_wire()).model_dump()

    async def _broadcast_state(self, live: LiveSession) -> None:
        await broadcast_to_participants(live.participants.values(), self._snapshot_message(live.state))

    # --- Persistence (best effort) ---

    async def _record_session_start(self, live: LiveSession) -> None:
        if self._session_repository is None:
            return
        quiz = live.state.quiz_snapshot
        played = PlayedSession(
            session_id=live.session_id,
            session_key=live.session_key,
            pin=live.pin,
            host_id=live.host_id,
            quiz_id=live.state.quiz_id,
            quiz_title=quiz.title,
            started_at=datetime.now(UTC),
            num_questions=len(quiz.questions),
        )
        try:
            await self._session_repository.create_session(played)
        except Exception:
            logger.exception("failed to persist session start")

    async def _record_session_finish(
        self,
        live: LiveSession,
        reason: EndReason,
        standings: list[PlayedSessionStanding] | None = None,
    ) -> None:
        if self._session_repository is None:
            return
        try:
            await self._session_repository.finish_session(
                live.session_id,
                ended_at=datetime.now(UTC),
                end_reason=reason.value,
                standings=standings,
            )
        except Exception:
            logger.exception("failed to persist session end")

    async def _record_completion(self, live: LiveSession) -> None:
        """Credit games played, wins, and playtime once per finished session. Must hold live.lock."""
        if live.stats_recorded:
            return
        live.stats_recorded = True
        state = live.state
        winners = state_machine.winners(state)
        started_at = state.started_at if state.started_at is not None else self._clock()
        playtime_seconds = max(0, (self._clock() - started_at) // 1000)
        standings = [
            PlayedSessionStanding(
                user_id=entry.user_id,
                nickname=entry.nickname,
                score=entry.score,
                won=entry.user_id in winners,
            )
            for entry in state_machine.leaderboard(state)
        ]
        logger.info("recording final standings", pin=live.pin, winners=sorted(winners))

        if self._stats_repository is not None:
            for uid in state.players:
                try:
                    await self._stats_repository.record_game_played(uid)
                    if uid in winners:
                        await self._stats_repository.record_game_won(uid)
                    await self._stats_repository.add_playtime(uid, playtime_seconds)
                except Exception:
                    logger.exception("failed to record game stats", user_id=uid)
        await self._record_session_finish(live, EndReason.COMPLETED, standings)

    async def _record_answer_stats(
        self,
        state: SessionState,
        user_id: str,
        *,
        correct: bool,
        points: int,
        answered_at_ms: int,
        question_index: int | None = None,
        time_taken_ms: int | None = None,
    ) -> None:
        if self._stats_repository is None:
            return
        index = state.current_question_index if question_index is None else question_index
        question = state.quiz_snapshot.questions[index]
        if time_taken_ms is None:
            time_taken_ms = max(0, answered_at_ms - (state.start_time or answered_at_ms))
        record = AnswerRecord(
            quiz_id=state.quiz_id,
            question_text=question.text,
            time_taken_ms=time_taken_ms,
            is_correct=correct,
            points_earned=points,
            answered_at=datetime.fromtimestamp(answered_at_ms / 1000, tz=UTC),
        )
        try:
            await self._stats_repository.record_question_answered(user_id, correct=correct)
            await self._stats_repository.add_score(user_id, points)
            await self._stats_repository.record_answer(user_id, record)
        except Exception:
            logger.exception("failed to record answer stats", user_id=user_id)

    # --- Session reaper ---

    def start_reaper(self) -> None:
        """Start the periodic idle-session reaper. Idempotent."""
        if self._session_ttl_seconds <= 0:
            return
        if self._reaper_task is not None and not self._reaper_task.done():
            return
        self._reaper_task = asyncio.create_task(self._reaper_loop())

    async def stop_reaper(self) -> None:
        if self._reaper_task is not None:
            self._reaper_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._reaper_task
            self._reaper_task = None

    async def _reaper_loop(self) -> None:
        while True:
            await asyncio.sleep(_REAPER_INTERVAL)
            try:
                await self.reap_expired_sessions()
            except Exception:
                logger.exception("session reaper encountered an error")

    async def reap_expired_sessions(self) -> int:
        """End every session idle for longer than the TTL. Returns how many were ended."""
        now = time.monotonic()
        expired = [
            live for live in list(self._sessions.values()) if now - live.last_activity > self._session_ttl_seconds
        ]
        for live in expired:
            logger.info("session expired", pin=live.pin)
            await self._end_session(live, EndReason.EXPIRED)
        return len(expired)

    async def shutdown(self) -> None:
        """Stop the reaper and end every live session (used on server shutdown)."""
        await self.stop_reaper()
        for live in list(self._sessions.values()):
            await self._end_session(live, EndReason.ABANDONED)
