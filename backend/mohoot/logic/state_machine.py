"""
Session state machine: LOBBY -> QUESTION -> LEADERBOARD -> ... -> FINISHED.

Every function takes the current SessionState and returns a new one. Nothing
here does I/O or mutates its input; the session manager applies the result
under the session lock and bumps the revision.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from mohoot.logic.enums import SessionStatus
from mohoot.logic.exceptions import InvalidTransitionError
from mohoot.logic.types import LeaderboardEntry, PlayerRecord, Question, Quiz, SessionState

if TYPE_CHECKING:
    from mohoot.logic.settings import GameSettings


def create_session_state(pin: str, host_id: str, quiz_id: str, quiz: Quiz) -> SessionState:
    """Build a fresh LOBBY session around a frozen snapshot of the quiz."""
    return SessionState(
        pin=pin,
        host_id=host_id,
        quiz_id=quiz_id,
        quiz_snapshot=quiz.model_copy(deep=True),
    )


def current_question(state: SessionState) -> Question | None:
    questions = state.quiz_snapshot.questions
    if 0 <= state.current_question_index < len(questions):
        return questions[state.current_question_index]
    return None


def open_question(state: SessionState, index: int, now_ms: int, settings: GameSettings) -> SessionState:
    """Open question `index` as a new round with a fresh clock and buzzer."""
    question = state.quiz_snapshot.questions[index]
    start_time = now_ms + settings.preroll_ms
    return state.model_copy(
        update={
            "status": SessionStatus.QUESTION,
            "current_question_index": index,
            "round_id": state.round_id + 1,
            "start_time": start_time,
            "end_time": start_time + question.duration_ms,
            "buzzed_player": None,
            "locked_players": (),
        },
    )


def start_game(state: SessionState, now_ms: int, settings: GameSettings) -> SessionState:
    if state.status != SessionStatus.LOBBY:
        raise InvalidTransitionError(action="start the game", status=state.status)
    started = open_question(state, 0, now_ms, settings)
    return started.model_copy(update={"started_at": now_ms})


def reveal_leaderboard(state: SessionState) -> SessionState:
    if state.status != SessionStatus.QUESTION:
        raise InvalidTransitionError(action="reveal the leaderboard", status=state.status)
    return state.model_copy(update={"status": SessionStatus.LEADERBOARD})


def advance(state: SessionState, now_ms: int, settings: GameSettings) -> SessionState:
    """
    Move past the leaderboard: open the next question or finish the game.

    Advancing a FINISHED session returns it unchanged so a repeated host
    command is harmless.
    """
    if state.status == SessionStatus.FINISHED:
        return state
    if state.status != SessionStatus.LEADERBOARD:
        raise InvalidTransitionError(action="advance", status=state.status)

    next_index = state.current_question_index + 1
    if next_index < len(state.quiz_snapshot.questions):
        return open_question(state, next_index, now_ms, settings)
    return state.model_copy(update={"status": SessionStatus.FINISHED})


def join_player(state: SessionState, uid: str, nickname: str, photo: str = "") -> SessionState:
    """Add a player, or refresh nickname and photo on re-join.

    Score and answer markers of an existing player are preserved.
    """
    existing = state.players.get(uid)
    if existing is None:
        record = PlayerRecord(nickname=nickname, photo=photo)
    else:
        record = existing.model_copy(update={"nickname": nickname, "photo": photo})
    return state.model_copy(update={"players": {**state.players, uid: record}})


def has_answered(state: SessionState, uid: str) -> bool:
    player = state.players.get(uid)
    if player is None or state.round_id <= 0:
        return False
    return player.last_answered_round_id == state.round_id


def leaderboard(state: SessionState) -> list[LeaderboardEntry]:
    """Players ordered by score, highest first. Ties keep join order."""
    ordered = sorted(state.players.items(), key=lambda item: item[1].score, reverse=True)
    return [
        LeaderboardEntry(rank=rank, user_id=uid, nickname=player.nickname, score=player.score)
        for rank, (uid, player) in enumerate(ordered, start=1)
    ]


def winners(state: SessionState) -> set[str]:
    """Every player holding the top score. Empty when nobody joined."""
    if not state.players:
        return set()
    top = max(player.score for player in state.players.values())
    return {uid for uid, player in state.players.items() if player.score == top}
