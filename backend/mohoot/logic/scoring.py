"""
Answer checking and time-based scoring.

A correct answer earns base + base * remaining / duration, rounded half up,
so an instant answer is worth twice the base and a last-moment answer the
base alone. Wrong answers earn nothing.
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, Any

from mohoot.logic.enums import AnswerRejection, QuestionType, SessionStatus
from mohoot.logic.exceptions import AnswerRejectedError
from mohoot.logic.types import CHOICE_SLOTS, NON_CHOICE_ANSWER_IDX, AnswerResult, Question, SessionState

if TYPE_CHECKING:
    from mohoot.logic.settings import GameSettings


def normalize_typed_answer(text: str) -> str:
    return text.strip().casefold()


def is_correct(question: Question, answer: Any) -> bool:
    """Check an answer against the question's key. BUZZER questions are judged by the host."""
    if question.type == QuestionType.CHOICE:
        return _is_choice_index(answer) and answer == question.correct
    if question.type == QuestionType.TYPING:
        if not isinstance(answer, str) or question.correct_text is None:
            return False
        return normalize_typed_answer(answer) == normalize_typed_answer(question.correct_text)
    return False


def compute_reward(base: int, time_remaining_ms: int, duration_ms: int) -> int:
    """Points for a correct answer with `time_remaining_ms` left on the clock.

    Remaining time is clamped to [0, duration_ms]. Halves round up.
    """
    if duration_ms <= 0:
        return base
    remaining = min(max(time_remaining_ms, 0), duration_ms)
    return math.floor(base + base * remaining / duration_ms + 0.5)


def _is_choice_index(answer: Any) -> bool:
    return isinstance(answer, int) and not isinstance(answer, bool) and 0 <= answer < CHOICE_SLOTS


def _validate_answer_shape(question: Question, answer: Any) -> None:
    if question.type == QuestionType.BUZZER:
        raise AnswerRejectedError(AnswerRejection.WRONG_TYPE)
    if question.type == QuestionType.CHOICE and not _is_choice_index(answer):
        raise AnswerRejectedError(AnswerRejection.INVALID_ANSWER)
    if question.type == QuestionType.TYPING and not isinstance(answer, str):
        raise AnswerRejectedError(AnswerRejection.INVALID_ANSWER)


def score_submission(
    state: SessionState,
    uid: str,
    round_id: int,
    answer: Any,
    now_ms: int,
    settings: GameSettings,
) -> tuple[SessionState, AnswerResult]:
    """
    Accept one answer from `uid` for `round_id` and credit the player.

    Raises AnswerRejectedError, leaving the state untouched, when the session
    is not taking answers, the round is stale, the player already answered,
    the clock has run out, or the answer does not fit the question.
    """
    if state.status != SessionStatus.QUESTION:
        raise AnswerRejectedError(AnswerRejection.NOT_ACCEPTING)
    if round_id != state.round_id:
        raise AnswerRejectedError(AnswerRejection.STALE_ROUND)
    player = state.players.get(uid)
    if player is None:
        raise AnswerRejectedError(AnswerRejection.NOT_ACCEPTING)
    if player.last_answered_round_id == state.round_id:
        raise AnswerRejectedError(AnswerRejection.ALREADY_ANSWERED)

    question = state.quiz_snapshot.questions[state.current_question_index]
    _validate_answer_shape(question, answer)

    if state.end_time is not None and now_ms > state.end_time:
        raise AnswerRejectedError(AnswerRejection.WINDOW_CLOSED)

    start_time = state.start_time if state.start_time is not None else now_ms
    end_time = state.end_time if state.end_time is not None else start_time + question.duration_ms
    correct = is_correct(question, answer)
    points = compute_reward(settings.base_score, end_time - now_ms, question.duration_ms) if correct else 0

    updated = player.model_copy(
        update={
            "score": player.score + points,
            "last_answer_idx": answer if question.type == QuestionType.CHOICE else NON_CHOICE_ANSWER_IDX,
            "last_answered_round_id": state.round_id,
        },
    )
    new_state = state.model_copy(update={"players": {**state.players, uid: updated}})
    result = AnswerResult(
        round_id=state.round_id,
        question_index=state.current_question_index,
        correct=correct,
        points=points,
        time_taken_ms=max(0, now_ms - start_time),
    )
    return new_state, result
