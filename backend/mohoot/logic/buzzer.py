"""
Buzzer arbitration for BUZZER questions.

The first valid claim in a round holds the buzzer. Claims are applied one at
a time under the session lock, so checking for an existing holder and taking
the buzzer happen as one step and exactly one of many racing claims wins.
The host then awards points or locks the holder out for the rest of the round.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from mohoot.logic.enums import BuzzOutcome, QuestionType, SessionStatus
from mohoot.logic.exceptions import BuzzerJudgementError
from mohoot.logic.scoring import compute_reward
from mohoot.logic.state_machine import current_question
from mohoot.logic.types import NON_CHOICE_ANSWER_IDX, BuzzedPlayer, SessionState

if TYPE_CHECKING:
    from mohoot.logic.settings import GameSettings


def claim_buzzer(state: SessionState, uid: str, round_id: int, now_ms: int) -> tuple[SessionState, BuzzOutcome]:
    """Try to take the buzzer. Only a CLAIMED outcome returns a changed state."""
    if state.status != SessionStatus.QUESTION or uid not in state.players:
        return state, BuzzOutcome.CLOSED
    if round_id != state.round_id:
        return state, BuzzOutcome.STALE_ROUND
    question = current_question(state)
    if question is None or question.type != QuestionType.BUZZER:
        return state, BuzzOutcome.NOT_BUZZER
    if uid in state.locked_players:
        return state, BuzzOutcome.LOCKED
    if state.end_time is not None and now_ms > state.end_time:
        return state, BuzzOutcome.CLOSED
    if state.buzzed_player is not None:
        return state, BuzzOutcome.TAKEN
    return state.model_copy(update={"buzzed_player": BuzzedPlayer(uid=uid, timestamp=now_ms)}), BuzzOutcome.CLAIMED


def _require_holder(state: SessionState, uid: str) -> None:
    if state.status != SessionStatus.QUESTION:
        raise BuzzerJudgementError(f"no open question to judge in status {state.status.value}")
    if state.buzzed_player is None or state.buzzed_player.uid != uid:
        raise BuzzerJudgementError(f"player {uid} does not hold the buzzer")
    if uid not in state.players:
        raise BuzzerJudgementError(f"player {uid} is not in the session")


def award_buzzer_points(state: SessionState, uid: str, settings: GameSettings) -> tuple[SessionState, int]:
    """
    Credit the buzzer holder for a correct spoken answer.

    Points use the time remaining when the buzz landed, not when the host
    judged it. The holder keeps the buzzer until the round moves on.
    """
    _require_holder(state, uid)
    if state.players[uid].last_answered_round_id == state.round_id:
        raise BuzzerJudgementError(f"player {uid} was already judged this round")

    question = state.quiz_snapshot.questions[state.current_question_index]
    buzzed_at = state.buzzed_player.timestamp  # type: ignore[union-attr]
    end_time = state.end_time if state.end_time is not None else buzzed_at + question.duration_ms
    points = compute_reward(settings.base_score, end_time - buzzed_at, question.duration_ms)

    player = state.players[uid]
    updated = player.model_copy(
        update={
            "score": player.score + points,
            "last_answer_idx": NON_CHOICE_ANSWER_IDX,
            "last_answered_round_id": state.round_id,
        },
    )
    return state.model_copy(update={"players": {**state.players, uid: updated}}), points


def lock_buzzer_player(state: SessionState, uid: str) -> SessionState:
    """Rule the holder wrong: lock them out of this round and free the buzzer."""
    _require_holder(state, uid)
    player = state.players[uid]
    updated = player.model_copy(
        update={
            "last_answer_idx": NON_CHOICE_ANSWER_IDX,
            "last_answered_round_id": state.round_id,
        },
    )
    return state.model_copy(
        update={
            "players": {**state.players, uid: updated},
            "locked_players": (*state.locked_players, uid),
            "buzzed_player": None,
        },
    )
