import pytest

from mohoot.logic.buzzer import award_buzzer_points, claim_buzzer, lock_buzzer_player
from mohoot.logic.enums import BuzzOutcome
from mohoot.logic.exceptions import BuzzerJudgementError
from mohoot.logic.settings import GameSettings
from mohoot.logic.state_machine import (
    advance,
    create_session_state,
    join_player,
    reveal_leaderboard,
    start_game,
)
from mohoot.tests.helpers.quiz import buzzer_question, choice_question, make_quiz

NOW = 1_000_000
SETTINGS = GameSettings(base_score=500, preroll_ms=0)


def _open(*questions, players=("a", "b")):
    state = create_session_state("123456", "host", "quiz-1", make_quiz(*questions))
    for uid in players:
        state = join_player(state, uid, uid.upper())
    return start_game(state, NOW, SETTINGS)


class TestClaimBuzzer:
    def test_first_claim_wins(self):
        state, outcome = claim_buzzer(_open(buzzer_question()), "a", 1, NOW + 100)
        assert outcome == BuzzOutcome.CLAIMED
        assert state.buzzed_player.uid == "a"
        assert state.buzzed_player.timestamp == NOW + 100

    def test_second_claim_is_taken_and_changes_nothing(self):
        state, _ = claim_buzzer(_open(buzzer_question()), "a", 1, NOW)
        after, outcome = claim_buzzer(state, "b", 1, NOW + 5)
        assert outcome == BuzzOutcome.TAKEN
        assert after is state

    def test_claim_on_choice_question(self):
        state = _open(choice_question())
        after, outcome = claim_buzzer(state, "a", 1, NOW)
        assert outcome == BuzzOutcome.NOT_BUZZER
        assert after is state

    def test_claim_for_stale_round(self):
        _, outcome = claim_buzzer(_open(buzzer_question()), "a", 7, NOW)
        assert outcome == BuzzOutcome.STALE_ROUND

    def test_claim_outside_question(self):
        state = reveal_leaderboard(_open(buzzer_question()))
        _, outcome = claim_buzzer(state, "a", 1, NOW)
        assert outcome == BuzzOutcome.CLOSED

    def test_claim_after_time_is_up(self):
        _, outcome = claim_buzzer(_open(buzzer_question(duration=10)), "a", 1, NOW + 10_001)
        assert outcome == BuzzOutcome.CLOSED

    def test_locked_player_cannot_claim_again_this_round(self):
        state, _ = claim_buzzer(_open(buzzer_question()), "a", 1, NOW)
        state = lock_buzzer_player(state, "a")
        _, outcome = claim_buzzer(state, "a", 1, NOW + 10)
        assert outcome == BuzzOutcome.LOCKED

    def test_lock_reopens_buzzer_for_others(self):
        state, _ = claim_buzzer(_open(buzzer_question()), "a", 1, NOW)
        state = lock_buzzer_player(state, "a")
        state, outcome = claim_buzzer(state, "b", 1, NOW + 10)
        assert outcome == BuzzOutcome.CLAIMED
        assert state.buzzed_player.uid == "b"

    def test_lock_clears_on_next_round(self):
        state, _ = claim_buzzer(_open(buzzer_question(), buzzer_question()), "a", 1, NOW)
        state = lock_buzzer_player(state, "a")
        state = advance(reveal_leaderboard(state), NOW, SETTINGS)
        _, outcome = claim_buzzer(state, "a", 2, NOW)
        assert outcome == BuzzOutcome.CLAIMED


class TestJudgement:
    def test_award_uses_time_at_buzz(self):
        state, _ = claim_buzzer(_open(buzzer_question(duration=20)), "a", 1, NOW + 10_000)
        state, points = award_buzzer_points(state, "a", SETTINGS)
        assert points == 750
        assert state.players["a"].score == 750
        assert state.players["a"].last_answer_idx == -1
        assert state.players["a"].last_answered_round_id == 1
        assert state.buzzed_player.uid == "a"

    def test_award_twice_rejected(self):
        state, _ = claim_buzzer(_open(buzzer_question()), "a", 1, NOW)
        state, _ = award_buzzer_points(state, "a", SETTINGS)
        with pytest.raises(BuzzerJudgementError):
            award_buzzer_points(state, "a", SETTINGS)

    def test_judging_non_holder_rejected(self):
        state, _ = claim_buzzer(_open(buzzer_question()), "a", 1, NOW)
        with pytest.raises(BuzzerJudgementError):
            award_buzzer_points(state, "b", SETTINGS)
        with pytest.raises(BuzzerJudgementError):
            lock_buzzer_player(state, "b")

    def test_judging_without_holder_rejected(self):
        with pytest.raises(BuzzerJudgementError):
            lock_buzzer_player(_open(buzzer_question()), "a")

    def test_lock_marks_answered_without_points(self):
        state, _ = claim_buzzer(_open(buzzer_question()), "a", 1, NOW)
        state = lock_buzzer_player(state, "a")
        assert state.players["a"].score == 0
        assert state.players["a"].last_answered_round_id == 1
        assert state.locked_players == ("a",)
        assert state.buzzed_player is None
