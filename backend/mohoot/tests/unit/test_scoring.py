import pytest

from mohoot.logic.enums import AnswerRejection
from mohoot.logic.exceptions import AnswerRejectedError
from mohoot.logic.scoring import compute_reward, is_correct, score_submission
from mohoot.logic.settings import GameSettings
from mohoot.logic.state_machine import (
    advance,
    create_session_state,
    join_player,
    reveal_leaderboard,
    start_game,
)
from mohoot.tests.helpers.quiz import buzzer_question, choice_question, make_quiz, typing_question

NOW = 1_000_000
SETTINGS = GameSettings(base_score=500, preroll_ms=0)


def _open(*questions, players=("a",)):
    state = create_session_state("123456", "host", "quiz-1", make_quiz(*questions))
    for uid in players:
        state = join_player(state, uid, uid.upper())
    return start_game(state, NOW, SETTINGS)


class TestComputeReward:
    def test_instant_answer_earns_double_base(self):
        assert compute_reward(500, 20_000, 20_000) == 1000

    def test_last_moment_answer_earns_base(self):
        assert compute_reward(500, 0, 20_000) == 500

    def test_half_time_left(self):
        assert compute_reward(500, 10_000, 20_000) == 750

    def test_remaining_time_is_clamped(self):
        assert compute_reward(500, -5_000, 20_000) == 500
        assert compute_reward(500, 25_000, 20_000) == 1000

    def test_rounds_half_up(self):
        # 5 + 5 * 1/2 = 7.5
        assert compute_reward(5, 500, 1000) == 8

    def test_small_base(self):
        assert compute_reward(5, 20_000, 20_000) == 10
        assert compute_reward(5, 0, 20_000) == 5


class TestIsCorrect:
    def test_choice_index(self):
        question = choice_question(correct=2)
        assert is_correct(question, 2)
        assert not is_correct(question, 1)

    def test_choice_rejects_bool(self):
        assert not is_correct(choice_question(correct=1), True)

    @pytest.mark.parametrize("answer", [" paris ", "PARIS", "Paris", "pArIs\n"])
    def test_typing_is_trimmed_and_case_insensitive(self, answer):
        assert is_correct(typing_question(correct_text="Paris"), answer)

    def test_typing_wrong(self):
        assert not is_correct(typing_question(correct_text="Paris"), "Lyon")


class TestScoreSubmission:
    def test_correct_answer_scored_by_time_remaining(self):
        state = _open(choice_question(correct=1, duration=20))
        new_state, result = score_submission(state, "a", 1, 1, NOW + 10_000, SETTINGS)
        assert result.correct is True
        assert result.points == 750
        assert result.time_taken_ms == 10_000
        player = new_state.players["a"]
        assert player.score == 750
        assert player.last_answer_idx == 1
        assert player.last_answered_round_id == 1

    def test_wrong_answer_scores_zero_but_marks_answered(self):
        state = _open(choice_question(correct=1))
        new_state, result = score_submission(state, "a", 1, 3, NOW, SETTINGS)
        assert result.points == 0
        assert new_state.players["a"].score == 0
        assert new_state.players["a"].last_answered_round_id == 1

    def test_typing_answer_records_non_choice_index(self):
        state = _open(typing_question(correct_text="Paris"))
        new_state, result = score_submission(state, "a", 1, "  paris", NOW, SETTINGS)
        assert result.correct
        assert new_state.players["a"].last_answer_idx == -1

    def test_duplicate_submission_rejected(self):
        state = _open(choice_question(correct=0))
        state, _ = score_submission(state, "a", 1, 0, NOW, SETTINGS)
        with pytest.raises(AnswerRejectedError) as exc_info:
            score_submission(state, "a", 1, 0, NOW, SETTINGS)
        assert exc_info.value.reason == AnswerRejection.ALREADY_ANSWERED
        assert state.players["a"].score == 1000

    def test_stale_round_rejected(self):
        state = _open(choice_question(), choice_question())
        state = advance(reveal_leaderboard(state), NOW, SETTINGS)
        with pytest.raises(AnswerRejectedError) as exc_info:
            score_submission(state, "a", 1, 0, NOW, SETTINGS)
        assert exc_info.value.reason == AnswerRejection.STALE_ROUND

    def test_late_submission_rejected(self):
        state = _open(choice_question(duration=20))
        with pytest.raises(AnswerRejectedError) as exc_info:
            score_submission(state, "a", 1, 0, NOW + 20_001, SETTINGS)
        assert exc_info.value.reason == AnswerRejection.WINDOW_CLOSED

    def test_answer_at_end_time_still_accepted(self):
        state = _open(choice_question(correct=0, duration=20))
        _, result = score_submission(state, "a", 1, 0, NOW + 20_000, SETTINGS)
        assert result.points == 500

    def test_not_accepting_outside_question(self):
        state = reveal_leaderboard(_open(choice_question()))
        with pytest.raises(AnswerRejectedError) as exc_info:
            score_submission(state, "a", 1, 0, NOW, SETTINGS)
        assert exc_info.value.reason == AnswerRejection.NOT_ACCEPTING

    def test_unknown_player_rejected(self):
        state = _open(choice_question())
        with pytest.raises(AnswerRejectedError):
            score_submission(state, "stranger", 1, 0, NOW, SETTINGS)

    def test_buzzer_question_takes_no_submissions(self):
        state = _open(buzzer_question())
        with pytest.raises(AnswerRejectedError) as exc_info:
            score_submission(state, "a", 1, 0, NOW, SETTINGS)
        assert exc_info.value.reason == AnswerRejection.WRONG_TYPE

    @pytest.mark.parametrize("answer", [4, -1, "2", True])
    def test_malformed_choice_answer_rejected(self, answer):
        state = _open(choice_question())
        with pytest.raises(AnswerRejectedError) as exc_info:
            score_submission(state, "a", 1, answer, NOW, SETTINGS)
        assert exc_info.value.reason == AnswerRejection.INVALID_ANSWER

    def test_answer_during_preroll_is_capped(self):
        settings = GameSettings(preroll_ms=2000)
        state = create_session_state("123456", "host", "q", make_quiz(choice_question(correct=0)))
        state = start_game(join_player(state, "a", "A"), NOW, settings)
        _, result = score_submission(state, "a", 1, 0, NOW, settings)
        assert result.points == 1000
        assert result.time_taken_ms == 0

    def test_base_score_is_configurable(self):
        settings = GameSettings(base_score=5, preroll_ms=0)
        state = _open(choice_question(correct=0))
        _, result = score_submission(state, "a", 1, 0, NOW, settings)
        assert result.points == 10
