"""
Unit tests for the assessment engine state machine.
"""

import random

import pytest

from app.config import PolicySettings
from app.errors import EmptyQuestionPool, InvalidTransition, SessionAlreadyFinished
from app.services.assessment import (
    AssessmentSession, Phase, Question, QuestionAttempt,
    abandon_session, continue_session, current_question, score_attempts,
    select_answer, start_session
)
from tests.conftest import make_bank


def wrong_option(question: Question) -> int:
    return (question.correct_index + 1) % len(question.options)


def answer_correctly(session, clock=None, **kwargs):
    question = current_question(session)
    if clock is not None:
        kwargs["clock"] = clock
    return select_answer(session, question.correct_index, **kwargs)


def answer_wrongly(session, clock=None, **kwargs):
    question = current_question(session)
    if clock is not None:
        kwargs["clock"] = clock
    return select_answer(session, wrong_option(question), **kwargs)


def fail_question(session, clock=None):
    answer_wrongly(session, clock)
    answer_wrongly(session, clock)
    return continue_session(session, clock) if clock else continue_session(session)


class TestQuestion:

    def test_init_when_one_option_then_raises_error(self):
        with pytest.raises(ValueError, match="at least 2 options"):
            Question(id=1, text="?", options=("only",), correct_index=0)

    def test_init_when_correct_index_out_of_range_then_raises_error(self):
        with pytest.raises(ValueError, match="correct_index"):
            Question(id=1, text="?", options=("a", "b"), correct_index=2)

    def test_init_when_options_list_then_stored_as_tuple(self):
        question = Question(id=1, text="?", options=["a", "b"], correct_index=1)
        assert question.options == ("a", "b")


class TestStartSession:

    def test_start_when_bank_empty_then_raises_empty_pool(self, policy):
        with pytest.raises(EmptyQuestionPool):
            start_session([], policy)

    def test_start_when_bank_matches_length_then_presents_every_question(self, bank, policy, rng):
        session = start_session(bank, policy, rng)

        assert session.total_questions == 20
        assert {q.id for q in session.questions} == {q.id for q in bank}
        assert session.phase == Phase.PRESENTING
        assert session.current_index == 0
        assert session.attempts_on_current == 0

    def test_start_when_bank_smaller_than_length_then_shorter_session(self, policy, rng):
        session = start_session(make_bank(5), policy, rng)

        assert session.total_questions == 5

    def test_start_when_bank_larger_than_length_then_draws_distinct_subset(self, policy, rng):
        big_bank = make_bank(50)

        session = start_session(big_bank, policy, rng)

        ids = [q.id for q in session.questions]
        assert len(ids) == 20
        assert len(set(ids)) == 20
        assert set(ids) <= {q.id for q in big_bank}

    def test_start_when_same_seed_then_same_draw(self, policy):
        bank = make_bank(50)

        first = start_session(bank, policy, random.Random(7))
        second = start_session(bank, policy, random.Random(7))

        assert [q.id for q in first.questions] == [q.id for q in second.questions]

    def test_start_does_not_reorder_caller_bank(self, bank, policy, rng):
        original = list(bank)

        start_session(bank, policy, rng)

        assert bank == original

    def test_start_snapshots_policy(self, bank, rng):
        policy = PolicySettings(pass_threshold=70, max_attempts=3)

        session = start_session(bank, policy, rng)

        assert session.pass_threshold == 70
        assert session.max_attempts == 3


class TestSelectAnswer:

    def test_select_when_correct_first_time_then_one_attempt_and_advances(self, bank, policy, rng):
        session = start_session(bank, policy, rng)
        first_id = current_question(session).id

        feedback = answer_correctly(session)

        assert feedback.accepted is True
        assert feedback.is_correct is True
        assert feedback.advanced is True
        assert session.details == [QuestionAttempt(first_id, 1, True)]
        assert session.current_index == 1
        assert session.attempts_on_current == 0

    def test_select_when_wrong_first_time_then_stays_without_explanation(self, bank, policy, rng):
        session = start_session(bank, policy, rng)

        feedback = answer_wrongly(session)

        assert feedback.accepted is True
        assert feedback.is_correct is False
        assert feedback.advanced is False
        assert feedback.explanation is None
        assert session.phase == Phase.PRESENTING
        assert session.current_index == 0
        assert session.attempts_on_current == 1
        assert session.details == []

    def test_select_when_correct_second_time_then_counts_as_correct(self, bank, policy, rng):
        session = start_session(bank, policy, rng)
        first_id = current_question(session).id
        answer_wrongly(session)

        feedback = answer_correctly(session)

        assert feedback.is_correct is True
        assert feedback.attempts_used == 2
        assert feedback.advanced is True
        assert session.details == [QuestionAttempt(first_id, 2, True)]

    def test_select_when_wrong_twice_then_reveals_explanation(self, bank, policy, rng):
        session = start_session(bank, policy, rng)
        question = current_question(session)
        answer_wrongly(session)

        feedback = answer_wrongly(session)

        assert feedback.is_correct is False
        assert feedback.attempts_used == 2
        assert feedback.explanation == question.explanation
        assert feedback.advanced is False
        assert session.phase == Phase.EXPLAINING
        assert session.details == [QuestionAttempt(question.id, 2, False)]

    def test_select_when_explaining_then_ignored(self, bank, policy, rng):
        session = start_session(bank, policy, rng)
        question = current_question(session)
        answer_wrongly(session)
        answer_wrongly(session)

        feedback = select_answer(session, question.correct_index)

        assert feedback.accepted is False
        assert session.phase == Phase.EXPLAINING
        assert session.details == [QuestionAttempt(question.id, 2, False)]

    def test_select_when_attempt_already_resolved_then_ignored(self, bank, policy, rng):
        session = start_session(bank, policy, rng)
        answer_wrongly(session, attempt=1)

        # A duplicate of the first selection arrives late
        feedback = answer_wrongly(session, attempt=1)

        assert feedback.accepted is False
        assert session.attempts_on_current == 1
        assert session.phase == Phase.PRESENTING

    def test_select_when_attempt_matches_awaited_then_processed(self, bank, policy, rng):
        session = start_session(bank, policy, rng)
        answer_wrongly(session, attempt=1)

        feedback = answer_correctly(session, attempt=2)

        assert feedback.accepted is True
        assert feedback.attempts_used == 2

    def test_select_when_option_out_of_range_then_raises_value_error(self, bank, policy, rng):
        session = start_session(bank, policy, rng)

        with pytest.raises(ValueError, match="not valid"):
            select_answer(session, 9)
        assert session.attempts_on_current == 0

    def test_select_when_three_attempts_allowed_then_explains_after_third(self, bank, rng):
        session = start_session(bank, PolicySettings(max_attempts=3), rng)

        answer_wrongly(session)
        answer_wrongly(session)
        assert session.phase == Phase.PRESENTING
        feedback = answer_wrongly(session)

        assert session.phase == Phase.EXPLAINING
        assert feedback.attempts_used == 3


class TestContinueSession:

    def test_continue_when_explaining_then_advances(self, bank, policy, rng):
        session = start_session(bank, policy, rng)
        answer_wrongly(session)
        answer_wrongly(session)

        feedback = continue_session(session)

        assert feedback.advanced is True
        assert session.phase == Phase.PRESENTING
        assert session.current_index == 1
        assert session.attempts_on_current == 0

    def test_continue_when_presenting_then_raises_invalid_transition(self, bank, policy, rng):
        session = start_session(bank, policy, rng)

        with pytest.raises(InvalidTransition):
            continue_session(session)

    def test_invalid_transition_is_a_value_error(self):
        assert issubclass(InvalidTransition, ValueError)


class TestFinishing:

    def test_finish_when_sixteen_first_try_and_four_failed_then_passes_at_eighty(
            self, bank, policy, rng, fixed_clock):
        """Scenario: 20 questions, 16 right first time, 4 wrong twice."""
        session = start_session(bank, policy, rng)
        feedback = None

        for index in range(20):
            if index < 16:
                feedback = answer_correctly(session, fixed_clock)
            else:
                feedback = fail_question(session, fixed_clock)

        result = feedback.result
        assert feedback.finished is True
        assert session.phase == Phase.FINISHED
        assert result.correct_answers == 16
        assert result.total_questions == 20
        assert result.score == 80
        assert result.passed is True
        assert result.date == fixed_clock()
        assert session.result is result

    def test_finish_when_fifteen_correct_then_fails(self, bank, policy, rng):
        session = start_session(bank, policy, rng)

        for index in range(20):
            if index < 15:
                answer_correctly(session)
            else:
                fail_question(session)

        assert session.result.score == 75
        assert session.result.passed is False

    def test_finish_when_recovered_answers_then_count_as_correct(self, bank, policy, rng):
        session = start_session(bank, policy, rng)

        for _ in range(20):
            answer_wrongly(session)
            answer_correctly(session)

        assert session.result.score == 100
        assert all(a.attempts_used == 2 and a.is_correct for a in session.result.question_details)

    def test_finish_details_follow_presentation_order(self, bank, policy, rng):
        session = start_session(bank, policy, rng)
        presented = [q.id for q in session.questions]

        for _ in range(20):
            answer_correctly(session)

        assert [a.question_id for a in session.result.question_details] == presented

    def test_result_emitted_only_on_last_transition(self, policy, rng):
        session = start_session(make_bank(3), policy, rng)

        results = [answer_correctly(session).result for _ in range(3)]

        assert results[0] is None
        assert results[1] is None
        assert results[2] is not None

    def test_select_when_finished_then_raises_session_already_finished(self, policy, rng):
        session = start_session(make_bank(1), policy, rng)
        answer_correctly(session)

        with pytest.raises(SessionAlreadyFinished):
            select_answer(session, 0)
        with pytest.raises(SessionAlreadyFinished):
            continue_session(session)
        with pytest.raises(SessionAlreadyFinished):
            abandon_session(session)


class TestAbandon:

    def test_abandon_when_in_progress_then_no_result(self, bank, policy, rng):
        session = start_session(bank, policy, rng)
        answer_correctly(session)

        abandon_session(session)

        assert session.phase == Phase.ABANDONED
        assert session.result is None
        assert current_question(session) is None

    def test_select_when_abandoned_then_raises(self, bank, policy, rng):
        session = start_session(bank, policy, rng)
        abandon_session(session)

        with pytest.raises(SessionAlreadyFinished, match="abandoned"):
            select_answer(session, 0)


class TestScoreAttempts:

    def _details(self, correct, total):
        return [QuestionAttempt(i, 1, i < correct) for i in range(total)]

    def test_score_when_thirds_then_rounds_to_nearest(self):
        assert score_attempts(self._details(1, 3), 80) == (33, False)
        assert score_attempts(self._details(2, 3), 60) == (67, True)

    def test_score_when_exact_half_then_rounds_up(self):
        assert score_attempts(self._details(1, 8), 80) == (13, False)

    def test_score_when_at_threshold_then_passes(self):
        assert score_attempts(self._details(16, 20), 80) == (80, True)

    def test_score_when_no_details_then_zero(self):
        assert score_attempts([], 80) == (0, False)


class TestSessionProperties:

    @pytest.mark.parametrize("bank_size", [1, 7, 20, 35])
    def test_random_play_keeps_invariants(self, bank_size, policy):
        """Random answering never breaks length, scoring or attempt rules."""
        play_rng = random.Random(bank_size)
        session = start_session(make_bank(bank_size), policy, random.Random(99))
        wrong_seen = set()

        while not session.is_terminal:
            if session.phase == Phase.EXPLAINING:
                continue_session(session)
                continue
            question = current_question(session)
            choice = play_rng.randrange(len(question.options))
            if choice != question.correct_index:
                wrong_seen.add(question.id)
            select_answer(session, choice)

        result = session.result
        assert len(result.question_details) == min(policy.session_length, bank_size)
        correct = sum(1 for a in result.question_details if a.is_correct)
        assert result.score == int(100 * correct / len(result.question_details) + 0.5)
        assert result.passed == (result.score >= policy.pass_threshold)
        for attempt in result.question_details:
            expected = 2 if attempt.question_id in wrong_seen else 1
            assert attempt.attempts_used == expected


class TestSerialization:

    def test_from_dict_when_mid_question_then_resumes_same_state(self, bank, policy, rng):
        session = start_session(bank, policy, rng)
        answer_correctly(session)
        answer_wrongly(session)

        restored = AssessmentSession.from_dict(session.to_dict())

        assert restored == session
        feedback = answer_correctly(restored)
        assert feedback.attempts_used == 2

    def test_from_dict_when_finished_then_result_restored(self, policy, rng, fixed_clock):
        session = start_session(make_bank(2), policy, rng)
        answer_correctly(session, fixed_clock)
        answer_correctly(session, fixed_clock)

        restored = AssessmentSession.from_dict(session.to_dict())

        assert restored.phase == Phase.FINISHED
        assert restored.result == session.result
