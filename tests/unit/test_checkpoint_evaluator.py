"""
Unit tests for CheckpointEvaluator scoring and answer validation.
"""
import pytest

from learnpath.adaptive.checkpoint_evaluator import CheckpointEvaluator
from learnpath.adaptive.errors import CheckpointNotFoundError, InvalidAnswerError
from learnpath.adaptive.models import Checkpoint, Question


@pytest.fixture
def evaluator():
    return CheckpointEvaluator()


@pytest.fixture
def mixed_checkpoint():
    single = Question.from_dict(
        {"id": "q1", "prompt": "Pick one", "options": ["x", "y", "z"], "correct_answers": ["1"]}
    )
    multi = Question.from_dict(
        {"id": "q2", "prompt": "Pick all", "options": ["x", "y", "z"], "correct_answers": ["0", "2"]}
    )
    third = Question.from_dict({"id": "q3", "prompt": "Again", "options": ["x", "y"], "correct_answer": 0})
    return Checkpoint(id="cp", after_step_order=2, questions=[single, multi, third], passing_score=60)


class TestScoring:
    def test_all_correct(self, evaluator, mixed_checkpoint):
        attempt = evaluator.evaluate(mixed_checkpoint, {"q1": "1", "q2": ["2", "0"], "q3": "0"})
        assert attempt.score == 100
        assert attempt.passed
        assert attempt.incorrect_question_ids == ()

    def test_multi_select_requires_exact_set(self, evaluator, mixed_checkpoint):
        attempt = evaluator.evaluate(mixed_checkpoint, {"q1": "1", "q2": ["0"], "q3": "0"})
        assert attempt.score == 66.67
        assert attempt.incorrect_question_ids == ("q2",)
        assert attempt.passed

    def test_unanswered_counts_as_incorrect(self, evaluator, mixed_checkpoint):
        attempt = evaluator.evaluate(mixed_checkpoint, {"q1": "1"})
        assert attempt.score == 33.33
        assert not attempt.passed
        assert set(attempt.incorrect_question_ids) == {"q2", "q3"}

    def test_record_appends_attempt_history(self, evaluator, make_path, score_answers):
        path = make_path()
        checkpoint = path.checkpoints[0]

        evaluator.record(path, "c2", score_answers(checkpoint, 3))
        evaluator.record(path, "c2", score_answers(checkpoint, 9))

        assert [a.score for a in checkpoint.attempts] == [30, 90]
        assert checkpoint.is_passed
        assert checkpoint.best_score == 90


class TestInvalidAnswers:
    def test_empty_answers(self, evaluator, mixed_checkpoint):
        with pytest.raises(InvalidAnswerError):
            evaluator.evaluate(mixed_checkpoint, {})

    def test_unknown_question(self, evaluator, mixed_checkpoint):
        with pytest.raises(InvalidAnswerError, match="Unknown question"):
            evaluator.evaluate(mixed_checkpoint, {"q9": "0"})

    def test_unknown_option(self, evaluator, mixed_checkpoint):
        with pytest.raises(InvalidAnswerError, match="Unknown option"):
            evaluator.evaluate(mixed_checkpoint, {"q1": "7"})

    def test_checkpoint_without_questions(self, evaluator):
        with pytest.raises(InvalidAnswerError):
            evaluator.evaluate(Checkpoint(id="empty", after_step_order=0, questions=[]), {"q": "a"})

    def test_invalid_answer_records_nothing(self, evaluator, make_path):
        path = make_path()
        with pytest.raises(InvalidAnswerError):
            evaluator.record(path, "c2", {"q0": "zzz"})
        assert path.checkpoints[0].attempts == []

    def test_unknown_checkpoint(self, evaluator, make_path):
        with pytest.raises(CheckpointNotFoundError):
            evaluator.record(make_path(), "missing", {"q0": "a"})
