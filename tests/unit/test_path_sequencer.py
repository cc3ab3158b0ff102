"""
Unit tests for PathSequencer gating.

Stateless: paths are built in memory and mutated in place.
"""
import pytest

from learnpath.adaptive.checkpoint_evaluator import CheckpointEvaluator
from learnpath.adaptive.errors import (
    StepAlreadyCompletedError,
    StepLockedError,
    StepNotFoundError,
)
from learnpath.adaptive.path_sequencer import PathSequencer


@pytest.fixture
def sequencer():
    return PathSequencer()


class TestSequentialGating:
    def test_first_step_is_unlocked(self, sequencer, make_path):
        path = make_path()
        sequencer.complete_step(path, "s0")
        assert path.steps[0].completed
        assert path.steps[0].completed_at is not None

    def test_cannot_skip_ahead(self, sequencer, make_path):
        path = make_path()
        with pytest.raises(StepLockedError):
            sequencer.complete_step(path, "s1")
        assert not path.steps[1].completed

    def test_completing_twice_rejected(self, sequencer, make_path):
        path = make_path()
        sequencer.complete_step(path, "s0")
        with pytest.raises(StepAlreadyCompletedError):
            sequencer.complete_step(path, "s0")

    def test_unknown_step(self, sequencer, make_path):
        with pytest.raises(StepNotFoundError):
            sequencer.complete_step(make_path(), "nope")


class TestCheckpointGating:
    def test_failing_then_passing_attempt(self, sequencer, make_path, score_answers):
        path = make_path(step_count=6, checkpoint_orders=(2,), passing_score=70)
        for step_id in ("s0", "s1", "s2"):
            sequencer.complete_step(path, step_id)

        evaluator = CheckpointEvaluator()
        checkpoint = path.checkpoints[0]

        attempt = evaluator.record(path, "c2", score_answers(checkpoint, 5))
        assert attempt.score == 50
        with pytest.raises(StepLockedError):
            sequencer.complete_step(path, "s3")

        attempt = evaluator.record(path, "c2", score_answers(checkpoint, 8))
        assert attempt.score == 80
        sequencer.complete_step(path, "s3")
        assert path.steps[3].completed

    def test_blocking_reason_names_checkpoint(self, make_path):
        path = make_path(step_count=4, checkpoint_orders=(1,))
        for step in path.steps[:2]:
            step.completed = True

        reason = PathSequencer.blocking_reason(path.main_sequence, path.steps[2])
        assert reason is not None
        assert "Checkpoint after step 1" in reason
        # the step right before the checkpoint is not gated by it
        assert PathSequencer.is_unlocked(path.main_sequence, path.steps[1]) is True


class TestNextCheckpoint:
    def test_ready_once_covered_steps_done(self, sequencer, make_path):
        path = make_path(step_count=6, checkpoint_orders=(2,))
        sequencer.complete_step(path, "s0")
        assert sequencer.next_checkpoint(path) is None

        sequencer.complete_step(path, "s1")
        sequencer.complete_step(path, "s2")
        assert sequencer.next_checkpoint(path).id == "c2"


class TestPathCompletion:
    def test_completed_at_set_when_everything_done(self, sequencer, make_path, score_answers):
        path = make_path(step_count=3, checkpoint_orders=(0,))
        sequencer.complete_step(path, "s0")
        CheckpointEvaluator().record(path, "c0", score_answers(path.checkpoints[0], 10))
        sequencer.complete_step(path, "s1")
        assert path.completed_at is None

        sequencer.complete_step(path, "s2")
        assert path.completed_at is not None
        assert path.progress == 100
