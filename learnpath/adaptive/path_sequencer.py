"""
Learning Path Sequencer.

Enforces strict sequential gating within a sequence:
- a step unlocks only when every earlier step is completed
- a step after a checkpoint unlocks only once that checkpoint has a passing attempt

Branch sequences gate against themselves; the main-sequence steps up to the
fork point are completed by construction (a branch can only fork at a
completed step).
"""
from __future__ import annotations

from datetime import datetime

from loguru import logger

from learnpath.adaptive.errors import (
    StepAlreadyCompletedError,
    StepLockedError,
    StepNotFoundError,
)
from learnpath.adaptive.models import Checkpoint, LearningPath, PathSequence, Step, utcnow


class PathSequencer:
    """Gating checks and step completion."""

    @staticmethod
    def blocking_reason(sequence: PathSequence, step: Step) -> str | None:
        """
        Explain why ``step`` cannot be completed yet.

        Returns:
            A human-readable reason, or None when the step is unlocked
        """
        for earlier in sequence.ordered_steps():
            if earlier.order >= step.order:
                break
            if not earlier.completed:
                return f"Step {earlier.order} ('{earlier.label}') is not completed"

        for checkpoint in sequence.checkpoints:
            if checkpoint.after_step_order < step.order and not checkpoint.is_passed:
                return (
                    f"Checkpoint after step {checkpoint.after_step_order} "
                    f"has no passing attempt (needs {checkpoint.passing_score:g})"
                )
        return None

    @classmethod
    def is_unlocked(cls, sequence: PathSequence, step: Step) -> bool:
        return cls.blocking_reason(sequence, step) is None

    def complete_step(
        self,
        path: LearningPath,
        step_id: str,
        now: datetime | None = None,
    ) -> Step:
        """
        Mark a step completed in place.

        Raises:
            StepNotFoundError: no step with this id in any sequence
            StepAlreadyCompletedError: step was completed before
            StepLockedError: an earlier step or checkpoint blocks it
        """
        found = path.find_step(step_id)
        if found is None:
            raise StepNotFoundError(f"Step not found: {step_id}")
        step, sequence = found

        if step.completed:
            raise StepAlreadyCompletedError(f"Step '{step.label}' is already completed")

        reason = self.blocking_reason(sequence, step)
        if reason:
            raise StepLockedError(f"Step '{step.label}' is locked: {reason}")

        step.completed = True
        step.completed_at = now or utcnow()
        self.refresh_completion(path, now)
        logger.debug(f"Path {path.id}: completed step {step.order} ('{step.label}')")
        return step

    @staticmethod
    def refresh_completion(path: LearningPath, now: datetime | None = None) -> None:
        """Stamp ``completed_at`` once the main sequence is fully completed and passed."""
        if path.completed_at is not None or not path.steps:
            return
        if all(s.completed for s in path.steps) and all(c.is_passed for c in path.checkpoints):
            path.completed_at = now or utcnow()
            logger.info(f"Path {path.id} completed")

    @staticmethod
    def next_checkpoint(path: LearningPath) -> Checkpoint | None:
        """First unpassed checkpoint of the active sequence whose covered steps are all done."""
        sequence = path.active_sequence
        highest = sequence.highest_completed_order
        for checkpoint in sorted(sequence.checkpoints, key=lambda c: c.after_step_order):
            if checkpoint.is_passed:
                continue
            if checkpoint.after_step_order <= highest:
                return checkpoint
            return None
        return None
