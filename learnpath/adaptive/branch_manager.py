"""
Branch Manager.

Forks alternate tracks from completed steps of the main sequence and switches
the active sequence. The main sequence is never touched here.
"""
from __future__ import annotations

import copy
from collections.abc import Iterable

from loguru import logger

from learnpath.adaptive.errors import (
    BranchNotFoundError,
    InvalidBranchError,
    InvalidForkPointError,
)
from learnpath.adaptive.models import (
    Branch,
    BranchCondition,
    Checkpoint,
    LearningPath,
    Step,
    new_id,
)


class BranchManager:
    """Create and switch branches."""

    @staticmethod
    def validate_fork(path: LearningPath, fork_at_step_order: int, branch_name: str) -> None:
        """
        Check a fork request before any content is generated for it.

        Raises:
            InvalidBranchError: blank or duplicate branch name
            InvalidForkPointError: fork order is not a completed main-sequence step
        """
        if not branch_name or not branch_name.strip():
            raise InvalidBranchError("Branch name must not be blank")
        if any(b.branch_name == branch_name.strip() for b in path.branches):
            raise InvalidBranchError(f"Branch '{branch_name.strip()}' already exists")

        fork_step = path.main_sequence.step_at(fork_at_step_order)
        if fork_step is None:
            raise InvalidForkPointError(f"No step with order {fork_at_step_order} in the main sequence")
        if not fork_step.completed:
            raise InvalidForkPointError(
                f"Cannot fork at step {fork_at_step_order}: step '{fork_step.label}' is not completed"
            )

    def create_branch(
        self,
        path: LearningPath,
        fork_at_step_order: int,
        branch_name: str,
        initial_steps: Iterable[Step],
        checkpoints: Iterable[Checkpoint] = (),
        condition: BranchCondition = BranchCondition.MANUAL,
        description: str = "",
        activate: bool = False,
    ) -> Branch:
        """
        Fork a branch in place on ``path``.

        Steps are copied with fresh ids, reset to incomplete and renumbered
        from 0 in the order given.
        """
        self.validate_fork(path, fork_at_step_order, branch_name)

        steps = []
        for order, source in enumerate(initial_steps):
            step = copy.deepcopy(source)
            step.id = new_id()
            step.order = order
            step.completed = False
            step.completed_at = None
            steps.append(step)
        if not steps:
            raise InvalidBranchError("A branch needs at least one step")

        branch_checkpoints = []
        for source in checkpoints:
            checkpoint = copy.deepcopy(source)
            checkpoint.attempts = []
            if checkpoint.after_step_order < len(steps) - 1:
                branch_checkpoints.append(checkpoint)

        branch = Branch(
            id=new_id(),
            parent_path_id=path.id,
            fork_at_step_order=fork_at_step_order,
            branch_name=branch_name.strip(),
            steps=steps,
            checkpoints=branch_checkpoints,
            condition=condition,
            description=description or f"Alternate track '{branch_name.strip()}' for {path.topic}",
        )
        branch.sequence.renumber()
        path.branches.append(branch)
        if activate:
            path.active_branch_id = branch.id

        logger.info(
            f"Path {path.id}: forked branch '{branch.branch_name}' at step {fork_at_step_order} "
            f"({len(steps)} steps, {condition.value})"
        )
        return branch

    @staticmethod
    def switch_branch(path: LearningPath, branch_id: str | None) -> None:
        """Point the active sequence at a branch, or back to the main sequence with None."""
        if branch_id is not None and path.branch(branch_id) is None:
            raise BranchNotFoundError(f"Branch not found: {branch_id}")
        path.active_branch_id = branch_id
        logger.debug(f"Path {path.id}: active branch is now {branch_id or 'main'}")
