"""
Adaptation Engine.

Re-shapes the uncompleted tail of the active sequence from learner
performance. One invocation applies at most one policy branch (a "notch"):

- remediate: insert review steps (one per weak area) before the next
  incomplete step and ease the passing scores of the checkpoints that follow
- branch: fork an activated remedial track when scores collapse (opt-in)
- accelerate: drop the next pending review step and harden the next
  unattempted checkpoint

Work is split in three phases so that content generation never happens inside
a store update: ``plan`` (pure decision), ``prepare`` (generator calls) and
``apply`` (in-place mutation, run inside the store's mutator).
"""
from __future__ import annotations

from dataclasses import dataclass, field
from statistics import mean
from typing import TYPE_CHECKING, Any, Callable

from loguru import logger

from learnpath.adaptive.branch_manager import BranchManager
from learnpath.adaptive.errors import GenerationError
from learnpath.adaptive.models import (
    AdaptationAction,
    BranchCondition,
    Checkpoint,
    DifficultyFlag,
    LearningPath,
    Level,
    PathSequence,
    PerformanceSignal,
    Question,
    Step,
    StepKind,
    new_id,
)
from learnpath.adaptive.path_builder import BuiltSequence, PathBuilder

if TYPE_CHECKING:
    from config import Settings
    from learnpath.content.generator import GeneratedContent

REMEDIAL_BRANCH_NAME = "remedial-track"

GenerateFn = Callable[[str, Level], "GeneratedContent"]


@dataclass
class AdaptationPolicy:
    """Thresholds driving the adaptation decision."""

    remediation_below: float = 60.0
    acceleration_above: float = 90.0
    min_checkpoints: int = 2
    trailing_window: int = 3
    passing_score_step: float = 10.0
    passing_score_floor: float = 50.0
    branch_below: float | None = None
    slow_step_seconds: float = 1800.0

    @classmethod
    def from_settings(cls, settings: Settings) -> AdaptationPolicy:
        config = settings.get_adaptation_config()
        return cls(
            remediation_below=config["remediation_below"],
            acceleration_above=config["acceleration_above"],
            min_checkpoints=config["min_checkpoints"],
            trailing_window=config["trailing_window"],
            passing_score_step=config["passing_score"]["step"],
            passing_score_floor=config["passing_score"]["floor"],
            branch_below=config["branch_below"],
            slow_step_seconds=config["slow_step_seconds"],
        )


@dataclass
class AdaptationPlan:
    """Decision taken over a snapshot; safe to apply to the same version."""

    action: AdaptationAction
    reason: str
    average: float | None = None
    topic: str = ""
    level: Level | None = None
    insert_step: bool = False
    remove_step_id: str | None = None
    harden_checkpoint_id: str | None = None
    fork_at_step_order: int | None = None
    areas: list[str] = field(default_factory=list)

    @property
    def is_noop(self) -> bool:
        return self.action == AdaptationAction.NONE


@dataclass
class PreparedContent:
    """Generated material an adaptation needs, fetched before the store update."""

    remediation_bodies: list[str] = field(default_factory=list)
    questions: list[Question] = field(default_factory=list)
    branch: BuiltSequence | None = None


@dataclass
class AdaptationResult:
    action: AdaptationAction
    reason: str
    details: dict[str, Any] = field(default_factory=dict)


class AdaptationEngine:
    """Decide on and apply one adaptation notch."""

    def __init__(
        self,
        policy: AdaptationPolicy | None = None,
        builder: PathBuilder | None = None,
        branches: BranchManager | None = None,
    ):
        self.policy = policy or AdaptationPolicy()
        self.builder = builder or PathBuilder()
        self.branches = branches or BranchManager()

    # =========================================================================
    # Plan
    # =========================================================================

    @staticmethod
    def derive_scores(sequence: PathSequence) -> list[float]:
        """Latest attempt score of each attempted checkpoint, in sequence order."""
        ordered = sorted(sequence.checkpoints, key=lambda c: c.after_step_order)
        return [c.latest_score for c in ordered if c.latest_score is not None]

    @staticmethod
    def derive_areas(sequence: PathSequence) -> list[str]:
        """Weak areas of the most recently attempted checkpoint, if it failed."""
        attempted = [c for c in sequence.checkpoints if c.attempts]
        if not attempted:
            return []
        latest = max(attempted, key=lambda c: c.attempts[-1].taken_at)
        return latest.weak_areas

    def plan(self, path: LearningPath, signal: PerformanceSignal) -> AdaptationPlan:
        """Pick the policy branch for ``signal`` without touching ``path``."""
        if not path.is_adaptive:
            return AdaptationPlan(AdaptationAction.NONE, "path is not adaptive")

        sequence = path.active_sequence
        next_step = sequence.next_incomplete()
        if next_step is None:
            return AdaptationPlan(AdaptationAction.NONE, "no incomplete steps left")

        scores = (
            signal.checkpoint_scores
            if signal.checkpoint_scores is not None
            else self.derive_scores(sequence)
        )
        window = scores[-self.policy.trailing_window :] if scores else []
        average = round(mean(window), 2) if window else None
        if signal.areas is not None:
            areas = list(dict.fromkeys(a.strip() for a in signal.areas if a and a.strip()))
        else:
            areas = self.derive_areas(sequence)

        if signal.difficulty_flag == DifficultyFlag.TOO_HIGH:
            return self._plan_remediation(
                path, sequence, next_step, "learner flagged difficulty too high", average, areas
            )
        if signal.difficulty_flag == DifficultyFlag.TOO_LOW:
            return self._plan_acceleration(path, sequence, "learner flagged difficulty too low", average)

        if average is not None:
            if (
                self.policy.branch_below is not None
                and average < self.policy.branch_below
                and sequence.branch is None
                and sequence.highest_completed_order >= 0
                and not any(b.branch_name == REMEDIAL_BRANCH_NAME for b in path.branches)
            ):
                return AdaptationPlan(
                    AdaptationAction.BRANCH,
                    f"trailing average {average:g} below {self.policy.branch_below:g}",
                    average=average,
                    topic=next_step.topic or path.topic,
                    level=path.level.simpler(),
                    fork_at_step_order=sequence.highest_completed_order,
                )
            if average < self.policy.remediation_below:
                return self._plan_remediation(
                    path,
                    sequence,
                    next_step,
                    f"trailing average {average:g} below {self.policy.remediation_below:g}",
                    average,
                    areas,
                )
            if len(scores) >= self.policy.min_checkpoints and average > self.policy.acceleration_above:
                return self._plan_acceleration(
                    path,
                    sequence,
                    f"trailing average {average:g} above {self.policy.acceleration_above:g}",
                    average,
                )
            return AdaptationPlan(AdaptationAction.NONE, f"trailing average {average:g} within range", average)

        if signal.time_on_step_seconds:
            mean_time = mean(signal.time_on_step_seconds.values())
            if mean_time > self.policy.slow_step_seconds:
                return self._plan_remediation(
                    path,
                    sequence,
                    next_step,
                    f"mean time on step {mean_time:g}s above {self.policy.slow_step_seconds:g}s",
                    None,
                    areas,
                )

        return AdaptationPlan(AdaptationAction.NONE, "no performance signal")

    def _lowerable(self, sequence: PathSequence, from_order: int) -> list[Checkpoint]:
        return [
            c
            for c in sequence.checkpoints
            if not c.is_passed
            and c.after_step_order >= from_order
            and c.passing_score > self.policy.passing_score_floor
        ]

    def _plan_remediation(
        self,
        path: LearningPath,
        sequence: PathSequence,
        next_step: Step,
        reason: str,
        average: float | None,
        areas: list[str],
    ) -> AdaptationPlan:
        insert = not next_step.is_remediation
        if not insert and not self._lowerable(sequence, sequence.highest_completed_order):
            return AdaptationPlan(
                AdaptationAction.NONE,
                f"{reason}; remediation already pending and passing scores at floor",
                average,
            )
        return AdaptationPlan(
            AdaptationAction.REMEDIATE,
            reason,
            average=average,
            topic=next_step.topic or path.topic,
            level=path.level.simpler(),
            insert_step=insert,
            areas=areas if insert else [],
        )

    def _plan_acceleration(
        self,
        path: LearningPath,
        sequence: PathSequence,
        reason: str,
        average: float | None,
    ) -> AdaptationPlan:
        review = next((s for s in sequence.tail() if s.is_remediation), None)
        highest = sequence.highest_completed_order
        target = next(
            (
                c
                for c in sorted(sequence.checkpoints, key=lambda c: c.after_step_order)
                if c.after_step_order >= highest and not c.attempts
            ),
            None,
        )
        if target is not None and target.difficulty == Level.ADVANCED:
            target = None

        if review is None and target is None:
            return AdaptationPlan(AdaptationAction.NONE, f"{reason}; nothing left to accelerate", average)
        return AdaptationPlan(
            AdaptationAction.ACCELERATE,
            reason,
            average=average,
            topic=path.topic,
            level=target.difficulty.harder() if target else None,
            remove_step_id=review.id if review else None,
            harden_checkpoint_id=target.id if target else None,
        )

    # =========================================================================
    # Prepare
    # =========================================================================

    def prepare(self, plan: AdaptationPlan, generate: GenerateFn | None) -> PreparedContent:
        """
        Fetch generated content for a plan.

        Generator failures never abort an adaptation: remediation falls back to
        a templated review, and a harder question set is simply skipped.
        Remediation gets one body per weak area, or a single body for the
        plan topic when no areas are known.
        """
        prepared = PreparedContent()
        if plan.action == AdaptationAction.REMEDIATE and plan.insert_step:
            targets = [f"{plan.topic}: {area}" for area in plan.areas] or [plan.topic]
            for target in targets:
                content = self._try_generate(generate, target, plan.level)
                if content is not None and content.body.strip():
                    prepared.remediation_bodies.append(content.body)
                else:
                    prepared.remediation_bodies.append(self._template_review(target, plan.level))

        elif plan.action == AdaptationAction.BRANCH:
            content = self._try_generate(generate, plan.topic, plan.level)
            if content is None:
                body = self._template_review(plan.topic, plan.level)
                prepared.branch = BuiltSequence(
                    title=f"Review: {plan.topic}",
                    description=body,
                    steps=[Step(id=new_id(), label=f"Review: {plan.topic}", body=body, order=0, topic=plan.topic)],
                )
            else:
                prepared.branch = self.builder.build(plan.topic, plan.level, content)
            for step in prepared.branch.steps:
                step.kind = StepKind.REMEDIATION

        elif plan.action == AdaptationAction.ACCELERATE and plan.harden_checkpoint_id:
            content = self._try_generate(generate, plan.topic, plan.level)
            if content is not None:
                prepared.questions = content.all_questions()

        return prepared

    @staticmethod
    def _try_generate(generate: GenerateFn | None, topic: str, level: Level) -> GeneratedContent | None:
        if generate is None:
            return None
        try:
            return generate(topic, level)
        except GenerationError as e:
            logger.warning(f"Adaptation content for '{topic}' unavailable: {e.message}")
            return None

    @staticmethod
    def _template_review(topic: str, level: Level) -> str:
        return (
            f"Let's revisit {topic} at the {level.value} level before moving on. "
            f"Re-read the key ideas of {topic}, work through a simple example, "
            "and note anything that is still unclear."
        )

    # =========================================================================
    # Apply
    # =========================================================================

    def apply(self, path: LearningPath, plan: AdaptationPlan, prepared: PreparedContent) -> AdaptationResult:
        """Mutate ``path`` in place according to ``plan``."""
        if plan.action == AdaptationAction.REMEDIATE:
            details = self._remediate(path.active_sequence, plan, prepared)
        elif plan.action == AdaptationAction.BRANCH:
            details = self._branch(path, plan, prepared)
        elif plan.action == AdaptationAction.ACCELERATE:
            details = self._accelerate(path.active_sequence, plan, prepared)
        else:
            details = {}

        logger.info(f"Path {path.id}: adaptation {plan.action.value} ({plan.reason})")
        return AdaptationResult(action=plan.action, reason=plan.reason, details=details)

    def _remediate(self, sequence: PathSequence, plan: AdaptationPlan, prepared: PreparedContent) -> dict[str, Any]:
        highest = sequence.highest_completed_order
        details: dict[str, Any] = {}

        if plan.insert_step:
            next_step = sequence.next_incomplete()
            insert_at = next_step.order
            labels = [f"Review: {area}" for area in plan.areas] or [f"Review: {next_step.label}"]
            count = len(labels)
            for step in sequence.steps:
                if step.order >= insert_at:
                    step.order += count
            for checkpoint in sequence.checkpoints:
                if checkpoint.after_step_order > highest or (
                    checkpoint.after_step_order == highest and not checkpoint.is_passed
                ):
                    checkpoint.after_step_order += count

            inserted = []
            for offset, label in enumerate(labels):
                if offset < len(prepared.remediation_bodies):
                    body = prepared.remediation_bodies[offset]
                else:
                    target = f"{plan.topic}: {plan.areas[offset]}" if plan.areas else plan.topic
                    body = self._template_review(target, plan.level)
                review = Step(
                    id=new_id(),
                    label=label,
                    body=body,
                    order=insert_at + offset,
                    topic=next_step.topic,
                    prerequisite_topic_ids=set(next_step.prerequisite_topic_ids),
                    kind=StepKind.REMEDIATION,
                    estimated_minutes=next_step.estimated_minutes,
                )
                sequence.steps.append(review)
                inserted.append(review.id)
            sequence.renumber()
            details["inserted_step_ids"] = inserted

        lowered = {}
        for checkpoint in self._lowerable(sequence, highest):
            new_score = max(
                self.policy.passing_score_floor,
                checkpoint.passing_score - self.policy.passing_score_step,
            )
            lowered[checkpoint.id] = (checkpoint.passing_score, new_score)
            checkpoint.passing_score = new_score
        details["lowered_passing_scores"] = lowered
        return details

    def _branch(self, path: LearningPath, plan: AdaptationPlan, prepared: PreparedContent) -> dict[str, Any]:
        built = prepared.branch
        branch = self.branches.create_branch(
            path,
            fork_at_step_order=plan.fork_at_step_order,
            branch_name=REMEDIAL_BRANCH_NAME,
            initial_steps=built.steps,
            checkpoints=built.checkpoints,
            condition=BranchCondition.PERFORMANCE,
            description=f"Remedial track for {plan.topic} ({plan.reason})",
            activate=True,
        )
        return {"branch_id": branch.id}

    def _accelerate(self, sequence: PathSequence, plan: AdaptationPlan, prepared: PreparedContent) -> dict[str, Any]:
        details: dict[str, Any] = {}

        if plan.remove_step_id:
            removed = next((s for s in sequence.steps if s.id == plan.remove_step_id), None)
            if removed is not None:
                sequence.steps.remove(removed)
                for checkpoint in sequence.checkpoints:
                    if checkpoint.after_step_order >= removed.order:
                        checkpoint.after_step_order -= 1
                sequence.renumber()
                details["removed_step_id"] = removed.id

        if plan.harden_checkpoint_id:
            checkpoint = next((c for c in sequence.checkpoints if c.id == plan.harden_checkpoint_id), None)
            if checkpoint is not None:
                checkpoint.difficulty = plan.level
                if prepared.questions:
                    checkpoint.questions = list(prepared.questions)
                details["hardened_checkpoint_id"] = checkpoint.id
        return details
