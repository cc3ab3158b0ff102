"""
Learning Engine.

Public operations over learning paths. Wires the prerequisite resolver,
content generator, path builder, sequencer, checkpoint evaluator, branch
manager and adaptation engine to the progression store.

Every mutating operation takes the caller's ``expected_version`` and either
commits exactly one new version or raises without committing anything.
"""
from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from typing import Callable, Iterable, Mapping, TypeVar

from loguru import logger

from config import Settings, get_settings
from learnpath.adaptive.adaptation_engine import (
    AdaptationEngine,
    AdaptationPlan,
    AdaptationPolicy,
    AdaptationResult,
)
from learnpath.adaptive.branch_manager import BranchManager
from learnpath.adaptive.checkpoint_evaluator import AnswerValue, CheckpointEvaluator
from learnpath.adaptive.errors import (
    ConflictError,
    DuplicatePathError,
    GenerationTimeoutError,
    LearningPathError,
    StaleStateError,
)
from learnpath.adaptive.models import (
    AdaptationAction,
    Attempt,
    BranchCondition,
    Checkpoint,
    LearningPath,
    Level,
    PerformanceSignal,
    Prerequisite,
    Step,
    new_id,
    utcnow,
)
from learnpath.adaptive.path_builder import PathBuilder
from learnpath.adaptive.path_sequencer import PathSequencer
from learnpath.adaptive.prerequisite_resolver import (
    PrerequisiteCatalog,
    PrerequisiteResolver,
    build_catalog,
)
from learnpath.content.generator import ContentGenerator, GeneratedContent, build_generator
from learnpath.db.progression_store import ProgressionStore

T = TypeVar("T")


@dataclass
class CheckpointOutcome:
    path: LearningPath
    attempt: Attempt
    recommended_action: AdaptationAction


@dataclass
class AdaptationOutcome:
    path: LearningPath
    action: AdaptationAction
    reason: str
    applied: bool


class LearningEngine:
    """Orchestrates learning path operations."""

    def __init__(
        self,
        store: ProgressionStore,
        generator: ContentGenerator,
        catalog: PrerequisiteCatalog,
        settings: Settings | None = None,
    ):
        self.settings = settings or get_settings()
        self.store = store
        self.generator = generator
        self.resolver = PrerequisiteResolver(catalog)
        self.builder = PathBuilder(
            checkpoint_interval=self.settings.checkpoint_interval,
            passing_score=self.settings.default_passing_score,
        )
        self.sequencer = PathSequencer()
        self.evaluator = CheckpointEvaluator()
        self.branches = BranchManager()
        self.adaptation = AdaptationEngine(
            policy=AdaptationPolicy.from_settings(self.settings),
            builder=self.builder,
            branches=self.branches,
        )

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> LearningEngine:
        """Build an engine on the configured database, generator and catalog."""
        settings = settings or get_settings()
        return cls(
            store=ProgressionStore(),
            generator=build_generator(settings),
            catalog=build_catalog(settings.prerequisite_catalog),
            settings=settings,
        )

    # =========================================================================
    # Content generation
    # =========================================================================

    def _generate(self, topic: str, level: Level) -> GeneratedContent:
        """
        Call the generator with a hard upper bound on wall time.

        Raises:
            GenerationTimeoutError: no answer within generation_timeout_seconds
            GenerationError: generator failed without a fallback
        """
        timeout = self.settings.generation_timeout_seconds
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="learnpath-generate")
        future = executor.submit(self.generator.generate, topic, level)
        try:
            return future.result(timeout=timeout)
        except FutureTimeoutError as e:
            logger.warning(f"Content generation for '{topic}' exceeded {timeout:g}s")
            raise GenerationTimeoutError(topic, timeout) from e
        finally:
            executor.shutdown(wait=False)

    # =========================================================================
    # Paths
    # =========================================================================

    def create_path(self, owner_id: str, topic: str, level: Level) -> LearningPath:
        """
        Build and store a path, or return the existing one for (owner, topic, level).

        Nothing is stored when prerequisite resolution or generation fails.
        """
        topic = topic.strip()
        existing = self.store.find(owner_id, topic, level)
        if existing is not None:
            logger.debug(f"Path for {owner_id}: {topic} ({level.value}) already exists")
            return existing

        prerequisites = self.resolver.resolve(topic, level)
        prerequisite_content = [(p, self._generate(p.topic_id, level)) for p in prerequisites]
        content = self._generate(topic, level)
        built = self.builder.build(topic, level, content, prerequisite_content)

        now = utcnow()
        path = LearningPath(
            id=new_id(),
            owner_id=owner_id,
            topic=topic,
            level=level,
            steps=built.steps,
            checkpoints=built.checkpoints,
            prerequisites=prerequisites,
            description=built.description,
            tags=built.tags,
            created_at=now,
            updated_at=now,
        )
        try:
            return self.store.insert(path)
        except DuplicatePathError:
            # Lost a creation race; the winner's path is the path
            existing = self.store.find(owner_id, topic, level)
            if existing is None:
                raise
            return existing

    def get_path(self, path_id: str) -> LearningPath:
        return self.store.get(path_id)

    def list_paths(self, owner_id: str, limit: int = 20, offset: int = 0) -> list[LearningPath]:
        return self.store.list_for_owner(owner_id, limit=limit, offset=offset)

    def delete_path(self, path_id: str) -> None:
        self.store.delete(path_id)

    # =========================================================================
    # Progression
    # =========================================================================

    def complete_step(self, path_id: str, step_id: str, expected_version: int) -> LearningPath:
        return self.store.update(
            path_id,
            expected_version,
            lambda path: self.sequencer.complete_step(path, step_id),
        )

    def take_checkpoint(
        self,
        path_id: str,
        checkpoint_id: str,
        answers: Mapping[str, AnswerValue],
        expected_version: int,
    ) -> CheckpointOutcome:
        """
        Score a checkpoint submission and append the attempt.

        The recommended action is what ``adapt_path`` would do next with the
        recorded scores; nothing is adapted here.
        """
        recorded: list[Attempt] = []

        def mutate(path: LearningPath) -> None:
            recorded.append(self.evaluator.record(path, checkpoint_id, answers))
            self.sequencer.refresh_completion(path)

        path = self.store.update(path_id, expected_version, mutate)
        plan = self.adaptation.plan(path, PerformanceSignal())
        return CheckpointOutcome(path=path, attempt=recorded[0], recommended_action=plan.action)

    def next_checkpoint(self, path: LearningPath) -> Checkpoint | None:
        return self.sequencer.next_checkpoint(path)

    # =========================================================================
    # Branches
    # =========================================================================

    def create_branch(
        self,
        path_id: str,
        fork_at_step_order: int,
        branch_name: str,
        expected_version: int,
        initial_steps: Iterable[Step] | None = None,
        condition: BranchCondition = BranchCondition.MANUAL,
        description: str = "",
        activate: bool = False,
    ) -> LearningPath:
        """
        Fork a branch at a completed main-sequence step.

        Without ``initial_steps`` the branch content is generated for
        "<path topic>: <branch name>" and built like a path of its own.
        """
        current = self._expect(path_id, expected_version)

        checkpoints: list[Checkpoint] = []
        try:
            self.branches.validate_fork(current, fork_at_step_order, branch_name)
            if initial_steps is None:
                branch_topic = f"{current.topic}: {branch_name.strip()}"
                built = self.builder.build(branch_topic, current.level, self._generate(branch_topic, current.level))
                steps = built.steps
                checkpoints = built.checkpoints
                description = description or built.description
            else:
                steps = list(initial_steps)
        except LearningPathError as e:
            if e.path is None:
                e.path = current
            raise

        return self.store.update(
            path_id,
            expected_version,
            lambda path: self.branches.create_branch(
                path,
                fork_at_step_order,
                branch_name,
                steps,
                checkpoints=checkpoints,
                condition=condition,
                description=description,
                activate=activate,
            ),
        )

    def switch_branch(self, path_id: str, branch_id: str | None, expected_version: int) -> LearningPath:
        return self.store.update(
            path_id,
            expected_version,
            lambda path: self.branches.switch_branch(path, branch_id),
        )

    # =========================================================================
    # Adaptation
    # =========================================================================

    def adapt_path(self, path_id: str, signal: PerformanceSignal, expected_version: int) -> AdaptationOutcome:
        """
        Apply at most one adaptation notch to the active sequence's tail.

        A no-op decision returns the current path without writing a version.
        """
        current = self._expect(path_id, expected_version)
        plan: AdaptationPlan = self.adaptation.plan(current, signal)
        if plan.is_noop:
            logger.info(f"Path {path_id}: no adaptation ({plan.reason})")
            return AdaptationOutcome(path=current, action=plan.action, reason=plan.reason, applied=False)

        prepared = self.adaptation.prepare(plan, self._generate)
        results: list[AdaptationResult] = []
        path = self.store.update(
            path_id,
            expected_version,
            lambda p: results.append(self.adaptation.apply(p, plan, prepared)),
        )
        return AdaptationOutcome(path=path, action=results[0].action, reason=results[0].reason, applied=True)

    # =========================================================================
    # Prerequisites
    # =========================================================================

    def resolve_prerequisites(
        self, topic: str, level: Level, include_optional: bool = True
    ) -> list[Prerequisite]:
        return self.resolver.resolve(topic, level, include_optional=include_optional)

    def check_prerequisite_edge(self, topic: str, depends_on: str, level: Level) -> list[str] | None:
        """Return the cycle that ``topic -> depends_on`` would close, or None."""
        return self.resolver.find_cycle_if_added(topic, depends_on, level)

    # =========================================================================
    # Concurrency helpers
    # =========================================================================

    def _expect(self, path_id: str, expected_version: int) -> LearningPath:
        current = self.store.get(path_id)
        if current.version != expected_version:
            logger.info(
                f"Version conflict on path {path_id}: expected {expected_version}, "
                f"stored {current.version}"
            )
            raise ConflictError(path_id, expected_version, current)
        return current

    def run_with_retry(self, path_id: str, operation: Callable[[int], T]) -> T:
        """
        Run a version-taking operation, re-fetching on conflict.

        ``operation`` receives the current version. After
        ``max_conflict_retries`` conflicts a StaleStateError carrying the
        latest stored state is raised.
        """
        attempts = self.settings.max_conflict_retries
        latest: LearningPath | None = None
        for attempt in range(1, attempts + 1):
            version = self.store.get(path_id).version
            try:
                return operation(version)
            except ConflictError as e:
                logger.info(f"Retrying path {path_id} after conflict ({attempt}/{attempts})")
                latest = e.path
        raise StaleStateError(path_id, attempts, latest or self.store.get(path_id))
