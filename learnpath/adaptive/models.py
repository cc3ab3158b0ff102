"""
Domain models for adaptive learning paths.

A LearningPath owns a main sequence (steps + checkpoints) and any number of
branches, each of which carries its own sequence. Everything here is plain
dataclasses so that the progression store can snapshot, deep-copy and serialize
paths as a single JSON document.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterator, Mapping
from uuid import uuid4


def utcnow() -> datetime:
    """Timezone-aware current time."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    """Opaque identifier for paths, steps, checkpoints and branches."""
    return uuid4().hex


def _dt(value: str | datetime | None) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


# =============================================================================
# Enums
# =============================================================================


class Level(str, Enum):
    """Learner knowledge level a path is generated for."""

    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"

    def simpler(self) -> Level:
        members = list(Level)
        return members[max(0, members.index(self) - 1)]

    def harder(self) -> Level:
        members = list(Level)
        return members[min(len(members) - 1, members.index(self) + 1)]


class StepKind(str, Enum):
    LESSON = "lesson"
    REMEDIATION = "remediation"


class QuestionKind(str, Enum):
    SINGLE_CHOICE = "single_choice"
    MULTI_SELECT = "multi_select"


class ResourceType(str, Enum):
    ARTICLE = "article"
    VIDEO = "video"
    BOOK = "book"
    TOOL = "tool"


class BranchCondition(str, Enum):
    """Why a branch was forked."""

    MANUAL = "manual"
    PERFORMANCE = "performance"
    INTEREST = "interest"
    TIME = "time"


class Importance(str, Enum):
    REQUIRED = "required"
    RECOMMENDED = "recommended"
    OPTIONAL = "optional"


class DifficultyFlag(str, Enum):
    """Explicit learner feedback on pacing."""

    TOO_HIGH = "too_high"
    TOO_LOW = "too_low"


class AdaptationAction(str, Enum):
    NONE = "none"
    REMEDIATE = "remediate"
    ACCELERATE = "accelerate"
    BRANCH = "branch"


# =============================================================================
# Questions & Attempts
# =============================================================================


@dataclass
class Option:
    id: str
    text: str

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "text": self.text}


@dataclass
class Question:
    """
    Checkpoint question.

    Single-choice and multi-select questions share one scoring rule: the
    selected option ids must equal the correct option ids as a set.
    """

    id: str
    prompt: str
    options: list[Option]
    correct_answers: frozenset[str]
    kind: QuestionKind = QuestionKind.SINGLE_CHOICE
    explanation: str = ""
    area: str = ""

    @property
    def option_ids(self) -> set[str]:
        return {option.id for option in self.options}

    def is_correct(self, selected: set[str] | frozenset[str]) -> bool:
        return frozenset(selected) == self.correct_answers

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "prompt": self.prompt,
            "kind": self.kind.value,
            "options": [o.to_dict() for o in self.options],
            "correct_answers": sorted(self.correct_answers),
            "explanation": self.explanation,
            "area": self.area,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Question:
        """
        Parse a question from stored or generator-supplied data.

        Options may be given as ``{"id", "text"}`` objects or plain strings, in
        which case positional ids ("0", "1", ...) are assigned. Correct answers
        may be ids or positional indices.
        """
        options: list[Option] = []
        for index, raw in enumerate(data.get("options", [])):
            if isinstance(raw, Mapping):
                options.append(Option(id=str(raw.get("id", index)), text=str(raw.get("text", ""))))
            else:
                options.append(Option(id=str(index), text=str(raw)))

        correct = data.get("correct_answers", data.get("correct_answer", []))
        if not isinstance(correct, (list, tuple, set, frozenset)):
            correct = [correct]
        correct_ids = frozenset(str(c) for c in correct)

        kind = data.get("kind")
        if kind is None:
            kind = QuestionKind.MULTI_SELECT if len(correct_ids) > 1 else QuestionKind.SINGLE_CHOICE

        return cls(
            id=str(data.get("id") or new_id()),
            prompt=str(data.get("prompt") or data.get("question") or ""),
            options=options,
            correct_answers=correct_ids,
            kind=QuestionKind(kind),
            explanation=str(data.get("explanation") or ""),
            area=str(data.get("area") or data.get("topic") or ""),
        )


@dataclass(frozen=True)
class Attempt:
    """One scored checkpoint submission. Never modified after creation."""

    checkpoint_id: str
    answers: Mapping[str, tuple[str, ...]]
    score: float
    passed: bool
    taken_at: datetime
    incorrect_question_ids: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "checkpoint_id": self.checkpoint_id,
            "answers": {qid: list(sel) for qid, sel in self.answers.items()},
            "score": self.score,
            "passed": self.passed,
            "taken_at": _iso(self.taken_at),
            "incorrect_question_ids": list(self.incorrect_question_ids),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Attempt:
        return cls(
            checkpoint_id=data["checkpoint_id"],
            answers={qid: tuple(sel) for qid, sel in data.get("answers", {}).items()},
            score=float(data["score"]),
            passed=bool(data["passed"]),
            taken_at=_dt(data["taken_at"]),
            incorrect_question_ids=tuple(data.get("incorrect_question_ids", ())),
        )


# =============================================================================
# Steps & Checkpoints
# =============================================================================


@dataclass
class Resource:
    title: str
    url: str = ""
    type: ResourceType = ResourceType.ARTICLE

    def to_dict(self) -> dict[str, Any]:
        return {"title": self.title, "url": self.url, "type": self.type.value}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Resource:
        return cls(
            title=data["title"],
            url=data.get("url", ""),
            type=ResourceType(data.get("type", ResourceType.ARTICLE.value)),
        )


@dataclass
class Step:
    """One unit of lesson content within a sequence."""

    id: str
    label: str
    body: str
    order: int
    topic: str = ""
    prerequisite_topic_ids: set[str] = field(default_factory=set)
    completed: bool = False
    completed_at: datetime | None = None
    kind: StepKind = StepKind.LESSON
    estimated_minutes: int = 30
    resources: list[Resource] = field(default_factory=list)

    @property
    def is_remediation(self) -> bool:
        return self.kind == StepKind.REMEDIATION

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "label": self.label,
            "body": self.body,
            "order": self.order,
            "topic": self.topic,
            "prerequisite_topic_ids": sorted(self.prerequisite_topic_ids),
            "completed": self.completed,
            "completed_at": _iso(self.completed_at),
            "kind": self.kind.value,
            "estimated_minutes": self.estimated_minutes,
            "resources": [r.to_dict() for r in self.resources],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Step:
        return cls(
            id=data["id"],
            label=data["label"],
            body=data.get("body", ""),
            order=int(data["order"]),
            topic=data.get("topic", ""),
            prerequisite_topic_ids=set(data.get("prerequisite_topic_ids", [])),
            completed=bool(data.get("completed", False)),
            completed_at=_dt(data.get("completed_at")),
            kind=StepKind(data.get("kind", StepKind.LESSON.value)),
            estimated_minutes=int(data.get("estimated_minutes", 30)),
            resources=[Resource.from_dict(r) for r in data.get("resources", [])],
        )


@dataclass
class Checkpoint:
    """Quiz gate: steps after ``after_step_order`` stay locked until passed."""

    id: str
    after_step_order: int
    questions: list[Question]
    passing_score: float = 70.0
    attempts: list[Attempt] = field(default_factory=list)
    difficulty: Level = Level.INTERMEDIATE

    @property
    def is_passed(self) -> bool:
        return any(a.score >= self.passing_score for a in self.attempts)

    @property
    def latest_score(self) -> float | None:
        return self.attempts[-1].score if self.attempts else None

    @property
    def best_score(self) -> float | None:
        return max((a.score for a in self.attempts), default=None)

    @property
    def weak_areas(self) -> list[str]:
        """Areas of the questions missed in the latest attempt, when it failed."""
        if not self.attempts or self.attempts[-1].passed:
            return []
        missed = set(self.attempts[-1].incorrect_question_ids)
        areas: list[str] = []
        for q in self.questions:
            if q.id in missed and q.area and q.area not in areas:
                areas.append(q.area)
        return areas

    def question(self, question_id: str) -> Question | None:
        return next((q for q in self.questions if q.id == question_id), None)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "after_step_order": self.after_step_order,
            "questions": [q.to_dict() for q in self.questions],
            "passing_score": self.passing_score,
            "attempts": [a.to_dict() for a in self.attempts],
            "difficulty": self.difficulty.value,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Checkpoint:
        return cls(
            id=data["id"],
            after_step_order=int(data["after_step_order"]),
            questions=[Question.from_dict(q) for q in data.get("questions", [])],
            passing_score=float(data.get("passing_score", 70.0)),
            attempts=[Attempt.from_dict(a) for a in data.get("attempts", [])],
            difficulty=Level(data.get("difficulty", Level.INTERMEDIATE.value)),
        )


# =============================================================================
# Sequences, Branches & Paths
# =============================================================================


@dataclass
class PathSequence:
    """
    View over one ordered sequence of a path.

    Holds references to the owning lists, so mutating ``steps`` or
    ``checkpoints`` through the view mutates the path itself.
    """

    steps: list[Step]
    checkpoints: list[Checkpoint]
    branch: Branch | None = None

    @property
    def highest_completed_order(self) -> int:
        """Order of the last completed step, or -1 when nothing is completed."""
        return max((s.order for s in self.steps if s.completed), default=-1)

    def ordered_steps(self) -> list[Step]:
        return sorted(self.steps, key=lambda s: s.order)

    def step_at(self, order: int) -> Step | None:
        return next((s for s in self.steps if s.order == order), None)

    def next_incomplete(self) -> Step | None:
        return next((s for s in self.ordered_steps() if not s.completed), None)

    def tail(self) -> list[Step]:
        """Steps after the highest completed order; the only ones adaptation may touch."""
        highest = self.highest_completed_order
        return [s for s in self.ordered_steps() if s.order > highest]

    def renumber(self) -> None:
        """Restore contiguous orders from 0, keeping the current relative order."""
        for index, step in enumerate(self.ordered_steps()):
            step.order = index
        self.steps.sort(key=lambda s: s.order)
        self.checkpoints.sort(key=lambda c: c.after_step_order)


@dataclass
class Branch:
    """Alternate continuation forked from a completed step of the main sequence."""

    id: str
    parent_path_id: str
    fork_at_step_order: int
    branch_name: str
    steps: list[Step] = field(default_factory=list)
    checkpoints: list[Checkpoint] = field(default_factory=list)
    condition: BranchCondition = BranchCondition.MANUAL
    description: str = ""
    created_at: datetime = field(default_factory=utcnow)

    @property
    def sequence(self) -> PathSequence:
        return PathSequence(self.steps, self.checkpoints, branch=self)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "parent_path_id": self.parent_path_id,
            "fork_at_step_order": self.fork_at_step_order,
            "branch_name": self.branch_name,
            "steps": [s.to_dict() for s in self.steps],
            "checkpoints": [c.to_dict() for c in self.checkpoints],
            "condition": self.condition.value,
            "description": self.description,
            "created_at": _iso(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Branch:
        return cls(
            id=data["id"],
            parent_path_id=data["parent_path_id"],
            fork_at_step_order=int(data["fork_at_step_order"]),
            branch_name=data["branch_name"],
            steps=[Step.from_dict(s) for s in data.get("steps", [])],
            checkpoints=[Checkpoint.from_dict(c) for c in data.get("checkpoints", [])],
            condition=BranchCondition(data.get("condition", BranchCondition.MANUAL.value)),
            description=data.get("description", ""),
            created_at=_dt(data.get("created_at")) or utcnow(),
        )


@dataclass(frozen=True)
class Prerequisite:
    """A prerequisite topic and the topics it depends on."""

    topic_id: str
    depends_on: frozenset[str] = frozenset()
    importance: Importance = Importance.RECOMMENDED

    def to_dict(self) -> dict[str, Any]:
        return {
            "topic_id": self.topic_id,
            "depends_on": sorted(self.depends_on),
            "importance": self.importance.value,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Prerequisite:
        return cls(
            topic_id=data["topic_id"],
            depends_on=frozenset(data.get("depends_on", [])),
            importance=Importance(data.get("importance", Importance.RECOMMENDED.value)),
        )


@dataclass
class LearningPath:
    """Per-learner curriculum for one (owner, topic, level)."""

    id: str
    owner_id: str
    topic: str
    level: Level
    steps: list[Step] = field(default_factory=list)
    checkpoints: list[Checkpoint] = field(default_factory=list)
    branches: list[Branch] = field(default_factory=list)
    active_branch_id: str | None = None
    prerequisites: list[Prerequisite] = field(default_factory=list)
    description: str = ""
    tags: list[str] = field(default_factory=list)
    is_adaptive: bool = True
    version: int = 0
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    completed_at: datetime | None = None

    @property
    def main_sequence(self) -> PathSequence:
        return PathSequence(self.steps, self.checkpoints)

    @property
    def active_branch(self) -> Branch | None:
        if self.active_branch_id is None:
            return None
        return self.branch(self.active_branch_id)

    @property
    def active_sequence(self) -> PathSequence:
        branch = self.active_branch
        return branch.sequence if branch else self.main_sequence

    @property
    def progress(self) -> int:
        """Percentage of completed steps in the active sequence."""
        steps = self.active_sequence.steps
        if not steps:
            return 0
        return round(100 * sum(1 for s in steps if s.completed) / len(steps))

    def branch(self, branch_id: str) -> Branch | None:
        return next((b for b in self.branches if b.id == branch_id), None)

    def sequences(self) -> Iterator[PathSequence]:
        yield self.main_sequence
        for branch in self.branches:
            yield branch.sequence

    def find_step(self, step_id: str) -> tuple[Step, PathSequence] | None:
        for sequence in self.sequences():
            for step in sequence.steps:
                if step.id == step_id:
                    return step, sequence
        return None

    def find_checkpoint(self, checkpoint_id: str) -> tuple[Checkpoint, PathSequence] | None:
        for sequence in self.sequences():
            for checkpoint in sequence.checkpoints:
                if checkpoint.id == checkpoint_id:
                    return checkpoint, sequence
        return None

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def document(self) -> dict[str, Any]:
        """Embedded sub-structures persisted as one JSON document."""
        return {
            "steps": [s.to_dict() for s in self.steps],
            "checkpoints": [c.to_dict() for c in self.checkpoints],
            "branches": [b.to_dict() for b in self.branches],
            "prerequisites": [p.to_dict() for p in self.prerequisites],
            "description": self.description,
            "tags": list(self.tags),
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "topic": self.topic,
            "level": self.level.value,
            "version": self.version,
            "active_branch_id": self.active_branch_id,
            "is_adaptive": self.is_adaptive,
            "progress": self.progress,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "completed_at": _iso(self.completed_at),
            **self.document(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> LearningPath:
        return cls(
            id=data["id"],
            owner_id=data["owner_id"],
            topic=data["topic"],
            level=Level(data["level"]),
            steps=[Step.from_dict(s) for s in data.get("steps", [])],
            checkpoints=[Checkpoint.from_dict(c) for c in data.get("checkpoints", [])],
            branches=[Branch.from_dict(b) for b in data.get("branches", [])],
            active_branch_id=data.get("active_branch_id"),
            prerequisites=[Prerequisite.from_dict(p) for p in data.get("prerequisites", [])],
            description=data.get("description", ""),
            tags=list(data.get("tags", [])),
            is_adaptive=bool(data.get("is_adaptive", True)),
            version=int(data.get("version", 0)),
            created_at=_dt(data.get("created_at")) or utcnow(),
            updated_at=_dt(data.get("updated_at")) or utcnow(),
            completed_at=_dt(data.get("completed_at")),
        )


# =============================================================================
# Adaptation inputs/outputs
# =============================================================================


@dataclass
class PerformanceSignal:
    """
    Aggregated learner performance fed to the adaptation engine.

    When ``checkpoint_scores`` is None the engine derives scores from the
    attempts recorded on the active sequence. Likewise ``areas`` (topics that
    need review) default to the weak areas of the latest failed checkpoint.
    """

    checkpoint_scores: list[float] | None = None
    time_on_step_seconds: dict[str, float] = field(default_factory=dict)
    difficulty_flag: DifficultyFlag | None = None
    areas: list[str] | None = None
