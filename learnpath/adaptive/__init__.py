"""
Adaptive Learning Paths.

Components:
- PathBuilder: Turns generated lesson text into steps and checkpoints
- PrerequisiteResolver: Orders prerequisite topics (acyclic, deterministic)
- PathSequencer: Sequential and checkpoint gating of step completion
- CheckpointEvaluator: Scores checkpoint submissions
- BranchManager: Forks and switches alternate tracks
- AdaptationEngine: Re-shapes the uncompleted tail from performance

The orchestration layer lives in learnpath.adaptive.learning_engine.
"""
from learnpath.adaptive.models import (
    AdaptationAction,
    Attempt,
    Branch,
    BranchCondition,
    Checkpoint,
    DifficultyFlag,
    Importance,
    LearningPath,
    Level,
    Option,
    PathSequence,
    PerformanceSignal,
    Prerequisite,
    Question,
    QuestionKind,
    Resource,
    ResourceType,
    Step,
    StepKind,
)
from learnpath.adaptive.errors import (
    BranchNotFoundError,
    CheckpointNotFoundError,
    ConflictError,
    CyclicPrerequisiteError,
    DuplicatePathError,
    GenerationError,
    GenerationTimeoutError,
    InvalidAnswerError,
    InvalidBranchError,
    InvalidForkPointError,
    LearningPathError,
    PathNotFoundError,
    StaleStateError,
    StepAlreadyCompletedError,
    StepLockedError,
    StepNotFoundError,
)
from learnpath.adaptive.path_builder import PathBuilder
from learnpath.adaptive.prerequisite_resolver import PrerequisiteResolver
from learnpath.adaptive.path_sequencer import PathSequencer
from learnpath.adaptive.checkpoint_evaluator import CheckpointEvaluator
from learnpath.adaptive.branch_manager import BranchManager
from learnpath.adaptive.adaptation_engine import AdaptationEngine, AdaptationPolicy

__all__ = [
    # Component classes
    "AdaptationEngine",
    "AdaptationPolicy",
    "BranchManager",
    "CheckpointEvaluator",
    "PathBuilder",
    "PathSequencer",
    "PrerequisiteResolver",
    # Data models
    "AdaptationAction",
    "Attempt",
    "Branch",
    "BranchCondition",
    "Checkpoint",
    "DifficultyFlag",
    "Importance",
    "LearningPath",
    "Level",
    "Option",
    "PathSequence",
    "PerformanceSignal",
    "Prerequisite",
    "Question",
    "QuestionKind",
    "Resource",
    "ResourceType",
    "Step",
    "StepKind",
    # Errors
    "BranchNotFoundError",
    "CheckpointNotFoundError",
    "ConflictError",
    "CyclicPrerequisiteError",
    "DuplicatePathError",
    "GenerationError",
    "GenerationTimeoutError",
    "InvalidAnswerError",
    "InvalidBranchError",
    "InvalidForkPointError",
    "LearningPathError",
    "PathNotFoundError",
    "StaleStateError",
    "StepAlreadyCompletedError",
    "StepLockedError",
    "StepNotFoundError",
]
