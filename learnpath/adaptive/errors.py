"""
Learning path error taxonomy.

Every error raised by a path operation carries ``path``: the state before the
failed operation (or the current stored state for conflicts), so callers can
decide to retry without re-fetching.
"""
from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from learnpath.adaptive.models import LearningPath


class LearningPathError(Exception):
    """Base class for all engine errors."""

    def __init__(self, message: str, path: LearningPath | None = None):
        super().__init__(message)
        self.message = message
        self.path = path


# ========================================
# Lookups (404-class)
# ========================================


class PathNotFoundError(LearningPathError):
    def __init__(self, path_id: str):
        super().__init__(f"Learning path not found: {path_id}")
        self.path_id = path_id


class StepNotFoundError(LearningPathError):
    pass


class CheckpointNotFoundError(LearningPathError):
    pass


class BranchNotFoundError(LearningPathError):
    pass


# ========================================
# Concurrency
# ========================================


class ConflictError(LearningPathError):
    """Stored version no longer matches the caller's expected version."""

    def __init__(self, path_id: str, expected_version: int, path: LearningPath | None = None):
        actual = path.version if path is not None else None
        super().__init__(
            f"Version conflict on path {path_id}: expected {expected_version}, found {actual}",
            path,
        )
        self.path_id = path_id
        self.expected_version = expected_version
        self.actual_version = actual


class StaleStateError(LearningPathError):
    """Conflicts persisted past the bounded retry count; the client must refresh."""

    def __init__(self, path_id: str, attempts: int, path: LearningPath | None = None):
        super().__init__(f"Path {path_id} kept changing after {attempts} attempts", path)
        self.path_id = path_id
        self.attempts = attempts


class DuplicatePathError(LearningPathError):
    """A path already exists for this (owner, topic, level)."""


# ========================================
# Caller misuse (4xx-class)
# ========================================


class InvalidAnswerError(LearningPathError):
    pass


class InvalidForkPointError(LearningPathError):
    pass


class InvalidBranchError(LearningPathError):
    pass


class StepLockedError(LearningPathError):
    """Step cannot be completed yet: an earlier step or a checkpoint blocks it."""


class StepAlreadyCompletedError(LearningPathError):
    pass


# ========================================
# Data integrity & upstream collaborators
# ========================================


class CyclicPrerequisiteError(LearningPathError):
    """The prerequisite catalog contains a dependency cycle."""

    def __init__(self, cycle: list[str]):
        super().__init__(f"Cyclic prerequisites: {' -> '.join(cycle)}")
        self.cycle = cycle


class GenerationError(LearningPathError):
    """Content generator failed."""


class GenerationTimeoutError(GenerationError):
    """Content generator did not answer within the configured timeout."""

    def __init__(self, topic: str, timeout_seconds: float):
        super().__init__(f"Content generation for '{topic}' timed out after {timeout_seconds:g}s")
        self.topic = topic
        self.timeout_seconds = timeout_seconds
