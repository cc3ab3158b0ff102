"""FastAPI dependencies."""

from __future__ import annotations

from functools import lru_cache

from learnpath.adaptive.learning_engine import LearningEngine


@lru_cache(maxsize=1)
def get_learning_engine() -> LearningEngine:
    """Shared engine built from settings; override in tests."""
    return LearningEngine.from_settings()
