"""
Fixtures for integration tests: a real store on in-memory SQLite, the
template generator and a static prerequisite catalog.
"""
import pytest

from learnpath.adaptive.learning_engine import LearningEngine
from learnpath.adaptive.prerequisite_resolver import StaticPrerequisiteCatalog
from learnpath.content.generator import TemplateContentGenerator
from learnpath.db.progression_store import ProgressionStore

CALCULUS_CATALOG = {
    "Calculus": ["Algebra"],
    "Algebra": ["Arithmetic"],
}


@pytest.fixture
def store(session_factory):
    return ProgressionStore(session_factory)


@pytest.fixture
def engine(store, settings):
    return LearningEngine(
        store=store,
        generator=TemplateContentGenerator(),
        catalog=StaticPrerequisiteCatalog(CALCULUS_CATALOG),
        settings=settings,
    )
