"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import pytest
import sys
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from config import Settings  # noqa: E402
from learnpath.adaptive.models import (  # noqa: E402
    Checkpoint,
    LearningPath,
    Level,
    Question,
    Step,
)
from learnpath.db.models import Base  # noqa: E402


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (in-memory database)")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        # Mark based on test file location
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def settings():
    """Settings isolated from the environment and any .env file."""
    return Settings(_env_file=None, database_url="sqlite://", log_file=None)


@pytest.fixture
def session_factory():
    """Session factory bound to a fresh in-memory SQLite database."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield sessionmaker(bind=engine, autocommit=False, autoflush=False)
    engine.dispose()


# ========================================
# Domain builders
# ========================================


def build_questions(count: int) -> list[Question]:
    """Single-choice questions whose correct option is always "a"."""
    return [
        Question.from_dict(
            {
                "id": f"q{i}",
                "prompt": f"Question {i}?",
                "options": [{"id": "a", "text": "right"}, {"id": "b", "text": "wrong"}],
                "correct_answers": ["a"],
            }
        )
        for i in range(count)
    ]


def build_path(
    step_count: int = 6,
    checkpoint_orders: tuple[int, ...] = (2,),
    question_count: int = 10,
    passing_score: float = 70.0,
    topic: str = "Graph Theory",
    level: Level = Level.INTERMEDIATE,
    owner_id: str = "learner-1",
) -> LearningPath:
    """Path with ``step_count`` steps and checkpoints after the given orders."""
    steps = [
        Step(id=f"s{i}", label=f"Step {i}", body=f"Body {i}", order=i, topic=topic)
        for i in range(step_count)
    ]
    checkpoints = [
        Checkpoint(
            id=f"c{order}",
            after_step_order=order,
            questions=build_questions(question_count),
            passing_score=passing_score,
            difficulty=level,
        )
        for order in checkpoint_orders
    ]
    return LearningPath(
        id="path-1",
        owner_id=owner_id,
        topic=topic,
        level=level,
        steps=steps,
        checkpoints=checkpoints,
    )


def answers_scoring(checkpoint: Checkpoint, correct: int) -> dict[str, str]:
    """Answer every question, the first ``correct`` of them correctly."""
    return {q.id: ("a" if i < correct else "b") for i, q in enumerate(checkpoint.questions)}


@pytest.fixture
def make_path():
    return build_path


@pytest.fixture
def score_answers():
    return answers_scoring
