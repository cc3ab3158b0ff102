"""
Integration tests for ProgressionStore on SQLite.

Covers the versioned compare-and-swap, duplicate detection and the
guarantee that a failing mutation commits nothing.
"""
from datetime import timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from learnpath.adaptive.errors import (
    ConflictError,
    DuplicatePathError,
    PathNotFoundError,
    StepLockedError,
)
from learnpath.adaptive.models import Level, utcnow
from learnpath.adaptive.path_sequencer import PathSequencer
from learnpath.db.models import Base
from learnpath.db.progression_store import ProgressionStore

pytestmark = pytest.mark.integration


def complete(step_id):
    return lambda path: PathSequencer().complete_step(path, step_id)


class TestInsertAndRead:
    def test_insert_starts_at_version_zero(self, store, make_path):
        path = make_path()
        path.version = 7

        stored = store.insert(path)
        loaded = store.get(stored.id)

        assert stored.version == 0
        assert loaded.version == 0
        assert loaded.steps == path.steps
        assert loaded.checkpoints[0].questions == path.checkpoints[0].questions

    def test_find_by_owner_topic_level(self, store, make_path):
        store.insert(make_path())

        assert store.find("learner-1", "Graph Theory", Level.INTERMEDIATE).id == "path-1"
        assert store.find("learner-1", "Graph Theory", Level.ADVANCED) is None

    def test_duplicate_owner_topic_level_rejected(self, store, make_path):
        store.insert(make_path())
        duplicate = make_path()
        duplicate.id = "path-2"

        with pytest.raises(DuplicatePathError):
            store.insert(duplicate)

    def test_list_newest_first(self, store, make_path):
        now = utcnow()
        for index, topic in enumerate(["Sets", "Logic", "Proofs"]):
            path = make_path(topic=topic)
            path.id = f"path-{topic}"
            path.created_at = now + timedelta(minutes=index)
            store.insert(path)

        listed = store.list_for_owner("learner-1")
        assert [p.topic for p in listed] == ["Proofs", "Logic", "Sets"]
        assert store.list_for_owner("someone-else") == []

    def test_missing_path(self, store):
        with pytest.raises(PathNotFoundError):
            store.get("missing")


class TestVersionedUpdate:
    def test_update_bumps_version(self, store, make_path):
        store.insert(make_path())

        updated = store.update("path-1", 0, complete("s0"))

        assert updated.version == 1
        assert store.get("path-1").steps[0].completed

    def test_stale_version_conflicts(self, store, make_path):
        store.insert(make_path())
        store.update("path-1", 0, complete("s0"))

        with pytest.raises(ConflictError) as exc_info:
            store.update("path-1", 0, complete("s1"))

        assert exc_info.value.path.version == 1
        assert not store.get("path-1").steps[1].completed

    def test_failed_mutation_commits_nothing(self, store, make_path):
        store.insert(make_path())

        with pytest.raises(StepLockedError) as exc_info:
            store.update("path-1", 0, complete("s3"))

        assert exc_info.value.path.version == 0
        stored = store.get("path-1")
        assert stored.version == 0
        assert not any(step.completed for step in stored.steps)

    def test_lost_compare_and_swap(self, tmp_path, make_path):
        """A writer that commits between read and write makes the CAS fail."""
        engine = create_engine(f"sqlite:///{tmp_path / 'paths.db'}")
        Base.metadata.create_all(engine)
        store = ProgressionStore(sessionmaker(bind=engine, autocommit=False, autoflush=False))
        store.insert(make_path())

        def racing(path):
            store.update("path-1", 0, complete("s0"))
            path.is_adaptive = False

        with pytest.raises(ConflictError) as exc_info:
            store.update("path-1", 0, racing)

        assert exc_info.value.path.version == 1
        stored = store.get("path-1")
        assert stored.version == 1
        assert stored.steps[0].completed
        assert stored.is_adaptive
        engine.dispose()


class TestDelete:
    def test_delete_removes_path(self, store, make_path):
        store.insert(make_path())
        store.delete("path-1")

        with pytest.raises(PathNotFoundError):
            store.get("path-1")

    def test_delete_missing(self, store):
        with pytest.raises(PathNotFoundError):
            store.delete("missing")
