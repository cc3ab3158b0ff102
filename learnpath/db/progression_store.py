"""
Progression Store.

Persists learning paths with optimistic concurrency. Every mutation is a
compare-and-swap on the version column:

    UPDATE learning_paths SET ..., version = :expected + 1
    WHERE id = :id AND version = :expected

so two writers holding the same version can never both commit, even from
different processes. No row locks are held between read and write.
"""
from __future__ import annotations

import copy
from typing import Callable

from loguru import logger
from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from learnpath.adaptive.errors import (
    ConflictError,
    DuplicatePathError,
    LearningPathError,
    PathNotFoundError,
)
from learnpath.adaptive.models import LearningPath, Level, utcnow
from learnpath.db.database import session_scope
from learnpath.db.models import LearningPathRecord

Mutator = Callable[[LearningPath], object]


class ProgressionStore:
    """Versioned learning path storage."""

    def __init__(self, session_factory: Callable[[], Session] | None = None):
        self._session_factory = session_factory

    def _scope(self):
        return session_scope(self._session_factory)

    # ========================================
    # Reads
    # ========================================

    def get(self, path_id: str) -> LearningPath:
        """
        Load the current stored state of a path.

        Raises:
            PathNotFoundError: no path with this id
        """
        with self._scope() as session:
            record = session.get(LearningPathRecord, path_id)
            if record is None:
                raise PathNotFoundError(path_id)
            return record.to_domain()

    def find(self, owner_id: str, topic: str, level: Level) -> LearningPath | None:
        """Look up the path for an (owner, topic, level), if any."""
        query = select(LearningPathRecord).where(
            LearningPathRecord.owner_id == owner_id,
            LearningPathRecord.topic == topic,
            LearningPathRecord.level == level.value,
        )
        with self._scope() as session:
            record = session.execute(query).scalar_one_or_none()
            return record.to_domain() if record else None

    def list_for_owner(self, owner_id: str, limit: int = 20, offset: int = 0) -> list[LearningPath]:
        """Paths of one owner, newest first."""
        query = (
            select(LearningPathRecord)
            .where(LearningPathRecord.owner_id == owner_id)
            .order_by(LearningPathRecord.created_at.desc(), LearningPathRecord.id)
            .limit(limit)
            .offset(offset)
        )
        with self._scope() as session:
            return [record.to_domain() for record in session.execute(query).scalars()]

    # ========================================
    # Writes
    # ========================================

    def insert(self, path: LearningPath) -> LearningPath:
        """
        Store a new path at version 0.

        Raises:
            DuplicatePathError: the (owner, topic, level) already has a path
        """
        stored = copy.deepcopy(path)
        stored.version = 0
        try:
            with self._scope() as session:
                session.add(LearningPathRecord.from_domain(stored))
        except IntegrityError as e:
            raise DuplicatePathError(
                f"A path already exists for owner '{path.owner_id}', "
                f"topic '{path.topic}', level '{path.level.value}'"
            ) from e

        logger.info(f"Stored path {stored.id} for {stored.owner_id}: {stored.topic} ({stored.level.value})")
        return stored

    def update(self, path_id: str, expected_version: int, mutator: Mutator) -> LearningPath:
        """
        Apply ``mutator`` to a copy of the stored path and commit it atomically.

        The mutator edits the path in place. Any exception it raises propagates
        with nothing committed; engine errors get the pre-failure path attached.

        Raises:
            PathNotFoundError: no path with this id
            ConflictError: stored version differs from ``expected_version``
        """
        with self._scope() as session:
            record = session.get(LearningPathRecord, path_id)
            if record is None:
                raise PathNotFoundError(path_id)
            current = record.to_domain()

            if current.version != expected_version:
                logger.info(
                    f"Version conflict on path {path_id}: expected {expected_version}, "
                    f"stored {current.version}"
                )
                raise ConflictError(path_id, expected_version, current)

            working = copy.deepcopy(current)
            try:
                mutator(working)
            except LearningPathError as e:
                if e.path is None:
                    e.path = current
                raise

            working.id = current.id
            working.version = expected_version + 1
            working.updated_at = utcnow()

            columns = LearningPathRecord.columns_for(working)
            result = session.execute(
                update(LearningPathRecord)
                .where(
                    LearningPathRecord.id == path_id,
                    LearningPathRecord.version == expected_version,
                )
                .values(**columns)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                session.rollback()
                latest = self.get(path_id)
                logger.info(f"Lost compare-and-swap on path {path_id} at version {expected_version}")
                raise ConflictError(path_id, expected_version, latest)

        return working

    def delete(self, path_id: str) -> None:
        """
        Delete a path together with its embedded branches and attempts.

        Raises:
            PathNotFoundError: no path with this id
        """
        with self._scope() as session:
            result = session.execute(delete(LearningPathRecord).where(LearningPathRecord.id == path_id))
            if result.rowcount == 0:
                raise PathNotFoundError(path_id)
        logger.info(f"Deleted path {path_id}")
