"""
Learning path persistence model.

One row per path. Scalar columns hold what is queried or compared (owner,
topic, level, version); steps, checkpoints, attempts and branches live in a
single JSON document so a path is always read and written as a whole.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, DateTime, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from learnpath.adaptive.models import LearningPath

from .base import Base


def _aware(value: datetime | None) -> datetime | None:
    # SQLite drops tzinfo on the way back
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class LearningPathRecord(Base):
    """Stored learning path with its version counter."""

    __tablename__ = "learning_paths"
    __table_args__ = (
        UniqueConstraint("owner_id", "topic", "level", name="uq_learning_paths_owner_topic_level"),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    topic: Mapped[str] = mapped_column(String(500), nullable=False)
    level: Mapped[str] = mapped_column(String(20), nullable=False)

    # Optimistic concurrency
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    active_branch_id: Mapped[str | None] = mapped_column(String(32))
    is_adaptive: Mapped[bool] = mapped_column(Boolean, default=True)
    document: Mapped[dict] = mapped_column(JSON, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    def __repr__(self) -> str:
        return f"<LearningPathRecord({self.id}, {self.owner_id}, {self.topic}/{self.level}, v{self.version})>"

    @classmethod
    def from_domain(cls, path: LearningPath) -> LearningPathRecord:
        return cls(id=path.id, **cls.columns_for(path))

    @staticmethod
    def columns_for(path: LearningPath) -> dict:
        """Column values for an insert or a compare-and-swap update."""
        return {
            "owner_id": path.owner_id,
            "topic": path.topic,
            "level": path.level.value,
            "version": path.version,
            "active_branch_id": path.active_branch_id,
            "is_adaptive": path.is_adaptive,
            "document": path.document(),
            "created_at": path.created_at,
            "updated_at": path.updated_at,
            "completed_at": path.completed_at,
        }

    def to_domain(self) -> LearningPath:
        return LearningPath.from_dict(
            {
                "id": self.id,
                "owner_id": self.owner_id,
                "topic": self.topic,
                "level": self.level,
                "version": self.version,
                "active_branch_id": self.active_branch_id,
                "is_adaptive": self.is_adaptive,
                "created_at": _aware(self.created_at),
                "updated_at": _aware(self.updated_at),
                "completed_at": _aware(self.completed_at),
                **self.document,
            }
        )
