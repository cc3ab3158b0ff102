"""
Topic prerequisite catalog table.

Each row is one directed edge: ``topic_id`` depends on
``depends_on_topic_id``. Rows with a NULL ``level`` apply to every level.

Importance:
- required: always included
- recommended: included by default
- optional: dropped when the caller excludes optional prerequisites
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class TopicPrerequisite(Base):
    """Prerequisite edge between two topics."""

    __tablename__ = "topic_prerequisites"
    __table_args__ = (
        UniqueConstraint(
            "topic_id", "depends_on_topic_id", "level", name="uq_topic_prerequisites_edge"
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    topic_id: Mapped[str] = mapped_column(String(500), index=True, nullable=False)
    depends_on_topic_id: Mapped[str] = mapped_column(String(500), nullable=False)
    level: Mapped[str | None] = mapped_column(String(20))
    importance: Mapped[str] = mapped_column(String(20), default="required")

    # Review workflow
    status: Mapped[str] = mapped_column(String(20), default="active")
    notes: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(default=func.now())

    def __repr__(self) -> str:
        scope = self.level or "all levels"
        return f"<TopicPrerequisite({self.topic_id} -> {self.depends_on_topic_id}, {self.importance}, {scope})>"
