"""
Prerequisite Resolver.

Orders the prerequisite topics of a (topic, level) so that no topic appears
before a topic it depends on. Catalog data is never trusted to be acyclic: a
cycle is reported as CyclicPrerequisiteError, never silently broken.

Catalogs:
- StaticPrerequisiteCatalog: in-memory mapping, optionally loaded from JSON
- DatabasePrerequisiteCatalog: topic_prerequisites table
- LevelPrerequisiteCatalog: level-based defaults when nothing is configured
"""
from __future__ import annotations

import heapq
import json
from collections import deque
from pathlib import Path
from typing import Any, Callable, Mapping, Protocol

from loguru import logger
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from learnpath.adaptive.errors import CyclicPrerequisiteError
from learnpath.adaptive.models import Importance, Level, Prerequisite

_IMPORTANCE_RANK = {Importance.REQUIRED: 0, Importance.RECOMMENDED: 1, Importance.OPTIONAL: 2}


class PrerequisiteCatalog(Protocol):
    """Source of prerequisite data for a topic."""

    def prerequisites_of(self, topic: str, level: Level) -> dict[str, Prerequisite]:
        """
        Return every topic reachable from ``topic`` through prerequisite edges,
        keyed by topic id, including an entry for ``topic`` itself when it has
        direct prerequisites.
        """
        ...


# =============================================================================
# Catalogs
# =============================================================================


class _EdgeCatalog:
    """Shared traversal for catalogs that can list the direct edges of one topic."""

    def _direct_edges(self, topic: str, level: Level) -> list[tuple[str, Importance]]:
        raise NotImplementedError

    def prerequisites_of(self, topic: str, level: Level) -> dict[str, Prerequisite]:
        importance: dict[str, Importance] = {}
        depends: dict[str, set[str]] = {}
        queue = deque([topic])
        seen = {topic}
        while queue:
            current = queue.popleft()
            edges = self._direct_edges(current, level)
            depends[current] = {dep for dep, _ in edges}
            for dep, edge_importance in edges:
                known = importance.get(dep)
                if known is None or _IMPORTANCE_RANK[edge_importance] < _IMPORTANCE_RANK[known]:
                    importance[dep] = edge_importance
                if dep not in seen:
                    seen.add(dep)
                    queue.append(dep)

        return {
            topic_id: Prerequisite(
                topic_id=topic_id,
                depends_on=frozenset(deps),
                importance=importance.get(topic_id, Importance.REQUIRED),
            )
            for topic_id, deps in depends.items()
            if topic_id != topic or deps
        }


class StaticPrerequisiteCatalog(_EdgeCatalog):
    """
    In-memory catalog.

    Mapping format (also the JSON file format)::

        {
            "calculus": [
                {"topic": "algebra", "importance": "required"},
                {"topic": "trigonometry", "levels": ["advanced"]}
            ],
            "algebra": ["arithmetic"]
        }

    Entries may be plain topic strings. ``levels`` restricts an edge to the
    listed levels; without it the edge applies to every level.
    """

    def __init__(self, edges: Mapping[str, list[Any]]):
        self._edges: dict[str, list[tuple[str, Importance, frozenset[Level] | None]]] = {}
        for topic, entries in edges.items():
            parsed = []
            for entry in entries:
                if isinstance(entry, str):
                    parsed.append((entry, Importance.REQUIRED, None))
                    continue
                levels = entry.get("levels")
                parsed.append(
                    (
                        str(entry["topic"]),
                        Importance(entry.get("importance", Importance.REQUIRED.value)),
                        frozenset(Level(lv) for lv in levels) if levels else None,
                    )
                )
            self._edges[str(topic)] = parsed

    @classmethod
    def from_file(cls, path: Path | str) -> StaticPrerequisiteCatalog:
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Prerequisite catalog not found: {path}")
        return cls(json.loads(path.read_text(encoding="utf-8")))

    def _direct_edges(self, topic: str, level: Level) -> list[tuple[str, Importance]]:
        return [
            (dep, importance)
            for dep, importance, levels in self._edges.get(topic, [])
            if levels is None or level in levels
        ]


class DatabasePrerequisiteCatalog(_EdgeCatalog):
    """Catalog backed by the topic_prerequisites table."""

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def _direct_edges(self, topic: str, level: Level) -> list[tuple[str, Importance]]:
        from learnpath.db.models import TopicPrerequisite

        query = (
            select(TopicPrerequisite.depends_on_topic_id, TopicPrerequisite.importance)
            .where(TopicPrerequisite.topic_id == topic)
            .where(TopicPrerequisite.status == "active")
            .where(or_(TopicPrerequisite.level.is_(None), TopicPrerequisite.level == level.value))
            .order_by(TopicPrerequisite.depends_on_topic_id)
        )
        session = self._session_factory()
        try:
            rows = session.execute(query).all()
        finally:
            session.close()
        return [(row.depends_on_topic_id, Importance(row.importance)) for row in rows]


class LevelPrerequisiteCatalog:
    """Level-based default prerequisites used when no catalog is configured."""

    def prerequisites_of(self, topic: str, level: Level) -> dict[str, Prerequisite]:
        if level == Level.BEGINNER:
            chain = [(f"Fundamentals of {topic}", Importance.REQUIRED)]
        elif level == Level.INTERMEDIATE:
            chain = [
                (f"Fundamentals of {topic}", Importance.REQUIRED),
                (f"Basic {topic} Applications", Importance.RECOMMENDED),
            ]
        else:
            chain = [
                (f"Advanced {topic} Concepts", Importance.REQUIRED),
                (f"{topic} Implementation", Importance.REQUIRED),
                (f"{topic} Best Practices", Importance.RECOMMENDED),
            ]

        result: dict[str, Prerequisite] = {}
        previous: str | None = None
        for topic_id, importance in chain:
            result[topic_id] = Prerequisite(
                topic_id=topic_id,
                depends_on=frozenset({previous}) if previous else frozenset(),
                importance=importance,
            )
            previous = topic_id
        result[topic] = Prerequisite(topic_id=topic, depends_on=frozenset(result))
        return result


# =============================================================================
# Resolver
# =============================================================================


class PrerequisiteResolver:
    """Topologically order prerequisite topics."""

    def __init__(self, catalog: PrerequisiteCatalog):
        self.catalog = catalog

    def resolve(
        self,
        topic: str,
        level: Level,
        include_optional: bool = True,
    ) -> list[Prerequisite]:
        """
        Return the prerequisites of ``topic`` in dependency order.

        Raises:
            CyclicPrerequisiteError: the catalog's dependency graph has a cycle
        """
        entries = dict(self.catalog.prerequisites_of(topic, level))
        graph = self._graph(entries)
        order = self.topological_order(graph)

        resolved = []
        for topic_id in order:
            if topic_id == topic:
                continue
            entry = entries.get(topic_id) or Prerequisite(topic_id=topic_id)
            if not include_optional and entry.importance == Importance.OPTIONAL:
                continue
            resolved.append(entry)
        return resolved

    def resolve_ids(self, topic: str, level: Level, include_optional: bool = True) -> list[str]:
        return [p.topic_id for p in self.resolve(topic, level, include_optional)]

    def find_cycle_if_added(self, topic: str, depends_on: str, level: Level) -> list[str] | None:
        """
        Check whether adding ``topic -> depends_on`` would close a cycle.

        Returns the would-be cycle (starting and ending at ``topic``) or None.
        """
        if topic == depends_on:
            return [topic, topic]
        graph = self._graph(dict(self.catalog.prerequisites_of(depends_on, level)))
        graph.setdefault(topic, set()).add(depends_on)
        cycle = self.find_cycle(graph)
        if cycle and topic in cycle:
            ring = cycle[:-1]
            start = ring.index(topic)
            ring = ring[start:] + ring[:start]
            cycle = ring + [topic]
        return cycle

    @staticmethod
    def _graph(entries: Mapping[str, Prerequisite]) -> dict[str, set[str]]:
        graph = {topic_id: set(entry.depends_on) for topic_id, entry in entries.items()}
        for deps in list(graph.values()):
            for dep in deps:
                graph.setdefault(dep, set())
        return graph

    @staticmethod
    def topological_order(graph: Mapping[str, set[str]]) -> list[str]:
        """
        Kahn's algorithm over ``topic -> dependencies``; dependencies come first.

        Ties are broken alphabetically so the order is deterministic.
        """
        remaining = {node: len(deps) for node, deps in graph.items()}
        dependents: dict[str, list[str]] = {node: [] for node in graph}
        for node, deps in graph.items():
            for dep in deps:
                dependents[dep].append(node)

        ready = [node for node, count in remaining.items() if count == 0]
        heapq.heapify(ready)
        order: list[str] = []
        while ready:
            node = heapq.heappop(ready)
            order.append(node)
            for dependent in dependents[node]:
                remaining[dependent] -= 1
                if remaining[dependent] == 0:
                    heapq.heappush(ready, dependent)

        if len(order) != len(graph):
            cycle = PrerequisiteResolver.find_cycle(graph) or sorted(
                node for node, count in remaining.items() if count > 0
            )
            logger.error(f"Prerequisite catalog contains a cycle: {' -> '.join(cycle)}")
            raise CyclicPrerequisiteError(cycle)
        return order

    @staticmethod
    def find_cycle(graph: Mapping[str, set[str]]) -> list[str] | None:
        """Depth-first search for one cycle; returns it closed (first == last) or None."""
        WHITE, GREY, BLACK = 0, 1, 2
        color = {node: WHITE for node in graph}

        for start in sorted(graph):
            if color[start] != WHITE:
                continue
            stack: list[tuple[str, list[str]]] = [(start, sorted(graph.get(start, ())))]
            trail = [start]
            color[start] = GREY
            while stack:
                node, pending = stack[-1]
                if not pending:
                    color[node] = BLACK
                    stack.pop()
                    trail.pop()
                    continue
                nxt = pending.pop(0)
                state = color.get(nxt, WHITE)
                if state == GREY:
                    return trail[trail.index(nxt):] + [nxt]
                if state == WHITE:
                    color[nxt] = GREY
                    trail.append(nxt)
                    stack.append((nxt, sorted(graph.get(nxt, ()))))
        return None


def build_catalog(
    source: str | None,
    session_factory: Callable[[], Session] | None = None,
) -> PrerequisiteCatalog:
    """Create the catalog named by the ``prerequisite_catalog`` setting."""
    if not source:
        return LevelPrerequisiteCatalog()
    if source == "database":
        if session_factory is None:
            from learnpath.db.database import SessionLocal

            session_factory = SessionLocal
        return DatabasePrerequisiteCatalog(session_factory)
    return StaticPrerequisiteCatalog.from_file(source)
