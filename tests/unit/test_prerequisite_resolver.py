"""
Unit tests for PrerequisiteResolver and catalogs.
"""
import json

import pytest

from learnpath.adaptive.errors import CyclicPrerequisiteError
from learnpath.adaptive.models import Importance, Level
from learnpath.adaptive.prerequisite_resolver import (
    LevelPrerequisiteCatalog,
    PrerequisiteResolver,
    StaticPrerequisiteCatalog,
    build_catalog,
)


def resolver_for(edges):
    return PrerequisiteResolver(StaticPrerequisiteCatalog(edges))


class TestTopologicalOrder:
    def test_dependencies_come_first(self):
        resolver = resolver_for(
            {
                "calculus": ["functions", "algebra"],
                "functions": ["algebra"],
                "algebra": ["arithmetic"],
            }
        )
        assert resolver.resolve_ids("calculus", Level.BEGINNER) == ["arithmetic", "algebra", "functions"]

    def test_ties_broken_alphabetically(self):
        resolver = resolver_for({"ml": ["statistics", "linear algebra", "python"]})
        assert resolver.resolve_ids("ml", Level.BEGINNER) == ["linear algebra", "python", "statistics"]

    def test_topic_without_prerequisites(self):
        assert resolver_for({}).resolve("anything", Level.ADVANCED) == []

    def test_diamond_lists_shared_dependency_once(self):
        resolver = resolver_for({"d": ["b", "c"], "b": ["a"], "c": ["a"]})
        assert resolver.resolve_ids("d", Level.BEGINNER) == ["a", "b", "c"]


class TestCycles:
    def test_cycle_raises_with_cycle_path(self):
        resolver = resolver_for({"a": ["b"], "b": ["c"], "c": ["b"]})

        with pytest.raises(CyclicPrerequisiteError) as exc_info:
            resolver.resolve("a", Level.BEGINNER)

        cycle = exc_info.value.cycle
        assert cycle[0] == cycle[-1]
        assert set(cycle) == {"b", "c"}

    def test_cycle_through_requested_topic(self):
        resolver = resolver_for({"a": ["b"], "b": ["a"]})
        with pytest.raises(CyclicPrerequisiteError):
            resolver.resolve("a", Level.BEGINNER)

    def test_find_cycle_if_added(self):
        resolver = resolver_for({"calculus": ["algebra"], "algebra": ["arithmetic"]})

        assert resolver.find_cycle_if_added("arithmetic", "calculus", Level.BEGINNER) == [
            "arithmetic",
            "calculus",
            "algebra",
            "arithmetic",
        ]
        assert resolver.find_cycle_if_added("geometry", "algebra", Level.BEGINNER) is None
        assert resolver.find_cycle_if_added("x", "x", Level.BEGINNER) == ["x", "x"]


class TestStaticCatalog:
    def test_level_restricted_edges(self):
        resolver = resolver_for(
            {"calculus": ["algebra", {"topic": "trigonometry", "levels": ["advanced"]}]}
        )
        assert resolver.resolve_ids("calculus", Level.BEGINNER) == ["algebra"]
        assert resolver.resolve_ids("calculus", Level.ADVANCED) == ["algebra", "trigonometry"]

    def test_optional_prerequisites_can_be_excluded(self):
        resolver = resolver_for(
            {"calculus": ["algebra", {"topic": "history of math", "importance": "optional"}]}
        )
        resolved = resolver.resolve("calculus", Level.BEGINNER)
        assert {p.topic_id: p.importance for p in resolved}["history of math"] == Importance.OPTIONAL
        assert resolver.resolve_ids("calculus", Level.BEGINNER, include_optional=False) == ["algebra"]

    def test_from_file(self, tmp_path):
        catalog_file = tmp_path / "catalog.json"
        catalog_file.write_text(json.dumps({"b": ["a"]}), encoding="utf-8")

        catalog = build_catalog(str(catalog_file))
        assert PrerequisiteResolver(catalog).resolve_ids("b", Level.BEGINNER) == ["a"]

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            StaticPrerequisiteCatalog.from_file(tmp_path / "missing.json")


class TestLevelCatalog:
    def test_default_catalog_when_unconfigured(self):
        assert isinstance(build_catalog(None), LevelPrerequisiteCatalog)

    def test_beginner(self):
        resolver = PrerequisiteResolver(LevelPrerequisiteCatalog())
        assert resolver.resolve_ids("Rust", Level.BEGINNER) == ["Fundamentals of Rust"]

    def test_intermediate_chain(self):
        resolver = PrerequisiteResolver(LevelPrerequisiteCatalog())
        assert resolver.resolve_ids("Rust", Level.INTERMEDIATE) == [
            "Fundamentals of Rust",
            "Basic Rust Applications",
        ]

    def test_advanced_chain(self):
        resolver = PrerequisiteResolver(LevelPrerequisiteCatalog())
        assert resolver.resolve_ids("Rust", Level.ADVANCED) == [
            "Advanced Rust Concepts",
            "Rust Implementation",
            "Rust Best Practices",
        ]
