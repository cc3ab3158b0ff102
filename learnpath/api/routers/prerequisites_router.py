"""
Prerequisites router.

Endpoints for:
- Prerequisite resolution in dependency order
- Circular dependency validation of a candidate edge
"""
from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from learnpath.adaptive.learning_engine import LearningEngine
from learnpath.adaptive.models import Level
from learnpath.api.dependencies import get_learning_engine
from learnpath.api.routers.paths_router import PrerequisiteResponse

router = APIRouter()


# ========================================
# Request/Response Models
# ========================================


class ResolutionResponse(BaseModel):
    """Prerequisites of a topic, dependencies first."""

    topic: str
    level: Level
    prerequisites: List[PrerequisiteResponse]


class CircularValidationResponse(BaseModel):
    """Response model for circular dependency validation."""

    is_valid: bool
    cycle: Optional[List[str]] = None


# ========================================
# Endpoints
# ========================================


@router.get(
    "/resolve",
    response_model=ResolutionResponse,
    summary="Resolve prerequisites",
)
def resolve_prerequisites(
    topic: str = Query(..., min_length=1),
    level: Level = Query(Level.BEGINNER),
    include_optional: bool = Query(True),
    engine: LearningEngine = Depends(get_learning_engine),
) -> ResolutionResponse:
    """Resolve a topic's prerequisites in topological order."""
    prerequisites = engine.resolve_prerequisites(topic, level, include_optional=include_optional)
    return ResolutionResponse(
        topic=topic,
        level=level,
        prerequisites=[PrerequisiteResponse.model_validate(p.to_dict()) for p in prerequisites],
    )


@router.get(
    "/validate",
    response_model=CircularValidationResponse,
    summary="Validate prerequisite (circular check)",
)
def validate_prerequisite(
    topic: str = Query(..., min_length=1),
    depends_on: str = Query(..., min_length=1),
    level: Level = Query(Level.BEGINNER),
    engine: LearningEngine = Depends(get_learning_engine),
) -> CircularValidationResponse:
    """
    Validate that making ``topic`` depend on ``depends_on`` won't create a cycle.

    Returns is_valid=False with the would-be cycle otherwise.
    """
    cycle = engine.check_prerequisite_edge(topic, depends_on, level)
    return CircularValidationResponse(is_valid=cycle is None, cycle=cycle)
