"""
Learning paths router.

Endpoints for:
- Path creation, lookup, listing and deletion
- Step completion and checkpoint attempts
- Branch creation and switching
- Performance-driven adaptation

Mutations take the caller's ``expected_version``; a stale version answers
409 with the current path so the client can refresh and retry.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from fastapi import APIRouter, Depends, HTTPException, Query
from loguru import logger
from pydantic import BaseModel, Field

from learnpath.adaptive.learning_engine import LearningEngine
from learnpath.adaptive.models import (
    AdaptationAction,
    BranchCondition,
    DifficultyFlag,
    LearningPath,
    Level,
    PerformanceSignal,
    Step,
    new_id,
)
from learnpath.api.dependencies import get_learning_engine

router = APIRouter()


# ========================================
# Request/Response Models
# ========================================


class PathCreateRequest(BaseModel):
    """Request model for creating a learning path."""

    owner_id: str = Field(..., min_length=1, description="Learner identifier")
    topic: str = Field(..., min_length=1, description="Topic to learn")
    level: Level = Field(Level.BEGINNER, description="beginner, intermediate or advanced")


class VersionedRequest(BaseModel):
    expected_version: int = Field(..., ge=0, description="Version the client last saw")


class CheckpointAttemptRequest(VersionedRequest):
    """Answers keyed by question id: one option id or a list of option ids."""

    answers: Dict[str, Union[str, List[str]]]


class BranchStepRequest(BaseModel):
    label: str = Field(..., min_length=1)
    body: str = ""
    estimated_minutes: int = Field(30, ge=1)


class BranchCreateRequest(VersionedRequest):
    """Request model for forking a branch."""

    fork_at_step_order: int = Field(..., ge=0)
    branch_name: str
    initial_steps: Optional[List[BranchStepRequest]] = Field(
        None, description="Branch steps; generated when omitted"
    )
    condition: BranchCondition = BranchCondition.MANUAL
    description: str = ""
    activate: bool = False


class BranchSwitchRequest(VersionedRequest):
    branch_id: Optional[str] = Field(None, description="Branch to activate; null returns to the main sequence")


class AdaptRequest(VersionedRequest):
    """Performance signal; scores and weak areas are taken from recorded attempts when omitted."""

    checkpoint_scores: Optional[List[float]] = None
    time_on_step_seconds: Dict[str, float] = Field(default_factory=dict)
    difficulty_flag: Optional[DifficultyFlag] = None
    areas: Optional[List[str]] = None


class OptionResponse(BaseModel):
    id: str
    text: str


class QuestionResponse(BaseModel):
    """Question as shown to the learner (no answer key)."""

    id: str
    prompt: str
    kind: str
    options: List[OptionResponse]


class ResourceResponse(BaseModel):
    title: str
    url: str
    type: str


class StepResponse(BaseModel):
    id: str
    label: str
    body: str
    order: int
    topic: str
    kind: str
    completed: bool
    completed_at: Optional[datetime]
    estimated_minutes: int
    prerequisite_topic_ids: List[str]
    resources: List[ResourceResponse]


class AttemptResponse(BaseModel):
    checkpoint_id: str
    score: float
    passed: bool
    taken_at: datetime
    incorrect_question_ids: List[str]


class CheckpointResponse(BaseModel):
    id: str
    after_step_order: int
    passing_score: float
    difficulty: str
    is_passed: bool
    questions: List[QuestionResponse]
    attempts: List[AttemptResponse]


class BranchResponse(BaseModel):
    id: str
    branch_name: str
    fork_at_step_order: int
    condition: str
    description: str
    created_at: datetime
    steps: List[StepResponse]
    checkpoints: List[CheckpointResponse]


class PrerequisiteResponse(BaseModel):
    topic_id: str
    depends_on: List[str]
    importance: str


class PathResponse(BaseModel):
    """Response model for a learning path."""

    id: str
    owner_id: str
    topic: str
    level: str
    version: int
    progress: int
    is_adaptive: bool
    active_branch_id: Optional[str]
    description: str
    tags: List[str]
    steps: List[StepResponse]
    checkpoints: List[CheckpointResponse]
    branches: List[BranchResponse]
    prerequisites: List[PrerequisiteResponse]
    created_at: datetime
    updated_at: datetime
    completed_at: Optional[datetime]


class CheckpointAttemptResponse(BaseModel):
    path: PathResponse
    attempt: AttemptResponse
    recommended_action: AdaptationAction


class AdaptResponse(BaseModel):
    path: PathResponse
    action: AdaptationAction
    reason: str
    applied: bool


class NextCheckpointResponse(BaseModel):
    should_take_checkpoint: bool
    checkpoint: Optional[CheckpointResponse] = None


def serialize_path(path: LearningPath) -> Dict[str, Any]:
    """JSON-ready path payload; answer keys are never exposed."""
    data = path.to_dict()
    passed = {c.id: c.is_passed for sequence in path.sequences() for c in sequence.checkpoints}
    for checkpoint in data["checkpoints"] + [c for b in data["branches"] for c in b["checkpoints"]]:
        checkpoint["is_passed"] = passed[checkpoint["id"]]
    return PathResponse.model_validate(data).model_dump(mode="json")


def _path_response(path: LearningPath) -> PathResponse:
    return PathResponse.model_validate(serialize_path(path))


# ========================================
# Path Endpoints
# ========================================


@router.post(
    "",
    response_model=PathResponse,
    status_code=201,
    summary="Create learning path",
)
def create_path(
    request: PathCreateRequest,
    engine: LearningEngine = Depends(get_learning_engine),
) -> PathResponse:
    """
    Build a learning path for a topic.

    Prerequisite topics are resolved and prepended. An existing path for the
    same owner, topic and level is returned unchanged.
    """
    logger.info(f"Creating path for {request.owner_id}: {request.topic} ({request.level.value})")
    return _path_response(engine.create_path(request.owner_id, request.topic, request.level))


@router.get(
    "",
    response_model=List[PathResponse],
    summary="List learner paths",
)
def list_paths(
    owner_id: str = Query(..., description="Learner identifier"),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    engine: LearningEngine = Depends(get_learning_engine),
) -> List[PathResponse]:
    """Paths of one learner, newest first."""
    return [_path_response(p) for p in engine.list_paths(owner_id, limit=limit, offset=offset)]


@router.get(
    "/{path_id}",
    response_model=PathResponse,
    summary="Get learning path",
)
def get_path(path_id: str, engine: LearningEngine = Depends(get_learning_engine)) -> PathResponse:
    return _path_response(engine.get_path(path_id))


@router.delete(
    "/{path_id}",
    status_code=204,
    summary="Delete learning path",
)
def delete_path(path_id: str, engine: LearningEngine = Depends(get_learning_engine)) -> None:
    engine.delete_path(path_id)


# ========================================
# Progression Endpoints
# ========================================


@router.post(
    "/{path_id}/steps/{step_id}/complete",
    response_model=PathResponse,
    summary="Complete step",
)
def complete_step(
    path_id: str,
    step_id: str,
    request: VersionedRequest,
    engine: LearningEngine = Depends(get_learning_engine),
) -> PathResponse:
    return _path_response(engine.complete_step(path_id, step_id, request.expected_version))


@router.post(
    "/{path_id}/checkpoints/{checkpoint_id}/attempts",
    response_model=CheckpointAttemptResponse,
    summary="Submit checkpoint answers",
)
def take_checkpoint(
    path_id: str,
    checkpoint_id: str,
    request: CheckpointAttemptRequest,
    engine: LearningEngine = Depends(get_learning_engine),
) -> CheckpointAttemptResponse:
    """
    Score a checkpoint attempt.

    ``recommended_action`` tells the client what an adapt call would do now.
    """
    outcome = engine.take_checkpoint(path_id, checkpoint_id, request.answers, request.expected_version)
    return CheckpointAttemptResponse(
        path=_path_response(outcome.path),
        attempt=AttemptResponse.model_validate(outcome.attempt.to_dict()),
        recommended_action=outcome.recommended_action,
    )


@router.get(
    "/{path_id}/next-checkpoint",
    response_model=NextCheckpointResponse,
    summary="Should the learner take a checkpoint",
)
def next_checkpoint(path_id: str, engine: LearningEngine = Depends(get_learning_engine)) -> NextCheckpointResponse:
    path = engine.get_path(path_id)
    checkpoint = engine.next_checkpoint(path)
    if checkpoint is None:
        return NextCheckpointResponse(should_take_checkpoint=False)
    payload = {**checkpoint.to_dict(), "is_passed": checkpoint.is_passed}
    return NextCheckpointResponse(
        should_take_checkpoint=True,
        checkpoint=CheckpointResponse.model_validate(payload),
    )


# ========================================
# Branch Endpoints
# ========================================


@router.post(
    "/{path_id}/branches",
    response_model=PathResponse,
    status_code=201,
    summary="Fork branch",
)
def create_branch(
    path_id: str,
    request: BranchCreateRequest,
    engine: LearningEngine = Depends(get_learning_engine),
) -> PathResponse:
    """Fork an alternate track at a completed step of the main sequence."""
    initial_steps = None
    if request.initial_steps is not None:
        if not request.initial_steps:
            raise HTTPException(status_code=422, detail="initial_steps must not be empty")
        initial_steps = [
            Step(id=new_id(), label=s.label, body=s.body, order=i, estimated_minutes=s.estimated_minutes)
            for i, s in enumerate(request.initial_steps)
        ]

    path = engine.create_branch(
        path_id,
        fork_at_step_order=request.fork_at_step_order,
        branch_name=request.branch_name,
        expected_version=request.expected_version,
        initial_steps=initial_steps,
        condition=request.condition,
        description=request.description,
        activate=request.activate,
    )
    return _path_response(path)


@router.put(
    "/{path_id}/active-branch",
    response_model=PathResponse,
    summary="Switch active branch",
)
def switch_branch(
    path_id: str,
    request: BranchSwitchRequest,
    engine: LearningEngine = Depends(get_learning_engine),
) -> PathResponse:
    return _path_response(engine.switch_branch(path_id, request.branch_id, request.expected_version))


# ========================================
# Adaptation Endpoints
# ========================================


@router.post(
    "/{path_id}/adapt",
    response_model=AdaptResponse,
    summary="Adapt path to performance",
)
def adapt_path(
    path_id: str,
    request: AdaptRequest,
    engine: LearningEngine = Depends(get_learning_engine),
) -> AdaptResponse:
    signal = PerformanceSignal(
        checkpoint_scores=request.checkpoint_scores,
        time_on_step_seconds=request.time_on_step_seconds,
        difficulty_flag=request.difficulty_flag,
        areas=request.areas,
    )
    outcome = engine.adapt_path(path_id, signal, request.expected_version)
    return AdaptResponse(
        path=_path_response(outcome.path),
        action=outcome.action,
        reason=outcome.reason,
        applied=outcome.applied,
    )
