"""
FastAPI application for learnpath.

Provides REST API for:
- Learning path creation and progression
- Checkpoint attempts and adaptation
- Branching
- Prerequisite resolution and validation
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from config import get_settings
from learnpath import __version__
from learnpath.adaptive.errors import (
    BranchNotFoundError,
    CheckpointNotFoundError,
    ConflictError,
    CyclicPrerequisiteError,
    GenerationError,
    GenerationTimeoutError,
    LearningPathError,
    PathNotFoundError,
    StaleStateError,
    StepNotFoundError,
)
from learnpath.db.database import get_engine, init_db

settings = get_settings()

_NOT_FOUND = (PathNotFoundError, StepNotFoundError, CheckpointNotFoundError, BranchNotFoundError)
_CONFLICT = (ConflictError, StaleStateError)


def _check_database_health() -> tuple[str, str | None]:
    """
    Check database connectivity.

    Returns:
        Tuple of (status, error_message). Status is "ok" or "error".
    """
    try:
        engine = get_engine()
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return "ok", None
    except SQLAlchemyError as e:
        return "error", str(e)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    # Startup
    logger.info("Starting learnpath service...")
    init_db()
    logger.info(f"Service started on {settings.api_host}:{settings.api_port}")

    yield

    # Shutdown
    logger.info("Shutting down learnpath service...")


app = FastAPI(
    title="Learnpath",
    description="""
    Adaptive learning path engine.

    ## Features

    - **Paths**: Ordered curricula built from generated lessons, prerequisites first
    - **Checkpoints**: Quiz gates that lock later steps until passed
    - **Branches**: Alternate tracks forked from completed steps
    - **Adaptation**: Remediation and acceleration driven by checkpoint scores

    All mutations use optimistic concurrency: send the `expected_version`
    you last saw; a 409 response carries the current path.
    """,
    version=__version__,
    lifespan=lifespan,
)

# CORS middleware for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ========================================
# Error Handling
# ========================================


def _status_for(exc: LearningPathError) -> int:
    if isinstance(exc, _NOT_FOUND):
        return 404
    if isinstance(exc, _CONFLICT):
        return 409
    if isinstance(exc, GenerationTimeoutError):
        return 504
    if isinstance(exc, GenerationError):
        return 502
    if isinstance(exc, CyclicPrerequisiteError):
        return 500
    return 422


@app.exception_handler(LearningPathError)
async def learning_path_error_handler(request: Request, exc: LearningPathError) -> JSONResponse:
    from learnpath.api.routers.paths_router import serialize_path

    status_code = _status_for(exc)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")

    body: dict[str, Any] = {"detail": exc.message, "error": type(exc).__name__}
    if exc.path is not None:
        body["path"] = serialize_path(exc.path)
    if isinstance(exc, CyclicPrerequisiteError):
        body["cycle"] = exc.cycle
    return JSONResponse(status_code=status_code, content=body)


# ========================================
# Health & Status Endpoints
# ========================================


@app.get("/", tags=["Health"])
def root() -> dict[str, str]:
    """Root endpoint returning service info."""
    return {
        "service": "learnpath",
        "version": __version__,
        "status": "ok",
    }


@app.get("/health", tags=["Health"])
def health_check() -> dict[str, Any]:
    """Health check endpoint with an actual database round trip."""
    db_status, db_error = _check_database_health()

    result: dict[str, Any] = {
        "status": "healthy" if db_status == "ok" else "unhealthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "components": {
            "database": db_status,
            "generator": "configured" if settings.has_generator_configured() else "template",
            "prerequisite_catalog": settings.prerequisite_catalog or "level_defaults",
        },
    }
    if db_error:
        result["errors"] = {"database": db_error}
    return result


@app.get("/config", tags=["Health"])
def get_config() -> dict[str, Any]:
    """Get current configuration (non-sensitive)."""
    return {
        "database_url": settings.database_url.split("@")[-1]
        if "@" in settings.database_url
        else "configured",
        "generation": settings.get_generation_config(),
        "adaptation": settings.get_adaptation_config(),
        "checkpoint_interval": settings.checkpoint_interval,
        "default_passing_score": settings.default_passing_score,
        "max_conflict_retries": settings.max_conflict_retries,
    }


# ========================================
# Import and mount routers
# ========================================

from learnpath.api.routers import paths_router, prerequisites_router  # noqa: E402

app.include_router(paths_router.router, prefix="/api/paths", tags=["Learning Paths"])
app.include_router(prerequisites_router.router, prefix="/api/prerequisites", tags=["Prerequisites"])
