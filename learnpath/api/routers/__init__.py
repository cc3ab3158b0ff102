"""API routers for learnpath."""

from learnpath.api.routers import paths_router, prerequisites_router

__all__ = [
    "paths_router",
    "prerequisites_router",
]
