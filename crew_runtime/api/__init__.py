"""Expose the aggregated API router."""
from fastapi import APIRouter

from . import agents, executions, tasks, templates

api_router = APIRouter(prefix="/api")
api_router.include_router(tasks.router, prefix="/tasks", tags=["tasks"])
api_router.include_router(executions.router, prefix="/executions", tags=["executions"])
api_router.include_router(templates.router, prefix="/templates", tags=["templates"])
api_router.include_router(agents.router, prefix="/agents", tags=["agents"])
api_router.include_router(agents.crews_router, prefix="/crews", tags=["crews"])

__all__ = ["api_router"]
