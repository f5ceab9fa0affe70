"""
API v1 Router

All endpoints are scoped to the organization carried by the session token.
"""

from fastapi import APIRouter
from . import leaves, projects, tasks

router = APIRouter()

router.include_router(leaves.router, prefix="/leaves", tags=["Leaves"])
router.include_router(projects.router, prefix="/projects", tags=["Projects"])
router.include_router(tasks.router, prefix="/tasks", tags=["Tasks"])


@router.get("/", tags=["API"])
async def api_root():
    """API root: returns version and available endpoints."""
    return {
        "api": "v1",
        "version": "0.1.0",
        "endpoints": [
            "/leaves",
            "/leaves/pending-approvals",
            "/projects",
            "/tasks",
        ],
    }
