"""
Task endpoints: creation, status changes, dependencies.

Statuses: todo → in_progress → done → approved, with a manual ``blocked``
that needs a reason.
- Dependencies: a task is blocked while any direct prerequisite is unfinished.
- Self, duplicate, cross-project and circular dependencies are refused.
- Batch dependency adds are all-or-nothing.
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from opsdesk.core.auth import AuthenticatedUser, require_member
from opsdesk.core.database import get_session
from opsdesk.services.tasks import (
    add_dependencies,
    create_task,
    enrich_task,
    get_dependency_info,
    get_task_or_404,
    remove_dependency,
    update_task_status,
)
from opsdesk_shared.schemas.tasks import (
    DependencyAdd,
    DependencyAddResult,
    DependencyInfo,
    TaskCreate,
    TaskRead,
    TaskStatusUpdate,
)

router = APIRouter()


# ---------------------------------------------------------------------------
# Task CRUD
# ---------------------------------------------------------------------------


@router.post("/", response_model=TaskRead, status_code=201)
async def create_task_endpoint(
    task_in: TaskCreate,
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    """Create a new task in a project."""
    task = await create_task(session, task_in, auth.org_id, auth.user_id)
    return await enrich_task(session, task)


@router.get("/{task_id}", response_model=TaskRead)
async def get_task_endpoint(
    task_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    task = await get_task_or_404(session, task_id, auth.org_id)
    return await enrich_task(session, task)


@router.patch("/{task_id}/status", response_model=TaskRead)
async def update_task_status_endpoint(
    task_id: uuid.UUID,
    body: TaskStatusUpdate,
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    """Change a task's status (assignee, manager or admin)."""
    task = await update_task_status(session, task_id, body, auth.org_id, auth.user_id, auth.role)
    return await enrich_task(session, task)


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


@router.get("/{task_id}/dependencies", response_model=DependencyInfo)
async def get_dependencies_endpoint(
    task_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    """Dependencies, dependents and the current blocking state of a task."""
    return await get_dependency_info(session, task_id, auth.org_id)


@router.post("/{task_id}/dependencies", response_model=DependencyAddResult, status_code=201)
async def add_dependencies_endpoint(
    task_id: uuid.UUID,
    body: DependencyAdd,
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    """Add prerequisites to a task. The first invalid id rejects the whole batch."""
    added, version = await add_dependencies(
        session, task_id, body.depends_on_task_ids, auth.org_id, auth.user_id, auth.role
    )
    return DependencyAddResult(task_id=task_id, added=added, graph_version=version)


@router.delete("/{task_id}/dependencies/{dependency_id}", status_code=204)
async def remove_dependency_endpoint(
    task_id: uuid.UUID,
    dependency_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    await remove_dependency(session, task_id, dependency_id, auth.org_id, auth.user_id, auth.role)
