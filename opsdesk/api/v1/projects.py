"""Project endpoints. A project scopes one task-dependency graph."""

from __future__ import annotations

import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from opsdesk.core.auth import AuthenticatedUser, require_manager, require_member
from opsdesk.core.database import get_session
from opsdesk.models.project import Project
from opsdesk.services.tasks import (
    create_project,
    enrich_task,
    get_project_or_404,
    list_project_tasks,
)
from opsdesk_shared.schemas.common import TaskStatus
from opsdesk_shared.schemas.tasks import ProjectCreate, ProjectRead, TaskRead

router = APIRouter()


def _to_read(project: Project) -> ProjectRead:
    return ProjectRead(
        id=project.id,
        org_id=project.org_id,
        name=project.name,
        code=project.code,
        description=project.description,
        graph_version=project.graph_version,
        created_at=project.created_at,
        updated_at=project.updated_at,
    )


@router.post("/", response_model=ProjectRead, status_code=201)
async def create_project_endpoint(
    project_in: ProjectCreate,
    auth: AuthenticatedUser = Depends(require_manager),
    session: AsyncSession = Depends(get_session),
):
    """Create a new project (manager or admin)."""
    project = await create_project(session, project_in, auth.org_id, auth.user_id)
    return _to_read(project)


@router.get("/{project_id}", response_model=ProjectRead)
async def get_project_endpoint(
    project_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    project = await get_project_or_404(session, project_id, auth.org_id)
    return _to_read(project)


@router.get("/{project_id}/tasks", response_model=List[TaskRead])
async def list_project_tasks_endpoint(
    project_id: uuid.UUID,
    status: Optional[TaskStatus] = None,
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    """List a project's tasks, optionally filtered by status."""
    tasks = await list_project_tasks(session, project_id, auth.org_id, status)
    return [await enrich_task(session, t) for t in tasks]
