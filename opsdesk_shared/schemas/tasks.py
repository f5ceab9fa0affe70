"""Task-related Pydantic schemas for shared use across server and frontend codegen."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import UUID4, BaseModel, Field

from .common import TaskPriority, TaskStatus


# ---------------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------------

class ProjectCreate(BaseModel):
    name: str = Field(min_length=1)
    code: Optional[str] = Field(default=None, max_length=10)
    description: Optional[str] = None


class ProjectRead(BaseModel):
    id: UUID4
    org_id: UUID4
    name: str
    code: str
    description: Optional[str] = None
    graph_version: int
    created_at: datetime
    updated_at: datetime


# ---------------------------------------------------------------------------
# Task CRUD
# ---------------------------------------------------------------------------

class TaskCreate(BaseModel):
    project_id: UUID4
    title: str = Field(min_length=1)
    description: Optional[str] = None
    priority: TaskPriority = TaskPriority.MEDIUM
    assignee_id: Optional[UUID4] = None


class TaskRead(BaseModel):
    id: UUID4
    org_id: UUID4
    project_id: UUID4
    task_code: str
    title: str
    description: Optional[str] = None
    priority: TaskPriority
    status: TaskStatus
    block_reason: Optional[str] = None
    assignee_id: Optional[UUID4] = None
    created_by: Optional[UUID4] = None
    dependency_ids: List[UUID4] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class TaskStatusUpdate(BaseModel):
    """Request body for PATCH /tasks/{taskId}/status."""
    status: TaskStatus
    block_reason: Optional[str] = None


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

class DependencyAdd(BaseModel):
    """Request body for POST /tasks/{taskId}/dependencies.

    Ids are validated in the order given; the first failure aborts the batch.
    """
    depends_on_task_ids: List[UUID4] = Field(min_length=1)


class DependencyAddResult(BaseModel):
    task_id: UUID4
    added: List[UUID4]
    graph_version: int


class TaskRef(BaseModel):
    id: UUID4
    task_code: str
    title: str
    status: TaskStatus


class DependencyInfo(BaseModel):
    """Response body for GET /tasks/{taskId}/dependencies."""
    task_id: UUID4
    dependencies: List[TaskRef] = Field(default_factory=list)
    dependents: List[TaskRef] = Field(default_factory=list)
    is_blocked: bool
    blocking_tasks: List[TaskRef] = Field(default_factory=list)
