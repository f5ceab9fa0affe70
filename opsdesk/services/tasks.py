"""
Task service layer: projects, tasks, status changes and dependencies.

Handles:
- Project and task creation (task codes are ``<PROJECT-CODE>-<n>``)
- Status changes, including manual blocking and unblock notifications
- Dependency edits under a per-project lock + graph_version compare-and-swap
- Dependency info and enrichment of task data for API responses
"""

from __future__ import annotations

import re
import uuid
from typing import Optional, Sequence

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from opsdesk.core.concurrency import compare_and_bump, run_in_transaction
from opsdesk.core.errors import (
    InvalidTaskTransition,
    PermissionDenied,
    ProjectNotFound,
    TaskNotFound,
    TaskStillBlocked,
)
from opsdesk.core.events import record_event
from opsdesk.core.notifications import TASK_UNBLOCKED, dispatch_notification
from opsdesk.models.dependency import TaskDependency
from opsdesk.models.project import Project
from opsdesk.models.task import Task
from opsdesk.services.blocking import BlockingStateComputer
from opsdesk.services.dependency_checker import DependencyIntegrityChecker
from opsdesk.services.dependency_graph import TaskDependencyGraph
from opsdesk_shared.schemas.common import FINISHED_TASK_STATUSES, Role, TaskStatus
from opsdesk_shared.schemas.tasks import (
    DependencyInfo,
    ProjectCreate,
    TaskCreate,
    TaskRead,
    TaskRef,
    TaskStatusUpdate,
)

log = structlog.get_logger()

checker = DependencyIntegrityChecker()
blocking = BlockingStateComputer()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def get_project_or_404(
    session: AsyncSession,
    project_id: uuid.UUID,
    org_id: uuid.UUID,
    *,
    for_update: bool = False,
) -> Project:
    stmt = select(Project).where(Project.id == project_id).execution_options(populate_existing=True)
    if for_update:
        stmt = stmt.with_for_update()
    project = (await session.execute(stmt)).scalar_one_or_none()
    if not project or project.org_id != org_id:
        raise ProjectNotFound("Project not found", details={"project_id": str(project_id)})
    return project


async def get_task_or_404(
    session: AsyncSession,
    task_id: uuid.UUID,
    org_id: uuid.UUID,
    *,
    for_update: bool = False,
) -> Task:
    stmt = select(Task).where(Task.id == task_id).execution_options(populate_existing=True)
    if for_update:
        stmt = stmt.with_for_update()
    task = (await session.execute(stmt)).scalar_one_or_none()
    if not task or task.org_id != org_id:
        raise TaskNotFound("Task not found", details={"task_id": str(task_id)})
    return task


def _ensure_can_edit(task: Task, actor_id: uuid.UUID, role: Role) -> None:
    if role in (Role.MANAGER, Role.ADMIN) or task.assignee_id == actor_id:
        return
    raise PermissionDenied(
        "Only managers, admins or the task assignee can change this task",
        details={"task_id": str(task.id)},
    )


def derive_project_code(name: str) -> str:
    words = re.findall(r"[A-Za-z0-9]+", name)
    if not words:
        return "PRJ"
    if len(words) == 1:
        return words[0][:4].upper()
    return "".join(w[0] for w in words)[:10].upper()


def to_task_ref(task: Task) -> TaskRef:
    return TaskRef(id=task.id, task_code=task.task_code, title=task.title, status=task.status)


async def _get_dependency_ids(session: AsyncSession, task_id: uuid.UUID) -> list[uuid.UUID]:
    result = await session.execute(
        select(TaskDependency.depends_on_task_id).where(TaskDependency.task_id == task_id)
    )
    return [row[0] for row in result.all()]


async def enrich_task(session: AsyncSession, task: Task) -> TaskRead:
    """Convert a Task ORM object to a TaskRead with its dependency ids."""
    dependency_ids = await _get_dependency_ids(session, task.id)
    return TaskRead(
        id=task.id,
        org_id=task.org_id,
        project_id=task.project_id,
        task_code=task.task_code,
        title=task.title,
        description=task.description,
        priority=task.priority,
        status=task.status,
        block_reason=task.block_reason,
        assignee_id=task.assignee_id,
        created_by=task.created_by,
        dependency_ids=dependency_ids,
        created_at=task.created_at,
        updated_at=task.updated_at,
    )


def _newly_unblocked(graph: TaskDependencyGraph, candidate_ids: Sequence[uuid.UUID]) -> list[Task]:
    return [
        graph.task(d)
        for d in candidate_ids
        if d in graph and not blocking.compute_blocking(d, graph).is_blocked
    ]


def _notify_unblocked(tasks: Sequence[Task], cause: dict) -> None:
    for task in tasks:
        dispatch_notification(
            TASK_UNBLOCKED,
            [task.assignee_id],
            {
                "task_id": str(task.id),
                "task_code": task.task_code,
                "title": task.title,
                **cause,
            },
        )


# ---------------------------------------------------------------------------
# Projects and tasks
# ---------------------------------------------------------------------------


async def create_project(
    session: AsyncSession,
    project_in: ProjectCreate,
    org_id: uuid.UUID,
    actor_id: uuid.UUID,
) -> Project:
    project = Project(
        org_id=org_id,
        name=project_in.name,
        code=(project_in.code or derive_project_code(project_in.name)).upper(),
        description=project_in.description,
    )
    session.add(project)
    await session.flush()
    record_event(
        session,
        org_id,
        "project.created",
        {"project_id": project.id, "code": project.code},
        actor_id=actor_id,
    )
    await session.commit()
    log.info("project.created", project_id=str(project.id), code=project.code)
    return project


async def create_task(
    session: AsyncSession,
    task_in: TaskCreate,
    org_id: uuid.UUID,
    actor_id: uuid.UUID,
) -> Task:
    async def _op(session: AsyncSession) -> Task:
        project = await get_project_or_404(session, task_in.project_id, org_id, for_update=True)
        project.task_counter += 1
        task = Task(
            org_id=org_id,
            project_id=project.id,
            task_code=f"{project.code}-{project.task_counter}",
            title=task_in.title,
            description=task_in.description,
            priority=task_in.priority.value,
            status=TaskStatus.TODO.value,
            assignee_id=task_in.assignee_id,
            created_by=actor_id,
        )
        session.add(project)
        session.add(task)
        await session.flush()
        record_event(
            session,
            org_id,
            "task.created",
            {"task_id": task.id, "task_code": task.task_code, "project_id": project.id},
            actor_id=actor_id,
        )
        return task

    task = await run_in_transaction(session, _op, label="task.create")
    log.info("task.created", task_id=str(task.id), task_code=task.task_code)
    return task


# ---------------------------------------------------------------------------
# Status changes
# ---------------------------------------------------------------------------


async def update_task_status(
    session: AsyncSession,
    task_id: uuid.UUID,
    status_in: TaskStatusUpdate,
    org_id: uuid.UUID,
    actor_id: uuid.UUID,
    role: Role,
) -> Task:
    """Move a task to a new status.

    Manual ``blocked`` needs a reason. A manually blocked task cannot resume
    while its prerequisites are unfinished. Finishing a task notifies the
    assignees of dependents that have nothing left to wait on.
    """

    async def _op(session: AsyncSession) -> tuple[Task, list[Task]]:
        task = await get_task_or_404(session, task_id, org_id, for_update=True)
        _ensure_can_edit(task, actor_id, role)

        old_status = TaskStatus(task.status)
        new_status = status_in.status
        reason = (status_in.block_reason or "").strip()

        if new_status == TaskStatus.BLOCKED and not reason:
            raise InvalidTaskTransition(
                "A reason is required to block a task",
                details={"task_id": str(task.id)},
            )

        graph = await TaskDependencyGraph.load(session, task.project_id)
        if old_status == TaskStatus.BLOCKED and new_status == TaskStatus.IN_PROGRESS:
            state = blocking.compute_blocking(task.id, graph)
            if state.is_blocked:
                raise TaskStillBlocked(
                    "Task still has unfinished prerequisites",
                    details={"blocking_tasks": [t.task_code for t in state.blocking_tasks]},
                )

        task.status = new_status.value
        task.block_reason = reason if new_status == TaskStatus.BLOCKED else None
        session.add(task)
        await session.flush()

        unblocked: list[Task] = []
        if new_status in FINISHED_TASK_STATUSES and old_status not in FINISHED_TASK_STATUSES:
            unblocked = _newly_unblocked(graph, graph.dependents(task.id))

        record_event(
            session,
            org_id,
            "task.status_changed",
            {
                "task_id": task.id,
                "old_status": old_status,
                "new_status": new_status,
                "unblocked_task_ids": [t.id for t in unblocked],
            },
            actor_id=actor_id,
        )
        return task, unblocked

    task, unblocked = await run_in_transaction(session, _op, label="task.status")
    log.info("task.status_changed", task_id=str(task.id), status=task.status, unblocked=len(unblocked))
    _notify_unblocked(unblocked, {"prerequisite_id": str(task.id), "prerequisite_code": task.task_code})
    return task


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


async def add_dependencies(
    session: AsyncSession,
    task_id: uuid.UUID,
    depends_on_task_ids: Sequence[uuid.UUID],
    org_id: uuid.UUID,
    actor_id: uuid.UUID,
    role: Role,
) -> tuple[list[uuid.UUID], int]:
    """Add every edge ``task -> prerequisite`` or none of them.

    Each id is checked in the order given against the graph with the earlier
    ids of the batch already staged. Returns the added ids and the new
    graph version.
    """

    async def _op(session: AsyncSession) -> tuple[list[uuid.UUID], int]:
        task = await get_task_or_404(session, task_id, org_id)
        _ensure_can_edit(task, actor_id, role)
        project = await get_project_or_404(session, task.project_id, org_id, for_update=True)
        graph = await TaskDependencyGraph.load(session, project.id)

        for prerequisite_id in depends_on_task_ids:
            checker.validate_add(graph, task.id, prerequisite_id)
            graph.add_edge(task.id, prerequisite_id)

        for prerequisite_id in depends_on_task_ids:
            session.add(
                TaskDependency(
                    project_id=project.id,
                    task_id=task.id,
                    depends_on_task_id=prerequisite_id,
                    created_by=actor_id,
                )
            )
        version = await compare_and_bump(session, project, "graph_version")
        record_event(
            session,
            org_id,
            "task.dependencies_added",
            {"task_id": task.id, "depends_on_task_ids": list(depends_on_task_ids), "graph_version": version},
            actor_id=actor_id,
        )
        return list(depends_on_task_ids), version

    added, version = await run_in_transaction(session, _op, label="task.dependencies.add")
    log.info("task.dependencies_added", task_id=str(task_id), count=len(added), graph_version=version)
    return added, version


async def remove_dependency(
    session: AsyncSession,
    task_id: uuid.UUID,
    depends_on_task_id: uuid.UUID,
    org_id: uuid.UUID,
    actor_id: uuid.UUID,
    role: Role,
) -> int:
    async def _op(session: AsyncSession) -> tuple[int, list[Task]]:
        task = await get_task_or_404(session, task_id, org_id)
        _ensure_can_edit(task, actor_id, role)
        project = await get_project_or_404(session, task.project_id, org_id, for_update=True)
        graph = await TaskDependencyGraph.load(session, project.id)

        checker.validate_remove(graph, task.id, depends_on_task_id)
        was_blocked = blocking.compute_blocking(task.id, graph).is_blocked
        graph.remove_edge(task.id, depends_on_task_id)
        unblocked = _newly_unblocked(graph, [task.id]) if was_blocked else []

        result = await session.execute(
            select(TaskDependency).where(
                TaskDependency.task_id == task.id,
                TaskDependency.depends_on_task_id == depends_on_task_id,
            )
        )
        await session.delete(result.scalar_one())
        version = await compare_and_bump(session, project, "graph_version")
        record_event(
            session,
            org_id,
            "task.dependency_removed",
            {"task_id": task.id, "depends_on_task_id": depends_on_task_id, "graph_version": version},
            actor_id=actor_id,
        )
        return version, unblocked

    version, unblocked = await run_in_transaction(session, _op, label="task.dependencies.remove")
    log.info("task.dependency_removed", task_id=str(task_id), graph_version=version)
    _notify_unblocked(unblocked, {"removed_dependency_id": str(depends_on_task_id)})
    return version


async def get_dependency_info(
    session: AsyncSession, task_id: uuid.UUID, org_id: uuid.UUID
) -> DependencyInfo:
    """Point-in-time read of a task's edges and its derived blocking state."""
    task = await get_task_or_404(session, task_id, org_id)
    graph = await TaskDependencyGraph.load(session, task.project_id)
    state = blocking.compute_blocking(task.id, graph)
    return DependencyInfo(
        task_id=task.id,
        dependencies=[to_task_ref(graph.task(p)) for p in graph.prerequisites(task.id)],
        dependents=[to_task_ref(graph.task(d)) for d in graph.dependents(task.id)],
        is_blocked=state.is_blocked,
        blocking_tasks=[to_task_ref(t) for t in state.blocking_tasks],
    )


async def list_project_tasks(
    session: AsyncSession, project_id: uuid.UUID, org_id: uuid.UUID, status: Optional[TaskStatus] = None
) -> list[Task]:
    await get_project_or_404(session, project_id, org_id)
    stmt = select(Task).where(Task.project_id == project_id)
    if status:
        stmt = stmt.where(Task.status == status.value)
    result = await session.execute(stmt.order_by(Task.created_at))
    return list(result.scalars().all())
