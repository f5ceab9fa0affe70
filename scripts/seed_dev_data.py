#!/usr/bin/env python3
"""Seed a development database with an organization's users, a project and tasks.

Usage:
    python scripts/seed_dev_data.py

Uses OPSDESK_DATABASE_URL (or the localhost default). Prints a session token
per seeded user so the API can be exercised with curl.
"""

import asyncio
import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from opsdesk.core.auth import create_jwt
from opsdesk.core.config import get_settings
from opsdesk.core.database import get_session_context, init_db
from opsdesk.core.logging_setup import configure_logging
from opsdesk.core.notifications import close_notification_sink
from opsdesk.models.project import Project
from opsdesk.models.user import User
from opsdesk.services.tasks import add_dependencies, create_project, create_task
from opsdesk_shared.schemas.common import Role
from opsdesk_shared.schemas.tasks import ProjectCreate, TaskCreate

# Deterministic UUIDs for reproducibility
ORG_ID = uuid.UUID("00000000-0000-4000-8000-000000000001")
ADMIN_ID = uuid.UUID("00000000-0000-4000-8000-000000000010")
MANAGER_ID = uuid.UUID("00000000-0000-4000-8000-000000000011")
EMPLOYEE_ID = uuid.UUID("00000000-0000-4000-8000-000000000012")

USERS = [
    (ADMIN_ID, "admin@acme.dev", "Ada Admin", Role.ADMIN, None),
    (MANAGER_ID, "manager@acme.dev", "Max Manager", Role.MANAGER, None),
    (EMPLOYEE_ID, "employee@acme.dev", "Eve Employee", Role.EMPLOYEE, MANAGER_ID),
]

TASKS = [
    ("Provision staging cluster", None),
    ("Migrate billing database", 0),
    ("Cut over DNS", 1),
]


async def _seed_users(session: AsyncSession) -> None:
    for user_id, email, name, role, manager_id in USERS:
        if await session.get(User, user_id):
            continue
        session.add(
            User(
                id=user_id,
                org_id=ORG_ID,
                email=email,
                full_name=name,
                role=role.value,
                manager_id=manager_id,
            )
        )
    await session.commit()


async def _seed_project(session: AsyncSession) -> Project:
    project = await create_project(
        session,
        ProjectCreate(name="Platform Operations", code="OPS"),
        ORG_ID,
        MANAGER_ID,
    )
    task_ids: list[uuid.UUID] = []
    for title, depends_on in TASKS:
        task = await create_task(
            session,
            TaskCreate(project_id=project.id, title=title, assignee_id=EMPLOYEE_ID),
            ORG_ID,
            MANAGER_ID,
        )
        task_ids.append(task.id)
        if depends_on is not None:
            await add_dependencies(
                session, task.id, [task_ids[depends_on]], ORG_ID, MANAGER_ID, Role.MANAGER
            )
    return project


async def seed():
    settings = get_settings()
    configure_logging(settings.log_level, "text")
    await init_db()

    async with get_session_context() as session:
        await _seed_users(session)
        project = await _seed_project(session)

    await close_notification_sink()

    print(f"Seeded project {project.code} ({project.id})")
    for user_id, email, _, role, _ in USERS:
        print(f"{email} [{role.value}]: Bearer {create_jwt(user_id, ORG_ID, role.value)}")


if __name__ == "__main__":
    asyncio.run(seed())
