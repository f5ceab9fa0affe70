"""
Shared fixtures: a throwaway SQLite database, seeded org members, and a
recording notification sink.
"""

import os
import tempfile

_DB_PATH = os.path.join(tempfile.gettempdir(), f"opsdesk_test_{os.getpid()}.db")
os.environ["OPSDESK_DATABASE_URL"] = f"sqlite+aiosqlite:///{_DB_PATH}"
os.environ["OPSDESK_NOTIFICATION_BACKEND"] = "log"
os.environ["OPSDESK_LOG_FORMAT"] = "text"

import uuid
from dataclasses import dataclass

import pytest
from httpx import ASGITransport, AsyncClient

from opsdesk.core.auth import create_jwt
from opsdesk.core.database import async_session_factory, drop_db, engine, init_db
from opsdesk.core.notifications import (
    RecordingNotificationSink,
    drain_notifications,
    set_notification_sink,
)
from opsdesk.models.user import User
from opsdesk_shared.schemas.common import Role


@dataclass
class Member:
    id: uuid.UUID
    email: str
    role: Role

    @property
    def headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_jwt(self.id, ORG_ID, self.role.value)}"}


ORG_ID = uuid.uuid4()


@dataclass
class Org:
    id: uuid.UUID
    admin_a: Member
    admin_b: Member
    manager: Member
    employee: Member
    outsider: Member


@pytest.fixture
async def db():
    await drop_db()
    await init_db()
    yield
    await drop_db()
    await engine.dispose()


@pytest.fixture
async def session(db):
    async with async_session_factory() as s:
        yield s


@pytest.fixture
def session_factory(db):
    return async_session_factory


@pytest.fixture(autouse=True)
async def sink():
    recording = RecordingNotificationSink()
    set_notification_sink(recording)
    yield recording
    await drain_notifications()
    set_notification_sink(None)


async def add_user(session, email: str, role: Role, manager_id=None, org_id=ORG_ID, is_active=True) -> Member:
    user = User(
        org_id=org_id,
        email=email,
        full_name=email.split("@")[0].title(),
        role=role.value,
        manager_id=manager_id,
        is_active=is_active,
    )
    session.add(user)
    await session.commit()
    return Member(id=user.id, email=email, role=role)


@pytest.fixture
async def org(session) -> Org:
    """Two admins, a manager, an employee reporting to the manager, and a
    second employee with no reporting line."""
    admin_a = await add_user(session, "a.admin@acme.dev", Role.ADMIN)
    admin_b = await add_user(session, "b.admin@acme.dev", Role.ADMIN)
    manager = await add_user(session, "manager@acme.dev", Role.MANAGER)
    employee = await add_user(session, "employee@acme.dev", Role.EMPLOYEE, manager_id=manager.id)
    outsider = await add_user(session, "outsider@acme.dev", Role.EMPLOYEE)
    return Org(
        id=ORG_ID,
        admin_a=admin_a,
        admin_b=admin_b,
        manager=manager,
        employee=employee,
        outsider=outsider,
    )


@pytest.fixture
async def client(db):
    from opsdesk.main import app

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
