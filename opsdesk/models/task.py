"""Task model."""

from typing import Optional
import uuid

from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class Task(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "tasks"

    org_id: uuid.UUID = Field(nullable=False, index=True)
    project_id: uuid.UUID = Field(foreign_key="projects.id", nullable=False, index=True)
    task_code: str = Field(nullable=False, index=True)
    title: str = Field(nullable=False)
    description: Optional[str] = None
    priority: str = Field(nullable=False, default="medium")  # low | medium | high | urgent
    status: str = Field(nullable=False, default="todo")  # todo | in_progress | blocked | done | approved
    block_reason: Optional[str] = None  # only set while status is a manual "blocked"
    assignee_id: Optional[uuid.UUID] = Field(default=None, foreign_key="users.id")
    created_by: Optional[uuid.UUID] = Field(default=None, foreign_key="users.id")
