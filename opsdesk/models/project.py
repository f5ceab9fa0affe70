"""Project model. A project is the scope of one task-dependency graph."""

from typing import Optional
import uuid

from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class Project(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "projects"

    org_id: uuid.UUID = Field(nullable=False, index=True)
    name: str = Field(nullable=False)
    code: str = Field(nullable=False)  # task code prefix, e.g. "OPS"
    description: Optional[str] = None
    task_counter: int = Field(default=0, nullable=False)
    # Bumped by every committed dependency edit (compare-and-swap guard).
    graph_version: int = Field(default=0, nullable=False)
