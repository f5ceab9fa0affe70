"""Event model: append-only audit trail of workflow transitions."""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import _utcnow


class Event(SQLModel, table=True):
    __tablename__ = "events"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    org_id: uuid.UUID = Field(nullable=False, index=True)
    type: str = Field(nullable=False, index=True)  # e.g. leave.approval_advanced, task.dependencies_added
    actor_id: Optional[uuid.UUID] = Field(default=None)
    payload: dict = Field(default_factory=dict, sa_type=sa.JSON, nullable=False)
    timestamp: datetime = Field(
        default_factory=_utcnow,
        nullable=False,
        sa_type=sa.DateTime(timezone=True),
    )
