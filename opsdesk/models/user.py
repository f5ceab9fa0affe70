"""User directory model.

Users are managed elsewhere; this table only carries what approval-policy
resolution needs: role, reporting line and whether the account is active.
"""

from typing import Optional
import uuid

from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class User(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "users"

    org_id: uuid.UUID = Field(nullable=False, index=True)
    email: str = Field(nullable=False, unique=True)
    full_name: str = Field(nullable=False)
    role: str = Field(nullable=False, default="employee")  # employee | manager | admin
    manager_id: Optional[uuid.UUID] = Field(default=None, foreign_key="users.id")
    is_active: bool = Field(default=True, nullable=False)
