"""Leave request and its approval chain (one LeaveApproval row per level)."""

from datetime import date, datetime
from typing import List, Optional
import uuid

import sqlalchemy as sa
from sqlalchemy import CheckConstraint, UniqueConstraint
from sqlmodel import Field, Relationship, SQLModel

from .base import TimestampMixin, UUIDMixin


class LeaveRequest(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "leave_requests"
    __table_args__ = (
        CheckConstraint(
            "current_approval_level >= 0 AND current_approval_level <= total_approval_levels",
            name="approval_level_in_range",
        ),
    )

    org_id: uuid.UUID = Field(nullable=False, index=True)
    user_id: uuid.UUID = Field(foreign_key="users.id", nullable=False, index=True)
    leave_type: str = Field(nullable=False)
    start_date: date = Field(nullable=False)
    end_date: date = Field(nullable=False)
    days_count: float = Field(nullable=False)
    reason: str = Field(nullable=False)
    is_half_day: bool = Field(default=False, nullable=False)
    half_day_session: Optional[str] = None  # first_half | second_half
    document_url: Optional[str] = None
    status: str = Field(nullable=False, default="pending", index=True)  # pending | approved | rejected | cancelled
    current_approval_level: int = Field(default=0, nullable=False)
    total_approval_levels: int = Field(default=0, nullable=False)
    decided_by: Optional[uuid.UUID] = Field(default=None, foreign_key="users.id")
    decided_at: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
    # Compare-and-swap guard for the read-validate-write of a decision.
    version: int = Field(default=0, nullable=False)

    approvals: List["LeaveApproval"] = Relationship(
        back_populates="leave_request",
        sa_relationship_kwargs={
            "cascade": "all, delete-orphan",
            "order_by": "LeaveApproval.approval_order",
            "lazy": "selectin",
        },
    )


class LeaveApproval(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "leave_approvals"
    __table_args__ = (
        UniqueConstraint("leave_request_id", "approval_order", name="uq_leave_approval_order"),
        UniqueConstraint("leave_request_id", "approver_id", name="uq_leave_approval_approver"),
        CheckConstraint("approval_order >= 1", name="approval_order_positive"),
    )

    leave_request_id: uuid.UUID = Field(
        foreign_key="leave_requests.id", ondelete="CASCADE", nullable=False, index=True
    )
    approver_id: uuid.UUID = Field(foreign_key="users.id", nullable=False, index=True)
    approval_order: int = Field(nullable=False)  # 1-based level in the chain
    status: str = Field(nullable=False, default="pending")  # pending | approved | rejected
    comments: Optional[str] = None
    acted_at: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))

    leave_request: Optional[LeaveRequest] = Relationship(back_populates="approvals")
