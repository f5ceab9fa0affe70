"""Leave-request schemas shared by the server and API clients."""

from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional

from pydantic import UUID4, BaseModel, Field, model_validator

from .common import ApprovalStatus, HalfDaySession, LeaveDecision, LeaveStatus, LeaveType


# ---------------------------------------------------------------------------
# Submission
# ---------------------------------------------------------------------------

class LeaveCreate(BaseModel):
    """Request body for POST /leaves."""
    leave_type: LeaveType
    start_date: date
    end_date: date
    reason: str = Field(min_length=1)
    is_half_day: bool = False
    half_day_session: Optional[HalfDaySession] = None
    document_url: Optional[str] = None

    @model_validator(mode="after")
    def _check_range(self) -> "LeaveCreate":
        if self.end_date < self.start_date:
            raise ValueError("end_date must be on or after start_date")
        return self


# ---------------------------------------------------------------------------
# Decisions
# ---------------------------------------------------------------------------

class LeaveDecisionIn(BaseModel):
    """Request body for POST /leaves/{leaveId}/decision."""
    decision: LeaveDecision
    comments: Optional[str] = None


# ---------------------------------------------------------------------------
# Read models
# ---------------------------------------------------------------------------

class ApprovalRead(BaseModel):
    id: UUID4
    approver_id: UUID4
    approval_order: int
    status: ApprovalStatus
    comments: Optional[str] = None
    acted_at: Optional[datetime] = None


class LeaveRead(BaseModel):
    id: UUID4
    org_id: UUID4
    user_id: UUID4
    leave_type: LeaveType
    start_date: date
    end_date: date
    days_count: float
    reason: str
    is_half_day: bool = False
    half_day_session: Optional[HalfDaySession] = None
    document_url: Optional[str] = None
    status: LeaveStatus
    current_approval_level: int
    total_approval_levels: int
    next_approver_id: Optional[UUID4] = None
    approvals: List[ApprovalRead] = Field(default_factory=list)
    decided_by: Optional[UUID4] = None
    decided_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
