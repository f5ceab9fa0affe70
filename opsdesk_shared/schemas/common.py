from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class Role(str, Enum):
    EMPLOYEE = "employee"
    MANAGER = "manager"
    ADMIN = "admin"


# ---------------------------------------------------------------------------
# Leave
# ---------------------------------------------------------------------------

class LeaveType(str, Enum):
    SICK = "sick_leave"
    CASUAL = "casual_leave"
    EARNED = "earned_leave"
    COMP_OFF = "comp_off"
    PATERNITY_MATERNITY = "paternity_maternity"


class HalfDaySession(str, Enum):
    FIRST_HALF = "first_half"
    SECOND_HALF = "second_half"


class LeaveStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class ApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class LeaveDecision(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"


TERMINAL_LEAVE_STATUSES: frozenset["LeaveStatus"] = frozenset(
    {LeaveStatus.APPROVED, LeaveStatus.REJECTED, LeaveStatus.CANCELLED}
)


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------

class TaskStatus(str, Enum):
    TODO = "todo"
    IN_PROGRESS = "in_progress"
    BLOCKED = "blocked"
    DONE = "done"
    APPROVED = "approved"


class TaskPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


# A prerequisite in one of these states blocks every task that depends on it.
BLOCKING_TASK_STATUSES: frozenset["TaskStatus"] = frozenset(
    {TaskStatus.TODO, TaskStatus.IN_PROGRESS, TaskStatus.BLOCKED}
)

FINISHED_TASK_STATUSES: frozenset["TaskStatus"] = frozenset(
    {TaskStatus.DONE, TaskStatus.APPROVED}
)


# ---------------------------------------------------------------------------
# Error envelope
# ---------------------------------------------------------------------------

class ErrorBody(BaseModel):
    code: str
    message: str
    status: int
    details: Dict[str, Any] = Field(default_factory=dict)


class ErrorResponse(BaseModel):
    error: ErrorBody
    data: Optional[object] = None
