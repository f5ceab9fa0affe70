"""
LeaveApprovalEngine: applies approve/reject/cancel to a leave request.

The engine is pure: it validates against the in-memory aggregate it is
given, mutates it, and returns a LeaveTransition describing what changed.
Loading under a lock, persisting, the event log and notifications are the
leave service's job.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

import structlog

from opsdesk.core.errors import AlreadyResolved, NotCurrentApprover, NotRequester, OutOfOrder
from opsdesk.models.leave import LeaveRequest
from opsdesk.services.approval_chain import ApprovalChain
from opsdesk_shared.schemas.common import (
    TERMINAL_LEAVE_STATUSES,
    ApprovalStatus,
    LeaveDecision,
    LeaveStatus,
)

log = structlog.get_logger()


@dataclass(frozen=True)
class LeaveTransition:
    """State-change event produced by one engine action."""

    leave_id: uuid.UUID
    org_id: uuid.UUID
    requester_id: uuid.UUID
    actor_id: uuid.UUID
    action: str  # approve | reject | cancel
    old_status: LeaveStatus
    new_status: LeaveStatus
    old_level: int
    new_level: int
    total_levels: int
    acted_level: Optional[int] = None
    next_approver_id: Optional[uuid.UUID] = None

    @property
    def event_type(self) -> str:
        if self.action == "cancel":
            return "leave.cancelled"
        if self.new_status == LeaveStatus.REJECTED:
            return "leave.rejected"
        if self.new_status == LeaveStatus.APPROVED:
            return "leave.approved"
        return "leave.approval_advanced"

    def payload(self) -> dict:
        return {
            "leave_request_id": str(self.leave_id),
            "requester_id": str(self.requester_id),
            "actor_id": str(self.actor_id),
            "old_status": self.old_status.value,
            "new_status": self.new_status.value,
            "old_level": self.old_level,
            "new_level": self.new_level,
            "total_levels": self.total_levels,
            "acted_level": self.acted_level,
            "next_approver_id": str(self.next_approver_id) if self.next_approver_id else None,
        }


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LeaveApprovalEngine:
    def __init__(self, clock: Callable[[], datetime] = _utcnow):
        self._clock = clock

    def apply_decision(
        self,
        leave: LeaveRequest,
        acting_approver_id: uuid.UUID,
        decision: LeaveDecision,
        comments: Optional[str] = None,
    ) -> LeaveTransition:
        old_status = LeaveStatus(leave.status)
        if old_status in TERMINAL_LEAVE_STATUSES:
            raise AlreadyResolved(
                f"Leave request is already {old_status.value}",
                details={"status": old_status.value},
            )

        chain = ApprovalChain.of(leave)
        lagging = chain.unapproved_below_pointer()
        step = chain.current_step()
        if lagging or step is None or step.status != ApprovalStatus.PENDING.value:
            raise OutOfOrder(
                "Approval chain is inconsistent with its progress pointer",
                details={
                    "current_level": chain.current_level,
                    "total_levels": chain.total_levels,
                    "pending_levels": lagging,
                },
            )
        if step.approver_id != acting_approver_id:
            raise NotCurrentApprover(
                f"Level {step.approval_order} of {chain.total_levels} is awaiting another approver",
                details={
                    "current_level": step.approval_order,
                    "expected_approver_id": str(step.approver_id),
                },
            )

        now = self._clock()
        old_level = leave.current_approval_level
        step.comments = comments
        step.acted_at = now

        if decision == LeaveDecision.REJECT:
            # Rejection is terminal: the pointer stays put and later levels
            # remain pending, never visited.
            step.status = ApprovalStatus.REJECTED.value
            leave.status = LeaveStatus.REJECTED.value
            leave.decided_by = acting_approver_id
            leave.decided_at = now
            next_approver_id = None
        else:
            step.status = ApprovalStatus.APPROVED.value
            leave.current_approval_level = old_level + 1
            if leave.current_approval_level == leave.total_approval_levels:
                leave.status = LeaveStatus.APPROVED.value
                leave.decided_by = acting_approver_id
                leave.decided_at = now
                next_approver_id = None
            else:
                next_approver_id = chain.at_level(leave.current_approval_level + 1).approver_id

        transition = LeaveTransition(
            leave_id=leave.id,
            org_id=leave.org_id,
            requester_id=leave.user_id,
            actor_id=acting_approver_id,
            action=decision.value,
            old_status=old_status,
            new_status=LeaveStatus(leave.status),
            old_level=old_level,
            new_level=leave.current_approval_level,
            total_levels=leave.total_approval_levels,
            acted_level=step.approval_order,
            next_approver_id=next_approver_id,
        )
        log.info(
            "leave.decided",
            leave_id=str(leave.id),
            decision=decision.value,
            level=step.approval_order,
            status=leave.status,
        )
        return transition

    def cancel(self, leave: LeaveRequest, requester_id: uuid.UUID) -> LeaveTransition:
        """Withdraw a pending request. Untouched approvals stay pending but inert."""
        if leave.user_id != requester_id:
            raise NotRequester("Only the requester can cancel a leave request")
        old_status = LeaveStatus(leave.status)
        if old_status != LeaveStatus.PENDING:
            raise AlreadyResolved(
                f"Only pending leave requests can be cancelled (status is {old_status.value})",
                details={"status": old_status.value},
            )

        chain = ApprovalChain.of(leave)
        leave.status = LeaveStatus.CANCELLED.value
        log.info("leave.cancelled", leave_id=str(leave.id), level=leave.current_approval_level)
        return LeaveTransition(
            leave_id=leave.id,
            org_id=leave.org_id,
            requester_id=leave.user_id,
            actor_id=requester_id,
            action="cancel",
            old_status=old_status,
            new_status=LeaveStatus.CANCELLED,
            old_level=leave.current_approval_level,
            new_level=leave.current_approval_level,
            total_levels=leave.total_approval_levels,
            # Whoever was up next no longer needs to act.
            next_approver_id=chain.next_approver_id(),
        )
