"""
ApprovalChain: the ordered sign-offs of one leave request and its pointer.

Levels are addressed by the explicit ``approval_order`` field (1-based),
never by list position. A chain is only constructed from rows whose orders
are exactly 1..total_approval_levels; anything else means the stored
aggregate is corrupt and is surfaced as InvalidApprovalChain.
"""

from __future__ import annotations

import uuid
from typing import Optional, Sequence

from opsdesk.core.errors import InvalidApprovalChain
from opsdesk.models.leave import LeaveApproval, LeaveRequest
from opsdesk_shared.schemas.common import ApprovalStatus


class ApprovalChain:
    def __init__(
        self,
        approvals: Sequence[LeaveApproval],
        current_level: int,
        total_levels: int,
    ):
        ordered = sorted(approvals, key=lambda a: a.approval_order)
        orders = [a.approval_order for a in ordered]
        if orders != list(range(1, total_levels + 1)):
            raise InvalidApprovalChain(
                "Approval orders must be contiguous from 1 to the number of levels",
                details={"orders": orders, "total_levels": total_levels},
            )
        if not 0 <= current_level <= total_levels:
            raise InvalidApprovalChain(
                "Current approval level is out of range",
                details={"current_level": current_level, "total_levels": total_levels},
            )
        self._approvals = tuple(ordered)
        self.current_level = current_level
        self.total_levels = total_levels

    @classmethod
    def of(cls, leave: LeaveRequest) -> "ApprovalChain":
        return cls(leave.approvals, leave.current_approval_level, leave.total_approval_levels)

    @staticmethod
    def build(approver_ids: Sequence[uuid.UUID]) -> list[LeaveApproval]:
        """Create the pending approval rows for a new request, levels 1..n."""
        if len(set(approver_ids)) != len(approver_ids):
            raise InvalidApprovalChain(
                "An approver may appear only once in a chain",
                details={"approver_ids": [str(a) for a in approver_ids]},
            )
        return [
            LeaveApproval(
                approver_id=approver_id,
                approval_order=order,
                status=ApprovalStatus.PENDING.value,
            )
            for order, approver_id in enumerate(approver_ids, start=1)
        ]

    @property
    def approvals(self) -> tuple[LeaveApproval, ...]:
        return self._approvals

    @property
    def is_complete(self) -> bool:
        return self.current_level == self.total_levels

    def at_level(self, order: int) -> LeaveApproval:
        if not 1 <= order <= self.total_levels:
            raise IndexError(f"No approval level {order} in a chain of {self.total_levels}")
        return self._approvals[order - 1]

    def current_step(self) -> Optional[LeaveApproval]:
        """The actionable approval (order == current_level + 1), if any."""
        if self.is_complete:
            return None
        return self.at_level(self.current_level + 1)

    def next_approver_id(self) -> Optional[uuid.UUID]:
        step = self.current_step()
        return step.approver_id if step is not None else None

    def unapproved_below_pointer(self) -> list[int]:
        """Levels the pointer has passed that are not approved.

        Always empty for a consistent aggregate.
        """
        return [
            a.approval_order
            for a in self._approvals[: self.current_level]
            if a.status != ApprovalStatus.APPROVED.value
        ]

    def statuses(self) -> list[ApprovalStatus]:
        return [ApprovalStatus(a.status) for a in self._approvals]
