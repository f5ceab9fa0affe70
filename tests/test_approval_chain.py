"""
Unit tests for ApprovalChain: construction, level addressing, and the
contiguity rules on approval orders.
"""

from __future__ import annotations

import uuid

import pytest

from opsdesk.core.errors import InvalidApprovalChain
from opsdesk.models.leave import LeaveApproval
from opsdesk.services.approval_chain import ApprovalChain
from opsdesk_shared.schemas.common import ApprovalStatus


def _approvals(*orders: int) -> list[LeaveApproval]:
    return [
        LeaveApproval(approver_id=uuid.uuid4(), approval_order=o, status=ApprovalStatus.PENDING.value)
        for o in orders
    ]


class TestBuild:
    def test_orders_are_one_based_and_contiguous(self):
        ids = [uuid.uuid4() for _ in range(3)]
        rows = ApprovalChain.build(ids)
        assert [r.approval_order for r in rows] == [1, 2, 3]
        assert [r.approver_id for r in rows] == ids
        assert all(r.status == ApprovalStatus.PENDING.value for r in rows)

    def test_empty_chain(self):
        assert ApprovalChain.build([]) == []

    def test_duplicate_approver_rejected(self):
        a = uuid.uuid4()
        with pytest.raises(InvalidApprovalChain):
            ApprovalChain.build([a, uuid.uuid4(), a])


class TestConstruction:
    def test_sorted_by_order_not_position(self):
        rows = _approvals(3, 1, 2)
        chain = ApprovalChain(rows, current_level=0, total_levels=3)
        assert [a.approval_order for a in chain.approvals] == [1, 2, 3]

    def test_gap_in_orders_rejected(self):
        with pytest.raises(InvalidApprovalChain):
            ApprovalChain(_approvals(1, 3), current_level=0, total_levels=2)

    def test_count_mismatch_rejected(self):
        with pytest.raises(InvalidApprovalChain):
            ApprovalChain(_approvals(1, 2), current_level=0, total_levels=3)

    def test_level_out_of_range_rejected(self):
        with pytest.raises(InvalidApprovalChain):
            ApprovalChain(_approvals(1, 2), current_level=3, total_levels=2)


class TestNavigation:
    def test_current_step_is_level_plus_one(self):
        rows = _approvals(1, 2, 3)
        chain = ApprovalChain(rows, current_level=1, total_levels=3)
        assert chain.current_step() is rows[1]
        assert chain.next_approver_id() == rows[1].approver_id

    def test_complete_chain_has_no_current_step(self):
        chain = ApprovalChain(_approvals(1, 2), current_level=2, total_levels=2)
        assert chain.is_complete
        assert chain.current_step() is None
        assert chain.next_approver_id() is None

    def test_at_level_bounds(self):
        chain = ApprovalChain(_approvals(1, 2), current_level=0, total_levels=2)
        with pytest.raises(IndexError):
            chain.at_level(0)
        with pytest.raises(IndexError):
            chain.at_level(3)

    def test_unapproved_below_pointer(self):
        rows = _approvals(1, 2, 3)
        rows[0].status = ApprovalStatus.APPROVED.value
        chain = ApprovalChain(rows, current_level=2, total_levels=3)
        assert chain.unapproved_below_pointer() == [2]

    def test_statuses(self):
        rows = _approvals(1, 2)
        rows[0].status = ApprovalStatus.APPROVED.value
        chain = ApprovalChain(rows, current_level=1, total_levels=2)
        assert chain.statuses() == [ApprovalStatus.APPROVED, ApprovalStatus.PENDING]
