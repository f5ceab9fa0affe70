"""
Integration tests for the leave service on a SQLite database.

Tests cover:
- Approval-policy resolution per requester role
- Day counting, half-day rules and overlap rejection
- Submission, decisions and cancellation with events and notifications
- Lost version swaps and the transaction retry loop
"""

from __future__ import annotations

import uuid
from datetime import date

import pytest
from sqlmodel import select

from opsdesk.core.concurrency import compare_and_bump, run_in_transaction
from opsdesk.core.errors import (
    AlreadyResolved,
    ConcurrentModification,
    InvalidLeaveRequest,
    NotCurrentApprover,
    NotRequester,
    PermissionDenied,
)
from opsdesk.core.events import list_events
from opsdesk.core.notifications import drain_notifications
from opsdesk.models.leave import LeaveApproval, LeaveRequest
from opsdesk.models.user import User
from opsdesk.services.leave_engine import LeaveApprovalEngine
from opsdesk.services.leaves import (
    cancel_leave,
    count_leave_days,
    decide_leave,
    get_leave_or_404,
    list_leaves,
    list_pending_approvals,
    resolve_approval_policy,
    submit_leave,
    to_leave_read,
)
from opsdesk_shared.schemas.common import HalfDaySession, LeaveDecision, LeaveStatus, LeaveType, Role
from opsdesk_shared.schemas.leaves import LeaveCreate

from .conftest import add_user

MONDAY = date(2026, 11, 2)
FRIDAY = date(2026, 11, 6)
SUNDAY = date(2026, 11, 8)


def leave_in(start=MONDAY, end=FRIDAY, **kwargs) -> LeaveCreate:
    return LeaveCreate(
        leave_type=kwargs.pop("leave_type", LeaveType.CASUAL),
        start_date=start,
        end_date=end,
        reason=kwargs.pop("reason", "Family visit"),
        **kwargs,
    )


# ---------------------------------------------------------------------------
# Day counting
# ---------------------------------------------------------------------------


class TestDayCount:
    def test_sundays_excluded(self):
        assert count_leave_days(MONDAY, SUNDAY) == 6

    def test_weekdays(self):
        assert count_leave_days(MONDAY, FRIDAY) == 5

    def test_sunday_only(self):
        assert count_leave_days(SUNDAY, SUNDAY) == 0


# ---------------------------------------------------------------------------
# Policy
# ---------------------------------------------------------------------------


class TestApprovalPolicy:
    async def _chain(self, session, member):
        user = await session.get(User, member.id)
        return await resolve_approval_policy(session, user)

    async def test_employee_goes_to_manager_then_admins(self, session, org):
        chain = await self._chain(session, org.employee)
        assert chain == [org.manager.id, org.admin_a.id, org.admin_b.id]

    async def test_manager_goes_to_admins(self, session, org):
        assert await self._chain(session, org.manager) == [org.admin_a.id, org.admin_b.id]

    async def test_admin_never_approves_own_leave(self, session, org):
        assert await self._chain(session, org.admin_a) == [org.admin_b.id]

    async def test_employee_without_manager(self, session, org):
        assert await self._chain(session, org.outsider) == [org.admin_a.id, org.admin_b.id]

    async def test_inactive_admin_skipped(self, session, org):
        await add_user(session, "0.retired@acme.dev", Role.ADMIN, is_active=False)
        assert await self._chain(session, org.manager) == [org.admin_a.id, org.admin_b.id]

    async def test_admins_from_other_orgs_ignored(self, session, org):
        await add_user(session, "0.elsewhere@acme.dev", Role.ADMIN, org_id=uuid.uuid4())
        assert await self._chain(session, org.manager) == [org.admin_a.id, org.admin_b.id]


# ---------------------------------------------------------------------------
# Submission
# ---------------------------------------------------------------------------


class TestSubmitLeave:
    async def test_builds_full_chain(self, session, org, sink):
        leave = await submit_leave(session, org.employee.id, org.id, leave_in())
        assert leave.status == LeaveStatus.PENDING.value
        assert leave.days_count == 5
        assert leave.current_approval_level == 0
        assert leave.total_approval_levels == 3
        assert [a.approval_order for a in leave.approvals] == [1, 2, 3]
        assert [a.approver_id for a in leave.approvals] == [org.manager.id, org.admin_a.id, org.admin_b.id]

        await drain_notifications()
        submitted = sink.of_type("leave.submitted")
        assert len(submitted) == 1
        assert submitted[0][1] == [org.manager.id]

        events = await list_events(session, org.id, "leave.submitted")
        assert len(events) == 1
        assert events[0].payload["leave_request_id"] == str(leave.id)

    async def test_half_day(self, session, org):
        leave = await submit_leave(
            session,
            org.employee.id,
            org.id,
            leave_in(MONDAY, MONDAY, is_half_day=True, half_day_session=HalfDaySession.FIRST_HALF),
        )
        assert leave.days_count == 0.5
        assert leave.half_day_session == "first_half"

    async def test_half_day_needs_session(self, session, org):
        with pytest.raises(InvalidLeaveRequest):
            await submit_leave(session, org.employee.id, org.id, leave_in(MONDAY, MONDAY, is_half_day=True))

    async def test_half_day_single_date_only(self, session, org):
        with pytest.raises(InvalidLeaveRequest):
            await submit_leave(
                session,
                org.employee.id,
                org.id,
                leave_in(is_half_day=True, half_day_session=HalfDaySession.SECOND_HALF),
            )

    async def test_sunday_only_rejected(self, session, org):
        with pytest.raises(InvalidLeaveRequest):
            await submit_leave(session, org.employee.id, org.id, leave_in(SUNDAY, SUNDAY))

    async def test_overlap_rejected(self, session, org):
        await submit_leave(session, org.employee.id, org.id, leave_in())
        with pytest.raises(InvalidLeaveRequest) as exc_info:
            await submit_leave(session, org.employee.id, org.id, leave_in(FRIDAY, SUNDAY))
        assert "conflicting_leave_request_id" in exc_info.value.details

    async def test_cancelled_leave_frees_dates(self, session, org):
        first = await submit_leave(session, org.employee.id, org.id, leave_in())
        await cancel_leave(session, first.id, org.employee.id, org.id)
        second = await submit_leave(session, org.employee.id, org.id, leave_in())
        assert second.status == LeaveStatus.PENDING.value

    async def test_empty_chain_auto_approves(self, session, sink):
        solo_org = uuid.uuid4()
        solo = await add_user(session, "solo@tiny.dev", Role.ADMIN, org_id=solo_org)
        leave = await submit_leave(session, solo.id, solo_org, leave_in())
        assert leave.status == LeaveStatus.APPROVED.value
        assert leave.total_approval_levels == 0
        assert leave.decided_at is not None
        await drain_notifications()
        assert sink.of_type("leave.submitted") == []

    async def test_unknown_requester(self, session, org):
        with pytest.raises(PermissionDenied):
            await submit_leave(session, uuid.uuid4(), org.id, leave_in())


# ---------------------------------------------------------------------------
# Decisions
# ---------------------------------------------------------------------------


class TestDecideLeave:
    async def test_walks_chain_to_approved(self, session, org, sink):
        leave = await submit_leave(session, org.employee.id, org.id, leave_in())

        leave = await decide_leave(session, leave.id, org.manager.id, org.id, LeaveDecision.APPROVE)
        assert leave.current_approval_level == 1
        assert to_leave_read(leave).next_approver_id == org.admin_a.id

        await decide_leave(session, leave.id, org.admin_a.id, org.id, LeaveDecision.APPROVE)
        leave = await decide_leave(
            session, leave.id, org.admin_b.id, org.id, LeaveDecision.APPROVE, comments="Approved"
        )
        assert leave.status == LeaveStatus.APPROVED.value
        assert leave.current_approval_level == 3
        assert leave.decided_by == org.admin_b.id
        assert leave.version == 3

        await drain_notifications()
        advanced = sink.of_type("leave.approval_advanced")
        assert [n[1] for n in advanced] == [
            [org.admin_a.id, org.employee.id],
            [org.admin_b.id, org.employee.id],
        ]
        approved = sink.of_type("leave.approved")
        assert approved[0][1] == [org.employee.id]

        events = await list_events(session, org.id)
        assert [e.type for e in events] == [
            "leave.submitted",
            "leave.approval_advanced",
            "leave.approval_advanced",
            "leave.approved",
        ]

    async def test_reject_stops_chain(self, session, org, sink):
        leave = await submit_leave(session, org.employee.id, org.id, leave_in())
        leave = await decide_leave(
            session, leave.id, org.manager.id, org.id, LeaveDecision.REJECT, comments="Release week"
        )
        assert leave.status == LeaveStatus.REJECTED.value
        assert [a.status for a in leave.approvals] == ["rejected", "pending", "pending"]

        with pytest.raises(AlreadyResolved):
            await decide_leave(session, leave.id, org.admin_a.id, org.id, LeaveDecision.APPROVE)

        await drain_notifications()
        assert sink.of_type("leave.rejected")[0][1] == [org.employee.id]

    async def test_wrong_approver_changes_nothing(self, session, org):
        leave = await submit_leave(session, org.employee.id, org.id, leave_in())
        leave_id = leave.id
        with pytest.raises(NotCurrentApprover):
            await decide_leave(session, leave_id, org.admin_a.id, org.id, LeaveDecision.APPROVE)

        leave = await get_leave_or_404(session, leave_id, org.id)
        assert leave.current_approval_level == 0
        assert leave.version == 0
        assert all(a.status == "pending" for a in leave.approvals)
        assert await list_events(session, org.id, "leave.approval_advanced") == []

    async def test_double_submit_by_same_approver(self, session, org):
        leave = await submit_leave(session, org.employee.id, org.id, leave_in())
        leave_id = leave.id
        await decide_leave(session, leave_id, org.manager.id, org.id, LeaveDecision.APPROVE)
        with pytest.raises(NotCurrentApprover):
            await decide_leave(session, leave_id, org.manager.id, org.id, LeaveDecision.APPROVE)
        leave = await get_leave_or_404(session, leave_id, org.id)
        assert leave.current_approval_level == 1

    async def test_pending_approvals_follow_pointer(self, session, org):
        leave = await submit_leave(session, org.employee.id, org.id, leave_in())
        assert [l.id for l in await list_pending_approvals(session, org.id, org.manager.id)] == [leave.id]
        assert await list_pending_approvals(session, org.id, org.admin_a.id) == []

        await decide_leave(session, leave.id, org.manager.id, org.id, LeaveDecision.APPROVE)
        assert await list_pending_approvals(session, org.id, org.manager.id) == []
        assert [l.id for l in await list_pending_approvals(session, org.id, org.admin_a.id)] == [leave.id]


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------


class TestCancelLeave:
    async def test_requester_cancels(self, session, org, sink):
        leave = await submit_leave(session, org.employee.id, org.id, leave_in())
        leave = await cancel_leave(session, leave.id, org.employee.id, org.id)
        assert leave.status == LeaveStatus.CANCELLED.value
        assert all(a.status == "pending" for a in leave.approvals)

        await drain_notifications()
        assert sink.of_type("leave.cancelled")[0][1] == [org.manager.id]

    async def test_other_user_cannot_cancel(self, session, org):
        leave = await submit_leave(session, org.employee.id, org.id, leave_in())
        with pytest.raises(NotRequester):
            await cancel_leave(session, leave.id, org.manager.id, org.id)

    async def test_list_filters(self, session, org):
        mine = await submit_leave(session, org.employee.id, org.id, leave_in())
        await submit_leave(session, org.manager.id, org.id, leave_in())
        await cancel_leave(session, mine.id, org.employee.id, org.id)

        assert [l.id for l in await list_leaves(session, org.id, user_id=org.employee.id)] == [mine.id]
        cancelled = await list_leaves(session, org.id, status=LeaveStatus.CANCELLED)
        assert [l.id for l in cancelled] == [mine.id]
        assert len(await list_leaves(session, org.id)) == 2


# ---------------------------------------------------------------------------
# Concurrency
# ---------------------------------------------------------------------------


class TestConcurrency:
    async def test_stale_decision_loses_version_swap(self, session_factory, org):
        async with session_factory() as setup:
            leave = await submit_leave(setup, org.employee.id, org.id, leave_in())

        async with session_factory() as stale, session_factory() as winner:
            stale_leave = await get_leave_or_404(stale, leave.id, org.id)

            await decide_leave(winner, leave.id, org.manager.id, org.id, LeaveDecision.APPROVE)

            LeaveApprovalEngine().apply_decision(stale_leave, org.manager.id, LeaveDecision.APPROVE)
            with pytest.raises(ConcurrentModification):
                await compare_and_bump(stale, stale_leave)
            await stale.rollback()

        async with session_factory() as check:
            fresh = await get_leave_or_404(check, leave.id, org.id)
            assert fresh.current_approval_level == 1
            assert fresh.version == 1

    async def test_retry_rereads_after_conflict(self, session):
        calls = []

        async def op(s):
            calls.append(1)
            if len(calls) == 1:
                raise ConcurrentModification("lost the race")
            return "ok"

        assert await run_in_transaction(session, op, attempts=3) == "ok"
        assert len(calls) == 2

    async def test_retry_budget_exhausted(self, session):
        calls = []

        async def op(s):
            calls.append(1)
            raise ConcurrentModification("always losing")

        with pytest.raises(ConcurrentModification):
            await run_in_transaction(session, op, attempts=3)
        assert len(calls) == 3

    async def test_validation_errors_are_not_retried(self, session):
        calls = []

        async def op(s):
            calls.append(1)
            raise NotCurrentApprover("nope")

        with pytest.raises(NotCurrentApprover):
            await run_in_transaction(session, op, attempts=3)
        assert len(calls) == 1


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------


class TestPersistence:
    async def test_deleting_request_deletes_approvals(self, session, org):
        leave = await submit_leave(session, org.employee.id, org.id, leave_in())
        await session.delete(leave)
        await session.commit()

        result = await session.execute(select(LeaveApproval).where(LeaveApproval.leave_request_id == leave.id))
        assert result.scalars().all() == []
        assert await session.get(LeaveRequest, leave.id) is None
