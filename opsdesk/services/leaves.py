"""
Leave service layer: submission, decisions, cancellation, and reads.

Handles:
- Day counting and half-day rules for new requests
- Approval-policy resolution (who signs off, in which order)
- Decisions and cancellation under a row lock + version compare-and-swap
- Event log rows inside the transaction, notifications after commit
- Enrichment of leave data for API responses
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, timedelta, timezone
from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlmodel import select

from opsdesk.core.concurrency import compare_and_bump, run_in_transaction
from opsdesk.core.errors import InvalidLeaveRequest, LeaveNotFound, PermissionDenied
from opsdesk.core.events import record_event
from opsdesk.core.notifications import LEAVE_SUBMITTED, dispatch_notification
from opsdesk.models.leave import LeaveApproval, LeaveRequest
from opsdesk.models.user import User
from opsdesk.services.approval_chain import ApprovalChain
from opsdesk.services.leave_engine import LeaveApprovalEngine, LeaveTransition
from opsdesk_shared.schemas.common import (
    ApprovalStatus,
    LeaveDecision,
    LeaveStatus,
    Role,
)
from opsdesk_shared.schemas.leaves import ApprovalRead, LeaveCreate, LeaveRead

log = structlog.get_logger()

engine = LeaveApprovalEngine()

SUNDAY = 6


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def count_leave_days(start: date, end: date) -> int:
    """Calendar days in [start, end] excluding Sundays."""
    days = (end - start).days + 1
    return sum(1 for i in range(days) if (start + timedelta(days=i)).weekday() != SUNDAY)


def compute_days_count(leave_in: LeaveCreate) -> float:
    if leave_in.end_date < leave_in.start_date:
        raise InvalidLeaveRequest("end_date must be on or after start_date")

    if leave_in.is_half_day:
        if leave_in.half_day_session is None:
            raise InvalidLeaveRequest("Half-day session is required for half-day leave")
        if leave_in.start_date != leave_in.end_date:
            raise InvalidLeaveRequest("Half-day leave can only be applied for a single day")
        if leave_in.start_date.weekday() == SUNDAY:
            raise InvalidLeaveRequest("Cannot apply leave on Sunday")
        return 0.5

    days = count_leave_days(leave_in.start_date, leave_in.end_date)
    if days <= 0:
        raise InvalidLeaveRequest("Leave range contains no working days")
    return float(days)


async def resolve_approval_policy(session: AsyncSession, requester: User) -> list[uuid.UUID]:
    """Ordered approver ids for a request raised by ``requester``.

    Employees go to their direct manager first, then every active admin;
    managers and admins go to every active admin. The requester never
    approves their own leave and nobody appears twice.
    """
    chain: list[uuid.UUID] = []

    if Role(requester.role) == Role.EMPLOYEE and requester.manager_id:
        manager = await session.get(User, requester.manager_id)
        if manager and manager.is_active and manager.org_id == requester.org_id:
            chain.append(manager.id)

    result = await session.execute(
        select(User.id)
        .where(
            User.org_id == requester.org_id,
            User.role == Role.ADMIN.value,
            User.is_active == True,  # noqa: E712
            User.id != requester.id,
        )
        .order_by(User.email)
    )
    chain.extend(row[0] for row in result.all())

    return [a for a in dict.fromkeys(chain) if a != requester.id]


async def get_leave_or_404(
    session: AsyncSession,
    leave_id: uuid.UUID,
    org_id: uuid.UUID,
    *,
    for_update: bool = False,
) -> LeaveRequest:
    stmt = (
        select(LeaveRequest)
        .where(LeaveRequest.id == leave_id)
        .options(selectinload(LeaveRequest.approvals))
        .execution_options(populate_existing=True)
    )
    if for_update:
        stmt = stmt.with_for_update()
    result = await session.execute(stmt)
    leave = result.scalar_one_or_none()
    if not leave or leave.org_id != org_id:
        raise LeaveNotFound("Leave request not found", details={"leave_request_id": str(leave_id)})
    return leave


def can_view(leave: LeaveRequest, actor_id: uuid.UUID, role: Role) -> bool:
    if role in (Role.MANAGER, Role.ADMIN) or leave.user_id == actor_id:
        return True
    return any(a.approver_id == actor_id for a in leave.approvals)


def to_leave_read(leave: LeaveRequest) -> LeaveRead:
    """Convert a LeaveRequest ORM object (approvals loaded) to a LeaveRead."""
    chain = ApprovalChain.of(leave)
    status = LeaveStatus(leave.status)
    return LeaveRead(
        id=leave.id,
        org_id=leave.org_id,
        user_id=leave.user_id,
        leave_type=leave.leave_type,
        start_date=leave.start_date,
        end_date=leave.end_date,
        days_count=leave.days_count,
        reason=leave.reason,
        is_half_day=leave.is_half_day,
        half_day_session=leave.half_day_session,
        document_url=leave.document_url,
        status=status,
        current_approval_level=leave.current_approval_level,
        total_approval_levels=leave.total_approval_levels,
        next_approver_id=chain.next_approver_id() if status == LeaveStatus.PENDING else None,
        approvals=[
            ApprovalRead(
                id=a.id,
                approver_id=a.approver_id,
                approval_order=a.approval_order,
                status=a.status,
                comments=a.comments,
                acted_at=a.acted_at,
            )
            for a in chain.approvals
        ],
        decided_by=leave.decided_by,
        decided_at=leave.decided_at,
        created_at=leave.created_at,
        updated_at=leave.updated_at,
    )


def _notify(transition: LeaveTransition) -> None:
    payload = transition.payload()
    if transition.event_type == "leave.approval_advanced":
        recipients = [transition.next_approver_id, transition.requester_id]
    elif transition.event_type == "leave.cancelled":
        recipients = [transition.next_approver_id]
    else:
        recipients = [transition.requester_id]
    dispatch_notification(transition.event_type, recipients, payload)


# ---------------------------------------------------------------------------
# Submission
# ---------------------------------------------------------------------------


async def submit_leave(
    session: AsyncSession,
    requester_id: uuid.UUID,
    org_id: uuid.UUID,
    leave_in: LeaveCreate,
) -> LeaveRequest:
    """Create a leave request together with its full approval chain."""

    async def _op(session: AsyncSession) -> LeaveRequest:
        requester = await session.get(User, requester_id)
        if not requester or requester.org_id != org_id or not requester.is_active:
            raise PermissionDenied("Requester is not an active member of this organization")

        days_count = compute_days_count(leave_in)

        overlap = await session.execute(
            select(LeaveRequest.id).where(
                LeaveRequest.user_id == requester_id,
                LeaveRequest.status.in_([LeaveStatus.PENDING.value, LeaveStatus.APPROVED.value]),
                LeaveRequest.start_date <= leave_in.end_date,
                LeaveRequest.end_date >= leave_in.start_date,
            )
        )
        clash = overlap.first()
        if clash:
            raise InvalidLeaveRequest(
                "You already have a pending or approved leave request for these dates",
                details={"conflicting_leave_request_id": str(clash[0])},
            )

        approver_ids = await resolve_approval_policy(session, requester)
        approvals = ApprovalChain.build(approver_ids)

        leave = LeaveRequest(
            org_id=org_id,
            user_id=requester_id,
            leave_type=leave_in.leave_type.value,
            start_date=leave_in.start_date,
            end_date=leave_in.end_date,
            days_count=days_count,
            reason=leave_in.reason,
            is_half_day=leave_in.is_half_day,
            half_day_session=leave_in.half_day_session.value if leave_in.is_half_day else None,
            document_url=leave_in.document_url,
            status=LeaveStatus.PENDING.value,
            current_approval_level=0,
            total_approval_levels=len(approvals),
            approvals=approvals,
        )
        if not approvals:
            # Nobody has to sign off: every (zero) approval is approved.
            leave.status = LeaveStatus.APPROVED.value
            leave.decided_at = datetime.now(timezone.utc)

        session.add(leave)
        await session.flush()

        record_event(
            session,
            org_id,
            LEAVE_SUBMITTED,
            {
                "leave_request_id": leave.id,
                "requester_id": requester_id,
                "status": leave.status,
                "total_levels": leave.total_approval_levels,
                "approver_ids": approver_ids,
            },
            actor_id=requester_id,
        )
        return leave

    leave = await run_in_transaction(session, _op, label="leave.submit")
    log.info(
        "leave.submitted",
        leave_id=str(leave.id),
        requester_id=str(requester_id),
        levels=leave.total_approval_levels,
        status=leave.status,
    )

    first_approver = ApprovalChain.of(leave).next_approver_id()
    dispatch_notification(
        LEAVE_SUBMITTED,
        [first_approver],
        {
            "leave_request_id": str(leave.id),
            "requester_id": str(requester_id),
            "days_count": leave.days_count,
            "leave_type": leave.leave_type,
            "level": 1,
            "total_levels": leave.total_approval_levels,
        },
    )
    return leave


# ---------------------------------------------------------------------------
# Decisions
# ---------------------------------------------------------------------------


async def decide_leave(
    session: AsyncSession,
    leave_id: uuid.UUID,
    actor_id: uuid.UUID,
    org_id: uuid.UUID,
    decision: LeaveDecision,
    comments: Optional[str] = None,
) -> LeaveRequest:
    """Approve or reject the current level of a leave request.

    All checks run against state read under the row lock; a lost version
    swap re-runs the read and the checks.
    """

    async def _op(session: AsyncSession) -> tuple[LeaveRequest, LeaveTransition]:
        leave = await get_leave_or_404(session, leave_id, org_id, for_update=True)
        transition = engine.apply_decision(leave, actor_id, decision, comments)
        await compare_and_bump(session, leave)
        record_event(session, org_id, transition.event_type, transition.payload(), actor_id=actor_id)
        return leave, transition

    leave, transition = await run_in_transaction(session, _op, label="leave.decision")
    _notify(transition)
    return leave


async def cancel_leave(
    session: AsyncSession,
    leave_id: uuid.UUID,
    requester_id: uuid.UUID,
    org_id: uuid.UUID,
) -> LeaveRequest:
    async def _op(session: AsyncSession) -> tuple[LeaveRequest, LeaveTransition]:
        leave = await get_leave_or_404(session, leave_id, org_id, for_update=True)
        transition = engine.cancel(leave, requester_id)
        await compare_and_bump(session, leave)
        record_event(session, org_id, transition.event_type, transition.payload(), actor_id=requester_id)
        return leave, transition

    leave, transition = await run_in_transaction(session, _op, label="leave.cancel")
    _notify(transition)
    return leave


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


async def list_leaves(
    session: AsyncSession,
    org_id: uuid.UUID,
    *,
    user_id: Optional[uuid.UUID] = None,
    status: Optional[LeaveStatus] = None,
) -> list[LeaveRequest]:
    stmt = (
        select(LeaveRequest)
        .where(LeaveRequest.org_id == org_id)
        .options(selectinload(LeaveRequest.approvals))
    )
    if user_id:
        stmt = stmt.where(LeaveRequest.user_id == user_id)
    if status:
        stmt = stmt.where(LeaveRequest.status == status.value)
    result = await session.execute(stmt.order_by(LeaveRequest.created_at.desc()))
    return list(result.scalars().all())


async def list_pending_approvals(
    session: AsyncSession, org_id: uuid.UUID, approver_id: uuid.UUID
) -> list[LeaveRequest]:
    """Pending requests whose actionable level belongs to ``approver_id``."""
    stmt = (
        select(LeaveRequest)
        .join(LeaveApproval, LeaveApproval.leave_request_id == LeaveRequest.id)
        .where(
            LeaveRequest.org_id == org_id,
            LeaveRequest.status == LeaveStatus.PENDING.value,
            LeaveApproval.approver_id == approver_id,
            LeaveApproval.status == ApprovalStatus.PENDING.value,
            LeaveApproval.approval_order == LeaveRequest.current_approval_level + 1,
        )
        .options(selectinload(LeaveRequest.approvals))
        .order_by(LeaveRequest.created_at)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())
