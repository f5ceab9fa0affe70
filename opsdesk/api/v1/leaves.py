"""
Leave endpoints: submission, approval decisions, cancellation, reads.

Approval is strictly sequential: only the approver at level
``current_approval_level + 1`` may act, a rejection ends the chain, and the
final approval marks the request approved.
"""

from __future__ import annotations

import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from opsdesk.core.auth import AuthenticatedUser, require_member
from opsdesk.core.database import get_session
from opsdesk.core.errors import LeaveNotFound
from opsdesk.services.leaves import (
    can_view,
    cancel_leave,
    decide_leave,
    get_leave_or_404,
    list_leaves,
    list_pending_approvals,
    submit_leave,
    to_leave_read,
)
from opsdesk_shared.schemas.common import LeaveStatus
from opsdesk_shared.schemas.leaves import LeaveCreate, LeaveDecisionIn, LeaveRead

router = APIRouter()


@router.post("/", response_model=LeaveRead, status_code=201)
async def submit_leave_endpoint(
    leave_in: LeaveCreate,
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    """Apply for leave. The approval chain is fixed at submission."""
    leave = await submit_leave(session, auth.user_id, auth.org_id, leave_in)
    return to_leave_read(leave)


@router.get("/", response_model=List[LeaveRead])
async def list_leaves_endpoint(
    user_id: Optional[uuid.UUID] = None,
    status: Optional[LeaveStatus] = None,
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    """List leave requests. Employees only ever see their own."""
    if not auth.is_manager:
        user_id = auth.user_id
    leaves = await list_leaves(session, auth.org_id, user_id=user_id, status=status)
    return [to_leave_read(leave) for leave in leaves]


@router.get("/pending-approvals", response_model=List[LeaveRead])
async def pending_approvals_endpoint(
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    """Requests currently waiting on the caller's decision."""
    leaves = await list_pending_approvals(session, auth.org_id, auth.user_id)
    return [to_leave_read(leave) for leave in leaves]


@router.get("/{leave_id}", response_model=LeaveRead)
async def get_leave_endpoint(
    leave_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    leave = await get_leave_or_404(session, leave_id, auth.org_id)
    if not can_view(leave, auth.user_id, auth.role):
        raise LeaveNotFound("Leave request not found", details={"leave_request_id": str(leave_id)})
    return to_leave_read(leave)


@router.post("/{leave_id}/decision", response_model=LeaveRead)
async def decide_leave_endpoint(
    leave_id: uuid.UUID,
    body: LeaveDecisionIn,
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    """Approve or reject the level awaiting the caller."""
    leave = await decide_leave(
        session, leave_id, auth.user_id, auth.org_id, body.decision, body.comments
    )
    return to_leave_read(leave)


@router.post("/{leave_id}/cancel", response_model=LeaveRead)
async def cancel_leave_endpoint(
    leave_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    """Withdraw a pending request. Only the requester may cancel."""
    leave = await cancel_leave(session, leave_id, auth.user_id, auth.org_id)
    return to_leave_read(leave)
