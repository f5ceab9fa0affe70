"""
Typed workflow errors and the HTTP error envelope.

Every structural rejection raised by the approval engine or the dependency
checker is a WorkflowError. The request boundary renders them as

    {"error": {"code": ..., "message": ..., "status": ..., "details": {...}}}

Only ConcurrentModification is retryable, and only the transaction runner
retries it.
"""

from __future__ import annotations

from typing import Any, Optional

import structlog
from fastapi import FastAPI, Request
from starlette.responses import JSONResponse

log = structlog.get_logger()


class WorkflowError(Exception):
    code = "WORKFLOW_ERROR"
    status_code = 400
    retryable = False

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_body(self) -> dict:
        details = dict(self.details)
        if self.retryable:
            details["retryable"] = True
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "status": self.status_code,
                "details": details,
            }
        }


# ---------------------------------------------------------------------------
# Leave approval
# ---------------------------------------------------------------------------

class NotCurrentApprover(WorkflowError):
    code = "NOT_CURRENT_APPROVER"
    status_code = 403


class AlreadyResolved(WorkflowError):
    code = "ALREADY_RESOLVED"
    status_code = 409


class OutOfOrder(WorkflowError):
    code = "OUT_OF_ORDER"
    status_code = 409


class NotRequester(WorkflowError):
    code = "NOT_REQUESTER"
    status_code = 403


class InvalidLeaveRequest(WorkflowError):
    code = "INVALID_LEAVE_REQUEST"
    status_code = 422


class InvalidApprovalChain(WorkflowError):
    code = "INVALID_APPROVAL_CHAIN"
    status_code = 500


class LeaveNotFound(WorkflowError):
    code = "LEAVE_NOT_FOUND"
    status_code = 404


# ---------------------------------------------------------------------------
# Task dependencies
# ---------------------------------------------------------------------------

class SelfDependency(WorkflowError):
    code = "SELF_DEPENDENCY"
    status_code = 400


class UnknownTask(WorkflowError):
    code = "UNKNOWN_TASK"
    status_code = 404


class DuplicateEdge(WorkflowError):
    code = "DUPLICATE_EDGE"
    status_code = 409


class CycleDetected(WorkflowError):
    code = "CYCLE_DETECTED"
    status_code = 409


class DependencyNotFound(WorkflowError):
    code = "DEPENDENCY_NOT_FOUND"
    status_code = 404


class TaskNotFound(WorkflowError):
    code = "TASK_NOT_FOUND"
    status_code = 404


class ProjectNotFound(WorkflowError):
    code = "PROJECT_NOT_FOUND"
    status_code = 404


class InvalidTaskTransition(WorkflowError):
    code = "INVALID_TASK_TRANSITION"
    status_code = 422


class TaskStillBlocked(WorkflowError):
    code = "TASK_STILL_BLOCKED"
    status_code = 409


# ---------------------------------------------------------------------------
# Shared
# ---------------------------------------------------------------------------

class PermissionDenied(WorkflowError):
    code = "PERMISSION_DENIED"
    status_code = 403


class ConcurrentModification(WorkflowError):
    code = "CONCURRENT_MODIFICATION"
    status_code = 409
    retryable = True


async def workflow_error_handler(request: Request, exc: WorkflowError) -> JSONResponse:
    if exc.status_code >= 500:
        log.error("request.workflow_error", code=exc.code, path=request.url.path, details=exc.details)
    else:
        log.info("request.rejected", code=exc.code, path=request.url.path)
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(WorkflowError, workflow_error_handler)
