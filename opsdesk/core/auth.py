"""
Authentication and authorization for the workflow API.

Identity comes from a signed session JWT issued by the platform's auth
service. The token carries the user id (``sub``), the organization scope
(``org``) and the role; this module only verifies it and exposes the
result as a FastAPI dependency.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone

import jwt
import structlog
from fastapi import Depends, HTTPException
from fastapi.security import APIKeyHeader

from opsdesk.core.config import get_settings
from opsdesk_shared.schemas.common import Role

log = structlog.get_logger()
settings = get_settings()

auth_header = APIKeyHeader(name="Authorization", auto_error=False)


# ---------------------------------------------------------------------------
# JWT
# ---------------------------------------------------------------------------

def create_jwt(
    user_id: uuid.UUID,
    org_id: uuid.UUID,
    role: str,
    *,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a signed session JWT."""
    now = datetime.now(timezone.utc)
    exp = now + (expires_delta or timedelta(minutes=settings.jwt_expire_minutes))
    payload = {
        "sub": str(user_id),
        "org": str(org_id),
        "role": role,
        "iat": now,
        "exp": exp,
        "jti": str(uuid.uuid4()),
    }
    return jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_jwt(token: str) -> dict:
    """Decode and verify a JWT. Raises jwt.PyJWTError on failure."""
    return jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])


# ---------------------------------------------------------------------------
# Authentication dependencies
# ---------------------------------------------------------------------------

class AuthenticatedUser:
    """Container for an authenticated user and their org scope."""

    def __init__(self, user_id: uuid.UUID, org_id: uuid.UUID, role: Role):
        self.user_id = user_id
        self.org_id = org_id
        self.role = role

    @property
    def is_manager(self) -> bool:
        return self.role in (Role.MANAGER, Role.ADMIN)


async def get_authenticated_user(
    authorization: str | None = Depends(auth_header),
) -> AuthenticatedUser:
    if not authorization:
        raise HTTPException(status_code=401, detail="Authentication required")

    token = authorization.replace("Bearer ", "").strip()
    try:
        payload = decode_jwt(token)
        return AuthenticatedUser(
            user_id=uuid.UUID(payload["sub"]),
            org_id=uuid.UUID(payload["org"]),
            role=Role(payload["role"]),
        )
    except (jwt.PyJWTError, KeyError, ValueError) as exc:
        log.info("auth.rejected", reason=type(exc).__name__)
        raise HTTPException(status_code=401, detail="Invalid or expired session")


# ---------------------------------------------------------------------------
# Authorization dependencies (role checks)
# ---------------------------------------------------------------------------

async def require_member(
    auth: AuthenticatedUser = Depends(get_authenticated_user),
) -> AuthenticatedUser:
    """Any authenticated org member can access this endpoint."""
    return auth


async def require_manager(
    auth: AuthenticatedUser = Depends(get_authenticated_user),
) -> AuthenticatedUser:
    """Requires manager or admin role."""
    if not auth.is_manager:
        raise HTTPException(status_code=403, detail="Manager access required")
    return auth
