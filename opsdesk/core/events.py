"""
Workflow event log.

Transitions append an Event row inside their own transaction, so the audit
trail commits or rolls back together with the state change it describes.
Delivery to people is a separate, post-commit concern (see notifications).
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from opsdesk.models.event import Event


def _jsonable(value: Any) -> Any:
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


def record_event(
    session: AsyncSession,
    org_id: UUID,
    event_type: str,
    payload: dict[str, Any],
    actor_id: UUID | None = None,
) -> Event:
    """Stage an event row in the caller's transaction."""
    event = Event(
        org_id=org_id,
        type=event_type,
        actor_id=actor_id,
        payload=_jsonable(payload),
        timestamp=datetime.now(timezone.utc),
    )
    session.add(event)
    return event


async def list_events(
    session: AsyncSession, org_id: UUID, event_type: str | None = None
) -> list[Event]:
    stmt = select(Event).where(Event.org_id == org_id)
    if event_type:
        stmt = stmt.where(Event.type == event_type)
    result = await session.execute(stmt.order_by(Event.timestamp))
    return list(result.scalars().all())
