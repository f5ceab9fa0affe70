"""
Notification sink: fire-and-forget delivery of workflow events to people.

Transitions never await delivery. Services call ``dispatch_notification``
after their transaction has committed; it schedules the send on the running
loop and returns immediately. Delivery failures are logged and dropped.

Backends:
- log:   structured log line per notification (default)
- redis: JSON message published on a pub/sub channel and buffered in a
         capped list for consumers that connect late
"""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from typing import Any, Iterable, Optional, Protocol
from uuid import UUID

import redis.asyncio as redis
import structlog

from opsdesk.core.config import get_settings

log = structlog.get_logger()

BUFFER_SIZE = 500
BUFFER_TTL_SECONDS = 86400

# Event types delivered to people.
LEAVE_SUBMITTED = "leave.submitted"
LEAVE_APPROVAL_ADVANCED = "leave.approval_advanced"
LEAVE_APPROVED = "leave.approved"
LEAVE_REJECTED = "leave.rejected"
LEAVE_CANCELLED = "leave.cancelled"
TASK_UNBLOCKED = "task.unblocked"


class NotificationSink(Protocol):
    async def send(self, event_type: str, recipient_ids: list[UUID], payload: dict[str, Any]) -> None:
        ...


def _encode(event_type: str, recipient_ids: list[UUID], payload: dict[str, Any]) -> str:
    return json.dumps(
        {
            "type": event_type,
            "recipient_ids": [str(r) for r in recipient_ids],
            "payload": payload,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
        default=str,
    )


class LogNotificationSink:
    async def send(self, event_type: str, recipient_ids: list[UUID], payload: dict[str, Any]) -> None:
        log.info(
            "notification.sent",
            event_type=event_type,
            recipients=[str(r) for r in recipient_ids],
            payload=payload,
        )


class RedisNotificationSink:
    """Publish notifications on Redis Pub/Sub and keep a short replay buffer."""

    def __init__(self, url: str, channel: str):
        self._url = url
        self._channel = channel
        self._client: Optional[redis.Redis] = None

    async def _get_client(self) -> redis.Redis:
        if self._client is None:
            self._client = redis.from_url(self._url, decode_responses=True)
        return self._client

    async def send(self, event_type: str, recipient_ids: list[UUID], payload: dict[str, Any]) -> None:
        client = await self._get_client()
        message = _encode(event_type, recipient_ids, payload)
        buffer_key = f"{self._channel}:buffer"
        async with client.pipeline() as pipe:
            pipe.lpush(buffer_key, message)
            pipe.ltrim(buffer_key, 0, BUFFER_SIZE - 1)
            pipe.expire(buffer_key, BUFFER_TTL_SECONDS)
            await pipe.execute()
        await client.publish(self._channel, message)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None


class RecordingNotificationSink:
    """Keeps every notification in memory. Used by tests and local tooling."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, list[UUID], dict[str, Any]]] = []

    async def send(self, event_type: str, recipient_ids: list[UUID], payload: dict[str, Any]) -> None:
        self.sent.append((event_type, list(recipient_ids), payload))

    def of_type(self, event_type: str) -> list[tuple[str, list[UUID], dict[str, Any]]]:
        return [n for n in self.sent if n[0] == event_type]


_sink: Optional[NotificationSink] = None
_pending: set[asyncio.Task] = set()


def get_notification_sink() -> NotificationSink:
    global _sink
    if _sink is None:
        settings = get_settings()
        if settings.notification_backend == "redis":
            _sink = RedisNotificationSink(settings.redis_url, settings.notification_channel)
        else:
            _sink = LogNotificationSink()
    return _sink


def set_notification_sink(sink: Optional[NotificationSink]) -> None:
    """Replace the process-wide sink (``None`` re-selects from settings)."""
    global _sink
    _sink = sink


async def _deliver(
    sink: NotificationSink, event_type: str, recipient_ids: list[UUID], payload: dict[str, Any]
) -> None:
    try:
        await sink.send(event_type, recipient_ids, payload)
    except Exception as exc:
        log.warning("notification.delivery_failed", event_type=event_type, error=str(exc))


def dispatch_notification(
    event_type: str, recipient_ids: Iterable[Optional[UUID]], payload: dict[str, Any]
) -> Optional[asyncio.Task]:
    """Schedule delivery without waiting for it. Empty recipient lists are skipped."""
    recipients = [r for r in dict.fromkeys(recipient_ids) if r is not None]
    if not recipients:
        return None
    task = asyncio.get_running_loop().create_task(
        _deliver(get_notification_sink(), event_type, recipients, payload)
    )
    _pending.add(task)
    task.add_done_callback(_pending.discard)
    return task


async def drain_notifications() -> None:
    """Wait for in-flight deliveries. Called on shutdown and by tests."""
    if _pending:
        await asyncio.gather(*list(_pending), return_exceptions=True)


async def close_notification_sink() -> None:
    global _sink
    await drain_notifications()
    if isinstance(_sink, RedisNotificationSink):
        await _sink.close()
    _sink = None
