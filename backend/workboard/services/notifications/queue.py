"""Automation notification envelopes and their queue helpers."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol
from uuid import UUID

from workboard.core.config import settings
from workboard.core.logging import get_logger
from workboard.core.time import utcnow
from workboard.services.queue import QueuedTask, enqueue_task
from workboard.services.queue import requeue_if_failed as generic_requeue_if_failed

logger = get_logger(__name__)
TASK_TYPE = "automation_notification"


@dataclass(frozen=True)
class AutomationNotification:
    """Notification emitted by an automation action or a failed run."""

    event_type: str  # action | run_failed
    board_id: UUID
    automation_id: UUID
    item_id: UUID | None = None
    message: str = ""
    recipient_ids: list[str] = field(default_factory=list)
    payload: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)
    attempts: int = 0


def _task_from_notification(notification: AutomationNotification) -> QueuedTask:
    return QueuedTask(
        task_type=TASK_TYPE,
        payload={
            "event_type": notification.event_type,
            "board_id": str(notification.board_id),
            "automation_id": str(notification.automation_id),
            "item_id": str(notification.item_id) if notification.item_id else None,
            "message": notification.message,
            "recipient_ids": list(notification.recipient_ids),
            "payload": notification.payload,
        },
        created_at=notification.created_at,
        attempts=notification.attempts,
    )


def decode_notification_task(task: QueuedTask) -> AutomationNotification:
    if task.task_type != TASK_TYPE:
        raise ValueError(f"Unexpected task_type={task.task_type!r}; expected {TASK_TYPE!r}")

    p: dict[str, Any] = task.payload
    item_id = p.get("item_id")
    return AutomationNotification(
        event_type=str(p["event_type"]),
        board_id=UUID(p["board_id"]),
        automation_id=UUID(p["automation_id"]),
        item_id=UUID(item_id) if item_id else None,
        message=str(p.get("message", "")),
        recipient_ids=[str(rid) for rid in p.get("recipient_ids", [])],
        payload=p.get("payload", {}),
        created_at=task.created_at,
        attempts=task.attempts,
    )


def enqueue_notification(notification: AutomationNotification) -> bool:
    """Put an automation notification on the Redis queue. Never raises."""
    queued = _task_from_notification(notification)
    enqueued = enqueue_task(
        queued,
        settings.notification_queue_name,
        redis_url=settings.notification_redis_url,
    )
    if enqueued:
        logger.info(
            "automation.notification.enqueued",
            extra={
                "event_type": notification.event_type,
                "board_id": str(notification.board_id),
                "automation_id": str(notification.automation_id),
                "recipient_count": len(notification.recipient_ids),
            },
        )
    return enqueued


def requeue_if_failed(
    notification: AutomationNotification,
    *,
    delay_seconds: float = 0,
) -> bool:
    """Requeue a failed notification with capped retries."""
    return generic_requeue_if_failed(
        _task_from_notification(notification),
        settings.notification_queue_name,
        max_retries=settings.notification_dispatch_max_retries,
        redis_url=settings.notification_redis_url,
        delay_seconds=delay_seconds,
    )


class Notifier(Protocol):
    async def send(self, notification: AutomationNotification) -> bool: ...


class QueueNotifier:
    """Notifier that hands notifications to the Redis queue off the event loop."""

    async def send(self, notification: AutomationNotification) -> bool:
        return await asyncio.to_thread(enqueue_notification, notification)
