"""Automation notification dispatch handler."""

from __future__ import annotations

from workboard.core.logging import get_logger
from workboard.services.notifications.queue import (
    AutomationNotification,
    decode_notification_task,
    requeue_if_failed,
)
from workboard.services.queue import QueuedTask

logger = get_logger(__name__)


def _dispatch(notification: AutomationNotification) -> None:
    """Deliver a notification.

    Delivery is a log record; channel integrations plug in here.
    """
    logger.info(
        "automation.notification.dispatch",
        extra={
            "event_type": notification.event_type,
            "board_id": str(notification.board_id),
            "automation_id": str(notification.automation_id),
            "item_id": str(notification.item_id) if notification.item_id else None,
            "recipient_ids": notification.recipient_ids,
            "message": notification.message,
        },
    )


async def process_notification_task(task: QueuedTask) -> None:
    notification = decode_notification_task(task)
    _dispatch(notification)


def requeue_notification_task(task: QueuedTask, *, delay_seconds: float = 0) -> bool:
    notification = decode_notification_task(task)
    return requeue_if_failed(notification, delay_seconds=delay_seconds)
