"""Redis list queue used to hand notifications to an out-of-process worker.

Tasks are JSON envelopes pushed onto a list. Delayed retries wait in a
sorted set scored by their due time and are moved onto the list when a
consumer polls.
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, cast

import redis

from workboard.core.config import settings
from workboard.core.logging import get_logger
from workboard.core.time import utcnow

logger = get_logger(__name__)

_SCHEDULED_SUFFIX = ":scheduled"
_DRAIN_BATCH_SIZE = 100


@dataclass(frozen=True)
class QueuedTask:
    """Task envelope stored on the queue."""

    task_type: str
    payload: dict[str, Any]
    created_at: datetime
    attempts: int = 0

    def to_json(self) -> str:
        return json.dumps(
            {
                "task_type": self.task_type,
                "payload": self.payload,
                "created_at": self.created_at.isoformat(),
                "attempts": self.attempts,
            },
            sort_keys=True,
        )

    @classmethod
    def from_json(cls, raw: str | bytes) -> QueuedTask:
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        data: dict[str, Any] = json.loads(raw)
        created_at = data.get("created_at")
        return cls(
            task_type=str(data["task_type"]),
            payload=dict(data.get("payload") or {}),
            created_at=datetime.fromisoformat(created_at) if created_at else utcnow(),
            attempts=int(data.get("attempts", 0)),
        )

    def next_attempt(self) -> QueuedTask:
        return QueuedTask(
            task_type=self.task_type,
            payload=self.payload,
            created_at=self.created_at,
            attempts=self.attempts + 1,
        )


def _redis_client(redis_url: str | None = None) -> redis.Redis:
    return redis.Redis.from_url(redis_url or settings.notification_redis_url)


def _scheduled_queue_name(queue_name: str) -> str:
    return f"{queue_name}{_SCHEDULED_SUFFIX}"


def _now_seconds() -> float:
    return time.time()


def _drain_ready_scheduled_tasks(client: redis.Redis, queue_name: str) -> float | None:
    """Move due delayed tasks onto the list; return seconds until the next one."""
    scheduled_queue = _scheduled_queue_name(queue_name)
    now = _now_seconds()
    ready = cast(
        list[str | bytes],
        client.zrangebyscore(scheduled_queue, "-inf", now, start=0, num=_DRAIN_BATCH_SIZE),
    )
    if ready:
        client.lpush(queue_name, *ready)
        client.zrem(scheduled_queue, *ready)
        logger.debug(
            "queue.scheduled.drained",
            extra={"queue_name": queue_name, "count": len(ready)},
        )
    upcoming = cast(
        list[tuple[str | bytes, float]],
        client.zrangebyscore(scheduled_queue, now, "+inf", start=0, num=1, withscores=True),
    )
    if not upcoming:
        return None
    return max(0.0, float(upcoming[0][1]) - now)


def enqueue_task(
    task: QueuedTask,
    queue_name: str,
    *,
    redis_url: str | None = None,
    delay_seconds: float = 0,
) -> bool:
    """Push a task, or schedule it when `delay_seconds` is positive.

    Returns False instead of raising when Redis is unavailable.
    """
    delay = max(0.0, float(delay_seconds))
    try:
        client = _redis_client(redis_url=redis_url)
        if delay > 0:
            client.zadd(_scheduled_queue_name(queue_name), {task.to_json(): _now_seconds() + delay})
        else:
            client.lpush(queue_name, task.to_json())
    except (redis.RedisError, OSError, ValueError) as exc:
        logger.warning(
            "queue.enqueue_failed",
            extra={"task_type": task.task_type, "queue_name": queue_name, "error": str(exc)},
        )
        return False
    logger.info(
        "queue.enqueued",
        extra={
            "task_type": task.task_type,
            "queue_name": queue_name,
            "attempt": task.attempts,
            "delay_seconds": delay,
        },
    )
    return True


def dequeue_task(
    queue_name: str,
    *,
    redis_url: str | None = None,
    block: bool = False,
    block_timeout: float = 0,
) -> QueuedTask | None:
    """Pop the oldest task, optionally blocking until one is ready."""
    client = _redis_client(redis_url=redis_url)
    next_delay = _drain_ready_scheduled_tasks(client, queue_name)
    raw: str | bytes | None
    if block:
        timeout = max(0.0, float(block_timeout))
        if next_delay is not None:
            timeout = min(timeout, next_delay) if timeout else next_delay
        popped = cast(
            tuple[bytes | str, bytes | str] | None,
            client.brpop([queue_name], timeout=timeout),
        )
        raw = None if popped is None else popped[1]
    else:
        raw = cast(str | bytes | None, client.rpop(queue_name))
    if raw is None:
        return None
    try:
        return QueuedTask.from_json(raw)
    except (ValueError, KeyError, TypeError) as exc:
        logger.error(
            "queue.decode_failed",
            extra={"queue_name": queue_name, "raw_payload": str(raw), "error": str(exc)},
        )
        raise


def requeue_if_failed(
    task: QueuedTask,
    queue_name: str,
    *,
    max_retries: int,
    redis_url: str | None = None,
    delay_seconds: float = 0,
) -> bool:
    """Requeue a failed task until it has been attempted `max_retries` times.

    Returns True if requeued.
    """
    retry = task.next_attempt()
    if retry.attempts > max_retries:
        logger.warning(
            "queue.drop_failed_task",
            extra={
                "task_type": task.task_type,
                "queue_name": queue_name,
                "attempts": retry.attempts,
            },
        )
        return False
    return enqueue_task(retry, queue_name, redis_url=redis_url, delay_seconds=delay_seconds)
