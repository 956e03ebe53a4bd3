"""Activity feed recording for board changes and automation actions."""

from __future__ import annotations

from collections import deque
from typing import TYPE_CHECKING, Any

from workboard.core.config import settings
from workboard.core.time import utcnow
from workboard.models.activity import ActivityEntry
from workboard.services.persistence import bounded

if TYPE_CHECKING:
    from uuid import UUID

    from workboard.services.persistence import BoardPersistence

DEFAULT_ACTIVITY_LIMIT = 1000


class ActivityLog:
    """Bounded in-memory activity feed for one board, mirrored to persistence."""

    def __init__(
        self,
        board_id: UUID,
        *,
        persistence: BoardPersistence | None = None,
        limit: int = DEFAULT_ACTIVITY_LIMIT,
        timeout: float | None = None,
    ) -> None:
        self.board_id = board_id
        self._persistence = persistence
        self._timeout = timeout or settings.collaborator_timeout_seconds
        self._entries: deque[ActivityEntry] = deque(maxlen=limit)

    def entries(
        self,
        *,
        item_id: UUID | None = None,
        automation_id: UUID | None = None,
        action_prefix: str | None = None,
    ) -> list[ActivityEntry]:
        """Return entries oldest first, optionally filtered."""
        return [
            entry
            for entry in self._entries
            if (item_id is None or entry.item_id == item_id)
            and (automation_id is None or entry.automation_id == automation_id)
            and (action_prefix is None or entry.action.startswith(action_prefix))
        ]

    async def append(self, entry: ActivityEntry) -> None:
        if self._persistence is not None:
            await bounded(
                self._persistence.save(entry),
                timeout=self._timeout,
                operation="save ActivityEntry",
            )
        self._entries.append(entry)

    def __len__(self) -> int:
        return len(self._entries)


async def record_activity(
    log: ActivityLog,
    *,
    action: str,
    item_id: UUID | None = None,
    actor_id: str | None = None,
    actor_type: str = "user",
    target_type: str = "",
    target_id: UUID | None = None,
    automation_id: UUID | None = None,
    payload: dict[str, Any] | None = None,
) -> ActivityEntry:
    """Create an append-only activity entry on a board feed."""
    entry = ActivityEntry(
        board_id=log.board_id,
        item_id=item_id,
        actor_id=actor_id,
        actor_type=actor_type,
        action=action,
        target_type=target_type,
        target_id=target_id,
        automation_id=automation_id,
        payload=payload,
        created_at=utcnow(),
    )
    await log.append(entry)
    return entry
