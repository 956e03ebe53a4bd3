"""Ordered execution of automation actions against a board store."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, assert_never

from workboard.core.config import settings
from workboard.core.errors import ActionFailedError, NotFoundError, WorkboardError
from workboard.core.logging import get_logger
from workboard.core.time import utcnow
from workboard.models.automations import RunStatus
from workboard.services.activity import record_activity
from workboard.services.automations.events import ItemCreated, ItemMoved, events_for_change
from workboard.services.automations.rules import (
    AddLabelAction,
    AddUpdateAction,
    ArchiveItemAction,
    AssignPersonAction,
    ChangeColumnAction,
    ChangeStatusAction,
    CreateItemAction,
    DeleteItemAction,
    DuplicateItemAction,
    MoveToGroupAction,
    SendNotificationAction,
    SetDateAction,
)
from workboard.services.column_types import ColumnType
from workboard.services.notifications.queue import AutomationNotification

if TYPE_CHECKING:
    from collections.abc import Sequence
    from uuid import UUID

    from workboard.models import Automation, BoardColumn
    from workboard.services.activity import ActivityLog
    from workboard.services.automations.events import BoardEvent
    from workboard.services.automations.rules import Action
    from workboard.services.board_store import BoardStore
    from workboard.services.notifications.queue import Notifier

logger = get_logger(__name__)


@dataclass(frozen=True)
class ActionOutcome:
    index: int
    action_type: str
    ok: bool
    error: str | None = None
    detail: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "type": self.action_type,
            "ok": self.ok,
            "error": self.error,
            "detail": self.detail,
        }


@dataclass
class ExecutionResult:
    status: RunStatus = RunStatus.SUCCESS
    outcomes: list[ActionOutcome] = field(default_factory=list)
    # Events caused by the executed actions, to be dispatched one level deeper.
    events: list[BoardEvent] = field(default_factory=list)
    failed_action_index: int | None = None
    error: str | None = None


@dataclass(frozen=True)
class _Context:
    automation: Automation
    item_id: UUID | None
    now: datetime

    @property
    def actor_id(self) -> str:
        return f"automation:{self.automation.id}"


def _with_member(current: Any, member: str) -> list[Any]:
    members = list(current) if isinstance(current, list) else []
    if member not in members:
        members.append(member)
    return members


class ActionExecutor:
    """Runs an automation's actions in declared order.

    Each action sees the state left by the previous one. The first failure
    stops the sequence without undoing earlier actions, and no action starts
    once the board is paused.
    """

    def __init__(
        self,
        store: BoardStore,
        activity: ActivityLog,
        *,
        notifier: Notifier | None = None,
        timeout: float | None = None,
        is_paused: Callable[[], bool] | None = None,
    ) -> None:
        self._store = store
        self._activity = activity
        self._notifier = notifier
        self._timeout = timeout or settings.automation_action_timeout_seconds
        self._is_paused = is_paused or (lambda: False)

    async def execute(
        self,
        automation: Automation,
        actions: Sequence[Action],
        *,
        item_id: UUID | None,
        now: datetime | None = None,
    ) -> ExecutionResult:
        context = _Context(automation=automation, item_id=item_id, now=now or utcnow())
        result = ExecutionResult()
        for index, action in enumerate(actions):
            if self._is_paused():
                result.status = RunStatus.PAUSED
                logger.info(
                    "automation.actions.paused",
                    extra={"automation_id": str(automation.id), "next_index": index},
                )
                break
            try:
                detail, events = await asyncio.wait_for(
                    self._apply(action, context),
                    timeout=self._timeout,
                )
            except Exception as exc:
                failure = ActionFailedError(index, exc)
                outcome = ActionOutcome(index, action.type, ok=False, error=failure.message)
                result.outcomes.append(outcome)
                result.status = RunStatus.PARTIAL_FAILURE
                result.failed_action_index = index
                result.error = failure.message
                logger.warning(
                    "automation.action.failed",
                    extra={
                        "automation_id": str(automation.id),
                        "index": index,
                        "action_type": action.type,
                        "error": failure.message,
                    },
                )
                await self._record(context, outcome)
                break
            outcome = ActionOutcome(index, action.type, ok=True, detail=detail)
            result.outcomes.append(outcome)
            result.events.extend(events)
            await self._record(context, outcome)
        return result

    async def _record(self, context: _Context, outcome: ActionOutcome) -> None:
        item_id = context.item_id if context.item_id and self._store.has_item(context.item_id) else None
        try:
            await record_activity(
                self._activity,
                action=f"automation.action.{outcome.action_type}",
                item_id=item_id,
                actor_id=context.actor_id,
                actor_type="automation",
                target_type="item",
                target_id=context.item_id,
                automation_id=context.automation.id,
                payload=outcome.to_dict(),
            )
        except WorkboardError:
            logger.warning(
                "automation.activity.record_failed",
                extra={"automation_id": str(context.automation.id), "index": outcome.index},
                exc_info=True,
            )

    def _require_item(self, context: _Context) -> UUID:
        if context.item_id is None:
            raise NotFoundError("item", None)
        self._store.get_item(context.item_id)
        return context.item_id

    def _column(self, column_id: UUID | None, *column_types: ColumnType) -> BoardColumn:
        if column_id is not None:
            return self._store.get_column(column_id)
        for column_type in column_types:
            column = self._store.first_column(column_type)
            if column is not None:
                return column
        raise NotFoundError("column", "/".join(kind.value for kind in column_types))

    async def _apply(
        self,
        action: Action,
        context: _Context,
    ) -> tuple[dict[str, Any], list[BoardEvent]]:
        store = self._store
        match action:
            case ChangeStatusAction():
                column = self._column(action.column_id, ColumnType.STATUS)
                change = await store.apply_value(self._require_item(context), column.id, action.value)
                return {"column_id": str(column.id), "value": change.current}, events_for_change(change)
            case SetDateAction():
                column = self._column(action.column_id, ColumnType.DUE_DATE, ColumnType.DATE)
                if action.value is not None:
                    value: Any = action.value
                else:
                    value = (context.now + timedelta(days=action.offset_days or 0)).date()
                change = await store.apply_value(self._require_item(context), column.id, value)
                return {"column_id": str(column.id), "value": change.current}, events_for_change(change)
            case ChangeColumnAction():
                change = await store.apply_value(
                    self._require_item(context),
                    action.column_id,
                    action.value,
                )
                return {"column_id": str(action.column_id)}, events_for_change(change)
            case AssignPersonAction():
                column = self._column(action.column_id, ColumnType.PEOPLE)
                change = await store.update_value(
                    self._require_item(context),
                    column.id,
                    lambda current: _with_member(current, action.user_id),
                )
                detail = {"column_id": str(column.id), "user_id": action.user_id}
                return detail, events_for_change(change)
            case AddLabelAction():
                column = self._column(action.column_id, ColumnType.LABELS)
                change = await store.update_value(
                    self._require_item(context),
                    column.id,
                    lambda current: _with_member(current, action.label),
                )
                return {"column_id": str(column.id), "label": action.label}, events_for_change(change)
            case SendNotificationAction():
                delivered = False
                if self._notifier is not None:
                    delivered = await self._notifier.send(
                        AutomationNotification(
                            event_type="action",
                            board_id=store.board_id,
                            automation_id=context.automation.id,
                            item_id=context.item_id,
                            message=action.message or f"Automation '{context.automation.name}' ran.",
                            recipient_ids=list(action.recipient_ids),
                        ),
                    )
                return {"delivered": delivered, "recipients": len(action.recipient_ids)}, []
            case CreateItemAction():
                parent_id = self._require_item(context) if action.as_subitem else None
                group_id = action.group_id
                if group_id is None and context.item_id is not None and store.has_item(context.item_id):
                    group_id = store.get_item(context.item_id).group_id
                if group_id is None and parent_id is None:
                    groups = store.list_groups()
                    group_id = groups[0].id if groups else None
                item = await store.create_item(
                    group_id,
                    action.name,
                    parent_item_id=parent_id,
                    creator_id=context.actor_id,
                )
                return {"created_item_id": str(item.id)}, [ItemCreated(item.id, item.group_id)]
            case DuplicateItemAction():
                duplicate = await store.duplicate_item(self._require_item(context))
                detail = {"created_item_id": str(duplicate.id)}
                return detail, [ItemCreated(duplicate.id, duplicate.group_id)]
            case MoveToGroupAction():
                move = await store.move_item(self._require_item(context), action.group_id)
                if move.from_group_id == move.to_group_id:
                    return {"moved": False}, []
                event = ItemMoved(move.item.id, move.from_group_id, move.to_group_id)
                return {"moved": True, "to_group_id": str(move.to_group_id)}, [event]
            case AddUpdateAction():
                update = await store.add_update(
                    self._require_item(context),
                    action.body,
                    author_id=context.actor_id,
                )
                return {"update_id": str(update.id)}, []
            case ArchiveItemAction():
                await store.archive_item(self._require_item(context))
                return {}, []
            case DeleteItemAction():
                deleted = await store.delete_item(
                    self._require_item(context),
                    cascade_subitems=action.cascade_subitems,
                )
                return {"deleted_item_ids": [str(item_id) for item_id in deleted]}, []
            case _:
                assert_never(action)
