"""User-initiated board mutations.

Each helper applies one change to the board store, records a user entry on
the activity feed and hands the resulting events to the board's automation
engine. Routers call these instead of the store directly so that manual
edits and automation-driven edits share one event path.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from workboard.services.activity import record_activity
from workboard.services.automations.events import ItemCreated, ItemMoved, events_for_change
from workboard.services.column_types import UNSET

if TYPE_CHECKING:
    from collections.abc import Iterable
    from uuid import UUID

    from workboard.models import AutomationRun, BoardColumn, Group, Item, ItemUpdate
    from workboard.services.automations.events import BoardEvent
    from workboard.services.board_registry import BoardContext
    from workboard.services.board_store import ValueChange


async def emit(context: BoardContext, events: Iterable[BoardEvent]) -> list[AutomationRun]:
    """Dispatch events to the board engine in order and collect the runs."""
    runs: list[AutomationRun] = []
    for event in events:
        runs.extend(await context.engine.handle_event(event))
    return runs


async def _record(
    context: BoardContext,
    action: str,
    *,
    actor_id: str | None,
    item_id: UUID | None = None,
    target_type: str = "item",
    target_id: UUID | None = None,
    payload: dict[str, Any] | None = None,
) -> None:
    await record_activity(
        context.activity,
        action=action,
        item_id=item_id,
        actor_id=actor_id,
        actor_type="user",
        target_type=target_type,
        target_id=target_id if target_id is not None else item_id,
        payload=payload,
    )


# ---------------------------------------------------------------------------
# Columns
# ---------------------------------------------------------------------------


async def define_column(
    context: BoardContext,
    title: str,
    column_type: str,
    settings: dict[str, Any] | None = None,
    *,
    width: int | None = None,
    actor_id: str | None = None,
) -> BoardColumn:
    column = await context.store.define_column(title, column_type, settings, width=width)
    await _record(
        context,
        "column.created",
        actor_id=actor_id,
        target_type="column",
        target_id=column.id,
        payload={"title": column.title, "column_type": column.column_type.value},
    )
    return column


async def change_column(
    context: BoardContext,
    column_id: UUID,
    *,
    fields: dict[str, Any],
    actor_id: str | None = None,
) -> tuple[BoardColumn, int]:
    """Apply a partial column update; returns the column and dropped value count.

    `fields` holds only the keys the caller explicitly sent.
    """
    store = context.store
    dropped = 0
    column_type = fields.get("column_type")
    if column_type is not None and column_type != store.get_column(column_id).column_type:
        dropped = await store.retype_column(column_id, column_type, fields.get("settings"))
        column = await store.update_column(
            column_id,
            title=fields.get("title"),
            width=fields.get("width"),
        )
    else:
        column = await store.update_column(
            column_id,
            title=fields.get("title"),
            settings=fields["settings"] if "settings" in fields else UNSET,
            width=fields.get("width"),
        )
    await _record(
        context,
        "column.updated",
        actor_id=actor_id,
        target_type="column",
        target_id=column_id,
        payload={"fields": sorted(fields), "dropped_values": dropped},
    )
    return column, dropped


async def remove_column(
    context: BoardContext,
    column_id: UUID,
    *,
    actor_id: str | None = None,
) -> bool:
    hard_deleted = await context.store.remove_column(column_id)
    await _record(
        context,
        "column.removed",
        actor_id=actor_id,
        target_type="column",
        target_id=column_id,
        payload={"hard_deleted": hard_deleted},
    )
    return hard_deleted


# ---------------------------------------------------------------------------
# Values
# ---------------------------------------------------------------------------


async def write_value(
    context: BoardContext,
    item_id: UUID,
    column_id: UUID,
    raw: Any,
    *,
    actor_id: str | None = None,
) -> tuple[ValueChange, list[AutomationRun]]:
    """Store a cell value and run the automations its change triggers."""
    change = await context.store.apply_value(item_id, column_id, raw)
    if not change.changed:
        return change, []
    await _record(
        context,
        "item.value.updated",
        actor_id=actor_id,
        item_id=item_id,
        payload={
            "column_id": str(column_id),
            "previous": None if change.previous is UNSET else change.previous,
            "value": change.current,
        },
    )
    return change, await emit(context, events_for_change(change))


# ---------------------------------------------------------------------------
# Groups and items
# ---------------------------------------------------------------------------


async def create_group(
    context: BoardContext,
    title: str,
    *,
    color: str | None = None,
    actor_id: str | None = None,
) -> Group:
    group = await context.store.create_group(title, color=color)
    await _record(
        context,
        "group.created",
        actor_id=actor_id,
        target_type="group",
        target_id=group.id,
        payload={"title": group.title},
    )
    return group


async def create_item(
    context: BoardContext,
    group_id: UUID | None,
    name: str,
    *,
    actor_id: str | None = None,
    **fields: Any,
) -> Item:
    item = await context.store.create_item(group_id, name, creator_id=actor_id, **fields)
    await _record(
        context,
        "item.created",
        actor_id=actor_id,
        item_id=item.id,
        payload={"name": item.name, "group_id": str(item.group_id)},
    )
    await emit(context, [ItemCreated(item.id, item.group_id)])
    return item


async def update_item(
    context: BoardContext,
    item_id: UUID,
    *,
    actor_id: str | None = None,
    **changes: Any,
) -> Item:
    item = await context.store.update_item(item_id, **changes)
    await _record(
        context,
        "item.updated",
        actor_id=actor_id,
        item_id=item_id,
        payload={"fields": sorted(changes)},
    )
    return item


async def move_item(
    context: BoardContext,
    item_id: UUID,
    group_id: UUID,
    *,
    actor_id: str | None = None,
) -> Item:
    move = await context.store.move_item(item_id, group_id)
    if move.from_group_id == move.to_group_id:
        return move.item
    await _record(
        context,
        "item.moved",
        actor_id=actor_id,
        item_id=item_id,
        payload={"from_group_id": str(move.from_group_id), "to_group_id": str(move.to_group_id)},
    )
    await emit(context, [ItemMoved(item_id, move.from_group_id, move.to_group_id)])
    return move.item


async def set_archived(
    context: BoardContext,
    item_id: UUID,
    archived: bool,
    *,
    actor_id: str | None = None,
) -> Item:
    store = context.store
    item = await (store.archive_item(item_id) if archived else store.restore_item(item_id))
    await _record(
        context,
        "item.archived" if archived else "item.restored",
        actor_id=actor_id,
        item_id=item_id,
    )
    return item


async def delete_item(
    context: BoardContext,
    item_id: UUID,
    *,
    cascade_subitems: bool | None = None,
    actor_id: str | None = None,
) -> list[UUID]:
    deleted = await context.store.delete_item(item_id, cascade_subitems=cascade_subitems)
    # The item row is gone, so the entry only references it as a target.
    await _record(
        context,
        "item.deleted",
        actor_id=actor_id,
        target_id=item_id,
        payload={"deleted_item_ids": [str(deleted_id) for deleted_id in deleted]},
    )
    return deleted


async def duplicate_item(
    context: BoardContext,
    item_id: UUID,
    *,
    actor_id: str | None = None,
) -> Item:
    duplicate = await context.store.duplicate_item(item_id, creator_id=actor_id)
    await _record(
        context,
        "item.duplicated",
        actor_id=actor_id,
        item_id=duplicate.id,
        payload={"source_item_id": str(item_id)},
    )
    await emit(context, [ItemCreated(duplicate.id, duplicate.group_id)])
    return duplicate


async def post_update(
    context: BoardContext,
    item_id: UUID,
    body: str,
    *,
    actor_id: str | None = None,
) -> ItemUpdate:
    update = await context.store.add_update(item_id, body, author_id=actor_id)
    await _record(
        context,
        "item.update.posted",
        actor_id=actor_id,
        item_id=item_id,
        payload={"update_id": str(update.id)},
    )
    return update


async def link_dependency(
    context: BoardContext,
    item_id: UUID,
    depends_on_id: UUID,
    *,
    linked: bool = True,
    actor_id: str | None = None,
) -> Item:
    store = context.store
    if linked:
        item = await store.add_dependency(item_id, depends_on_id)
    else:
        item = await store.remove_dependency(item_id, depends_on_id)
    await _record(
        context,
        "item.dependency.added" if linked else "item.dependency.removed",
        actor_id=actor_id,
        item_id=item_id,
        payload={"depends_on_id": str(depends_on_id)},
    )
    return item
