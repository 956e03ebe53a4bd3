# ruff: noqa: INP001
"""Board store tests for columns, items, values and persistence ordering."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

import pytest
from sqlmodel import SQLModel

from workboard.core.errors import (
    CollaboratorTimeoutError,
    InvalidItemHierarchyError,
    InvalidSettingsError,
    ItemHasSubitemsError,
    NotFoundError,
    ValueOutOfRangeError,
    ValueTypeMismatchError,
)
from workboard.models import Board, BoardColumn, ColumnValue, Item
from workboard.services.board_store import COPY_SUFFIX, BoardStore
from workboard.services.column_types import UNSET, ColumnType, lookup
from workboard.services.persistence import BoardSnapshot


@dataclass
class _RecordingPersistence:
    saved: list[SQLModel] = field(default_factory=list)
    deleted: list[SQLModel] = field(default_factory=list)
    fail_saves: bool = False

    async def save(self, record: SQLModel) -> None:
        if self.fail_saves:
            raise RuntimeError("database unavailable")
        self.saved.append(record)

    async def delete(self, record: SQLModel) -> None:
        self.deleted.append(record)

    async def load_board(self, board_id: Any) -> BoardSnapshot | None:
        return None


class _HangingPersistence(_RecordingPersistence):
    async def save(self, record: SQLModel) -> None:
        await asyncio.sleep(10)


async def _store_with_group(
    persistence: Any = None,
    **kwargs: Any,
) -> tuple[BoardStore, Any]:
    store = BoardStore(Board(name="Roadmap"), persistence=persistence, **kwargs)
    group = await store.create_group("Backlog")
    return store, group


@pytest.mark.asyncio
async def test_define_column_appends_in_order_with_default_width() -> None:
    store, _ = await _store_with_group()

    first = await store.define_column("Notes", ColumnType.TEXT)
    second = await store.define_column("Status", "STATUS", {"labels": ["Todo", "Done"]})

    assert [column.id for column in store.list_columns()] == [first.id, second.id]
    assert first.position == 0 and second.position == 1
    assert first.width == lookup(ColumnType.TEXT).default_width
    assert second.settings["labels"][1]["label"] == "Done"


@pytest.mark.asyncio
async def test_define_column_rejects_blank_title_and_bad_settings() -> None:
    store, _ = await _store_with_group()

    with pytest.raises(InvalidSettingsError):
        await store.define_column("  ", ColumnType.TEXT)
    with pytest.raises(InvalidSettingsError):
        await store.define_column("Status", ColumnType.STATUS)
    assert store.list_columns() == []


@pytest.mark.asyncio
async def test_create_item_and_subitem() -> None:
    store, group = await _store_with_group()

    parent = await store.create_item(group.id, " Launch ", creator_id="u1")
    child = await store.create_item(None, "Write docs", parent_item_id=parent.id)

    assert parent.name == "Launch"
    assert parent.creator_id == "u1"
    assert child.group_id == group.id
    assert store.subitems(parent.id) == [child]


@pytest.mark.asyncio
async def test_create_item_rejects_nested_subitems_missing_group_and_blank_name() -> None:
    store, group = await _store_with_group()
    parent = await store.create_item(group.id, "Parent")
    child = await store.create_item(group.id, "Child", parent_item_id=parent.id)

    with pytest.raises(InvalidItemHierarchyError):
        await store.create_item(group.id, "Grandchild", parent_item_id=child.id)
    with pytest.raises(NotFoundError):
        await store.create_item(None, "Orphan")
    with pytest.raises(NotFoundError):
        await store.create_item(uuid4(), "Lost")
    with pytest.raises(ValueTypeMismatchError):
        await store.create_item(group.id, "   ")


@pytest.mark.asyncio
async def test_create_item_normalizes_aware_due_date() -> None:
    store, group = await _store_with_group()

    item = await store.create_item(
        group.id,
        "Ship",
        due_date=datetime(2024, 6, 1, 12, tzinfo=UTC),
    )

    assert item.due_date == datetime(2024, 6, 1, 12)


@pytest.mark.asyncio
async def test_update_item_rejects_unknown_fields() -> None:
    store, group = await _store_with_group()
    item = await store.create_item(group.id, "Task")

    updated = await store.update_item(item.id, name="Renamed", priority="high")

    assert updated.name == "Renamed"
    assert updated.priority.value == "high"
    with pytest.raises(ValueTypeMismatchError):
        await store.update_item(item.id, group_id=uuid4())


@pytest.mark.asyncio
async def test_set_and_get_value_round_trip_through_validation() -> None:
    store, group = await _store_with_group()
    item = await store.create_item(group.id, "Task")
    status = await store.define_column("Status", ColumnType.STATUS, {"labels": ["Todo", "Done"]})

    assert await store.get_value(item.id, status.id) is UNSET

    record = await store.set_value(item.id, status.id, "Done")

    assert isinstance(record, ColumnValue)
    assert await store.get_value(item.id, status.id) == "Done"
    with pytest.raises(ValueOutOfRangeError):
        await store.set_value(item.id, status.id, "Blocked")
    assert await store.get_value(item.id, status.id) == "Done"


@pytest.mark.asyncio
async def test_list_values_keep_order_and_reject_duplicates() -> None:
    store, group = await _store_with_group()
    item = await store.create_item(group.id, "Task")
    tags = await store.define_column("Tags", ColumnType.LABELS)

    await store.set_value(item.id, tags.id, ["b", "a"])

    assert await store.get_value(item.id, tags.id) == ["b", "a"]
    with pytest.raises(ValueTypeMismatchError):
        await store.set_value(item.id, tags.id, ["a", "a"])
    assert await store.get_value(item.id, tags.id) == ["b", "a"]


@pytest.mark.asyncio
async def test_get_value_never_raises_for_unknown_ids() -> None:
    store, _ = await _store_with_group()

    assert await store.get_value(uuid4(), uuid4()) is UNSET


@pytest.mark.asyncio
async def test_apply_value_reports_previous_and_changed() -> None:
    store, group = await _store_with_group()
    item = await store.create_item(group.id, "Task")
    number = await store.define_column("Points", ColumnType.NUMBER)

    first = await store.apply_value(item.id, number.id, 3)
    again = await store.apply_value(item.id, number.id, 3)
    second = await store.apply_value(item.id, number.id, 5)

    assert first.previous is UNSET and first.changed
    assert not again.changed
    assert second.previous == 3 and second.current == 5 and second.changed


@pytest.mark.asyncio
async def test_update_value_is_read_modify_write() -> None:
    store, group = await _store_with_group()
    item = await store.create_item(group.id, "Task")
    people = await store.define_column("Owners", ColumnType.PEOPLE)

    async def _assign(user_id: str) -> None:
        await store.update_value(
            item.id,
            people.id,
            lambda current: [*(current or []), user_id],
        )

    await asyncio.gather(*(_assign(f"u{index}") for index in range(5)))

    assert sorted(await store.get_value(item.id, people.id)) == [f"u{index}" for index in range(5)]


@pytest.mark.asyncio
async def test_computed_columns_are_derived() -> None:
    store, group = await _store_with_group()
    item = await store.create_item(group.id, "Task", creator_id="u7")
    hours = await store.define_column("Hours", ColumnType.NUMBER)
    rate = await store.define_column("Rate", ColumnType.NUMBER)
    cost = await store.define_column("Cost", ColumnType.FORMULA, {"expression": "{Hours} * {Rate}"})
    creator = await store.define_column("Creator", ColumnType.CREATOR)
    created = await store.define_column("Created", ColumnType.CREATED_DATE)

    assert await store.get_value(item.id, cost.id) is None
    await store.set_value(item.id, hours.id, 4)
    await store.set_value(item.id, rate.id, 25)

    values = await store.get_values(item.id)
    assert values[cost.id] == 100
    assert values[creator.id] == "u7"
    assert values[created.id] == item.created_at.isoformat()
    with pytest.raises(ValueTypeMismatchError):
        await store.set_value(item.id, cost.id, 5)


@pytest.mark.asyncio
async def test_self_referencing_formula_evaluates_to_none() -> None:
    store, group = await _store_with_group()
    item = await store.create_item(group.id, "Task")
    loop = await store.define_column("Loop", ColumnType.FORMULA, {"expression": "{Loop} + 1"})

    assert await store.get_value(item.id, loop.id) is None


@pytest.mark.asyncio
async def test_update_column_keeps_values_and_validates_new_writes() -> None:
    store, group = await _store_with_group()
    item = await store.create_item(group.id, "Task")
    status = await store.define_column("Status", ColumnType.STATUS, {"labels": ["Todo", "Done"]})
    await store.set_value(item.id, status.id, "Done")

    revised = await store.update_column(status.id, title="State", settings={"labels": ["Todo"]})

    assert revised.title == "State"
    assert await store.get_value(item.id, status.id) == "Done"
    with pytest.raises(ValueOutOfRangeError):
        await store.set_value(item.id, status.id, "Done")
    with pytest.raises(InvalidSettingsError):
        await store.update_column(status.id, width=0)


@pytest.mark.asyncio
async def test_retype_column_drops_values_that_no_longer_validate() -> None:
    store, group = await _store_with_group()
    first = await store.create_item(group.id, "First")
    second = await store.create_item(group.id, "Second")
    column = await store.define_column("Size", ColumnType.TEXT)
    await store.set_value(first.id, column.id, "M")
    await store.set_value(second.id, column.id, "Huge")

    dropped = await store.retype_column(column.id, ColumnType.DROPDOWN, {"options": ["S", "M", "L"]})

    assert dropped == 1
    assert store.get_column(column.id).column_type == ColumnType.DROPDOWN
    assert await store.get_value(first.id, column.id) == "M"
    assert await store.get_value(second.id, column.id) is UNSET


@pytest.mark.asyncio
async def test_remove_column_soft_deletes_when_values_reference_it() -> None:
    store, group = await _store_with_group()
    item = await store.create_item(group.id, "Task")
    used = await store.define_column("Used", ColumnType.TEXT)
    unused = await store.define_column("Unused", ColumnType.TEXT)
    await store.set_value(item.id, used.id, "x")

    assert await store.remove_column(unused.id) is True
    assert await store.remove_column(used.id) is False

    tombstone = store.get_column(used.id, include_deleted=True)
    assert tombstone.is_deleted and not tombstone.is_visible
    assert store.list_columns() == []
    with pytest.raises(NotFoundError):
        store.get_column(used.id)
    with pytest.raises(NotFoundError):
        store.get_column(unused.id, include_deleted=True)


@pytest.mark.asyncio
async def test_reorder_and_visibility() -> None:
    store, _ = await _store_with_group()
    a = await store.define_column("A", ColumnType.TEXT)
    b = await store.define_column("B", ColumnType.TEXT)
    c = await store.define_column("C", ColumnType.TEXT)

    ordered = await store.reorder_columns([c.id, a.id])
    await store.set_column_visibility(b.id, False)

    assert [column.title for column in ordered] == ["C", "A", "B"]
    assert [column.title for column in store.list_columns(include_hidden=False)] == ["C", "A"]
    with pytest.raises(NotFoundError):
        await store.reorder_columns([uuid4()])


@pytest.mark.asyncio
async def test_duplicate_item_copies_written_values() -> None:
    store, group = await _store_with_group()
    item = await store.create_item(group.id, "Task", creator_id="u1")
    text = await store.define_column("Notes", ColumnType.TEXT)
    await store.define_column("Created", ColumnType.CREATED_DATE)
    await store.set_value(item.id, text.id, "copy me")

    duplicate = await store.duplicate_item(item.id, creator_id="automation:1")

    assert duplicate.name == f"Task{COPY_SUFFIX}"
    assert duplicate.position == item.position + 1
    assert duplicate.creator_id == "automation:1"
    assert await store.get_value(duplicate.id, text.id) == "copy me"


@pytest.mark.asyncio
async def test_move_item_carries_subitems_and_rejects_moving_a_subitem() -> None:
    store, group = await _store_with_group()
    done = await store.create_group("Done")
    parent = await store.create_item(group.id, "Parent")
    child = await store.create_item(None, "Child", parent_item_id=parent.id)

    move = await store.move_item(parent.id, done.id)
    same = await store.move_item(parent.id, done.id)

    assert (move.from_group_id, move.to_group_id) == (group.id, done.id)
    assert store.get_item(child.id).group_id == done.id
    assert same.from_group_id == same.to_group_id
    with pytest.raises(InvalidItemHierarchyError):
        await store.move_item(child.id, group.id)


@pytest.mark.asyncio
async def test_archive_hides_items_until_restored() -> None:
    store, group = await _store_with_group()
    item = await store.create_item(group.id, "Task")

    archived = await store.archive_item(item.id)

    assert archived.is_archived and archived.archived_at is not None
    assert store.list_items() == []
    assert store.list_items(include_archived=True) == [archived]
    restored = await store.restore_item(item.id)
    assert not restored.is_archived and restored.archived_at is None


@pytest.mark.asyncio
async def test_delete_item_requires_cascade_for_subitems() -> None:
    store, group = await _store_with_group()
    parent = await store.create_item(group.id, "Parent")
    child = await store.create_item(None, "Child", parent_item_id=parent.id)

    with pytest.raises(ItemHasSubitemsError):
        await store.delete_item(parent.id)

    deleted = await store.delete_item(parent.id, cascade_subitems=True)

    assert deleted == [parent.id, child.id]
    assert not store.has_item(parent.id) and not store.has_item(child.id)


@pytest.mark.asyncio
async def test_delete_item_scrubs_inbound_dependencies() -> None:
    store, group = await _store_with_group()
    blocker = await store.create_item(group.id, "Blocker")
    blocked = await store.create_item(group.id, "Blocked")
    depends = await store.define_column("Depends on", ColumnType.DEPENDENCY)
    await store.add_dependency(blocked.id, blocker.id)
    await store.set_value(blocked.id, depends.id, [str(blocker.id)])

    await store.delete_item(blocker.id)

    assert store.get_item(blocked.id).dependency_ids == []
    assert await store.get_value(blocked.id, depends.id) == []


@pytest.mark.asyncio
async def test_dependencies_allow_cycles_but_not_self_edges() -> None:
    store, group = await _store_with_group()
    a = await store.create_item(group.id, "A")
    b = await store.create_item(group.id, "B")

    await store.add_dependency(a.id, b.id)
    await store.add_dependency(b.id, a.id)

    assert store.get_item(a.id).dependency_ids == [str(b.id)]
    assert store.get_item(b.id).dependency_ids == [str(a.id)]
    with pytest.raises(ValueOutOfRangeError):
        await store.add_dependency(a.id, a.id)
    removed = await store.remove_dependency(a.id, b.id)
    assert removed.dependency_ids == []


@pytest.mark.asyncio
async def test_add_update_rejects_blank_body() -> None:
    store, group = await _store_with_group()
    item = await store.create_item(group.id, "Task")

    update = await store.add_update(item.id, " Shipped ", author_id="u1")

    assert update.body == "Shipped"
    assert store.updates(item.id) == [update]
    with pytest.raises(ValueTypeMismatchError):
        await store.add_update(item.id, "  ")


@pytest.mark.asyncio
async def test_memory_is_unchanged_when_persistence_fails() -> None:
    persistence = _RecordingPersistence()
    store, group = await _store_with_group(persistence)
    item = await store.create_item(group.id, "Task")
    column = await store.define_column("Notes", ColumnType.TEXT)
    persistence.fail_saves = True

    with pytest.raises(RuntimeError):
        await store.set_value(item.id, column.id, "lost")
    with pytest.raises(RuntimeError):
        await store.create_item(group.id, "Never stored")

    assert await store.get_value(item.id, column.id) is UNSET
    assert [entry.name for entry in store.list_items()] == ["Task"]


@pytest.mark.asyncio
async def test_persistence_receives_each_changed_record() -> None:
    persistence = _RecordingPersistence()
    store, group = await _store_with_group(persistence)
    item = await store.create_item(group.id, "Task")
    column = await store.define_column("Notes", ColumnType.TEXT)

    await store.set_value(item.id, column.id, "hello")

    kinds = [type(record).__name__ for record in persistence.saved]
    assert kinds[:3] == ["Group", "Item", "BoardColumn"]
    assert "ColumnValue" in kinds


@pytest.mark.asyncio
async def test_persistence_timeout_becomes_domain_error() -> None:
    store = BoardStore(Board(name="Slow"), persistence=_HangingPersistence(), timeout=0.01)

    with pytest.raises(CollaboratorTimeoutError):
        await store.create_group("Backlog")
    assert store.list_groups() == []


@pytest.mark.asyncio
async def test_from_snapshot_rehydrates_records() -> None:
    board = Board(name="Restored")
    store = BoardStore(board)
    group = await store.create_group("Backlog")
    item = await store.create_item(group.id, "Task")
    column = await store.define_column("Notes", ColumnType.TEXT)
    record = await store.set_value(item.id, column.id, "kept")

    restored = BoardStore.from_snapshot(
        BoardSnapshot(
            board=board,
            groups=[group],
            columns=[column],
            items=[store.get_item(item.id)],
            values=[record],
        ),
    )

    assert restored.board_id == board.id
    assert isinstance(restored.get_item(item.id), Item)
    assert isinstance(restored.get_column(column.id), BoardColumn)
    assert await restored.get_value(item.id, column.id) == "kept"
