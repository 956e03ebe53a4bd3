"""Per-board store for columns, groups, items and column values.

`BoardStore` is the single write path for column values. Every mutation is
validated first, handed to the persistence collaborator, and only then
applied to memory. Records held in memory are never mutated in place: a
change produces a revised copy, so snapshots handed out earlier stay stable.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from functools import lru_cache
from typing import TYPE_CHECKING, Any
from uuid import UUID

from sqlmodel import SQLModel

from workboard.core.config import settings
from workboard.core.errors import (
    InvalidItemHierarchyError,
    InvalidSettingsError,
    ItemHasSubitemsError,
    NotFoundError,
    ValueOutOfRangeError,
    ValueTypeMismatchError,
    WorkboardError,
)
from workboard.core.logging import get_logger
from workboard.core.time import as_naive_utc, utcnow
from workboard.models import BoardColumn, ColumnValue, Group, Item, ItemUpdate, Priority
from workboard.services.column_types import UNSET, ColumnType, lookup
from workboard.services.column_values import validate_settings, validate_value
from workboard.services.formulas import Formula, compile_formula
from workboard.services.locks import ItemLocks
from workboard.services.persistence import BoardPersistence, NullPersistence, bounded, revise

if TYPE_CHECKING:
    from workboard.models import Board
    from workboard.services.persistence import BoardSnapshot

logger = get_logger(__name__)

COPY_SUFFIX = " (Copy)"


@dataclass(frozen=True)
class ValueChange:
    """Result of one write through the value path."""

    item_id: UUID
    column: BoardColumn
    previous: Any
    current: Any
    record: ColumnValue

    @property
    def changed(self) -> bool:
        return self.previous is UNSET or self.previous != self.current


@dataclass(frozen=True)
class ItemMove:
    item: Item
    from_group_id: UUID
    to_group_id: UUID


@dataclass(frozen=True)
class ItemSnapshot:
    """Consistent read of one item and all of its column values."""

    item_id: UUID
    board_id: UUID
    group_id: UUID
    parent_item_id: UUID | None
    name: str
    priority: Priority
    due_date: datetime | None
    is_archived: bool
    creator_id: str | None
    columns: tuple[BoardColumn, ...]
    values: Mapping[UUID, Any] = field(default_factory=dict)

    def value(self, column_id: UUID) -> Any:
        return self.values.get(column_id, UNSET)

    def column(self, column_id: UUID) -> BoardColumn | None:
        for column in self.columns:
            if column.id == column_id:
                return column
        return None

    def first_column(self, column_type: ColumnType) -> BoardColumn | None:
        """First visible column of a type in board order."""
        for column in self.columns:
            if column.column_type == column_type and column.is_visible:
                return column
        return None


@lru_cache(maxsize=256)
def _formula(expression: str) -> Formula:
    return compile_formula(expression)


class BoardStore:
    """Columns, groups, items and values of one board."""

    def __init__(
        self,
        board: Board,
        *,
        persistence: BoardPersistence | None = None,
        timeout: float | None = None,
        cascade_subitems: bool | None = None,
    ) -> None:
        self.board = board
        self.locks = ItemLocks()
        self._persistence: BoardPersistence = persistence or NullPersistence()
        self._timeout = timeout or settings.collaborator_timeout_seconds
        self._cascade_subitems = (
            settings.automation_delete_cascades_subitems
            if cascade_subitems is None
            else cascade_subitems
        )
        self._columns: dict[UUID, BoardColumn] = {}
        self._groups: dict[UUID, Group] = {}
        self._items: dict[UUID, Item] = {}
        self._values: dict[tuple[UUID, UUID], ColumnValue] = {}
        self._updates: dict[UUID, list[ItemUpdate]] = {}

    @property
    def board_id(self) -> UUID:
        return self.board.id

    @classmethod
    def from_snapshot(
        cls,
        snapshot: BoardSnapshot,
        *,
        persistence: BoardPersistence | None = None,
        timeout: float | None = None,
        cascade_subitems: bool | None = None,
    ) -> BoardStore:
        store = cls(
            snapshot.board,
            persistence=persistence,
            timeout=timeout,
            cascade_subitems=cascade_subitems,
        )
        store._columns = {column.id: column for column in snapshot.columns}
        store._groups = {group.id: group for group in snapshot.groups}
        store._items = {item.id: item for item in snapshot.items}
        store._values = {(value.item_id, value.column_id): value for value in snapshot.values}
        for update in snapshot.updates:
            store._updates.setdefault(update.item_id, []).append(update)
        return store

    async def _save(self, *records: SQLModel) -> None:
        for record in records:
            await bounded(
                self._persistence.save(record),
                timeout=self._timeout,
                operation=f"save {type(record).__name__}",
            )

    async def _delete(self, *records: SQLModel) -> None:
        for record in records:
            await bounded(
                self._persistence.delete(record),
                timeout=self._timeout,
                operation=f"delete {type(record).__name__}",
            )

    # ------------------------------------------------------------------
    # Columns
    # ------------------------------------------------------------------

    def list_columns(
        self,
        *,
        include_hidden: bool = True,
        include_deleted: bool = False,
    ) -> list[BoardColumn]:
        columns = sorted(self._columns.values(), key=lambda column: column.position)
        return [
            column
            for column in columns
            if (include_deleted or not column.is_deleted)
            and (include_hidden or column.is_visible)
        ]

    def get_column(self, column_id: UUID, *, include_deleted: bool = False) -> BoardColumn:
        column = self._columns.get(column_id)
        if column is None or (column.is_deleted and not include_deleted):
            raise NotFoundError("column", column_id)
        return column

    def first_column(self, column_type: ColumnType) -> BoardColumn | None:
        for column in self.list_columns(include_hidden=False):
            if column.column_type == column_type:
                return column
        return None

    def column_by_title(self, title: str) -> BoardColumn | None:
        for column in self.list_columns():
            if column.title == title:
                return column
        return None

    def _next_column_position(self) -> int:
        return max((column.position for column in self._columns.values()), default=-1) + 1

    async def define_column(
        self,
        title: str,
        column_type: ColumnType | str,
        settings: dict[str, Any] | None = None,
        *,
        width: int | None = None,
    ) -> BoardColumn:
        """Create a typed column at the end of the board's column order."""
        kind = ColumnType(column_type)
        definition = lookup(kind)
        if not title or not title.strip():
            raise InvalidSettingsError("Column title must not be blank.")
        normalized = validate_settings(kind, settings)
        now = utcnow()
        column = BoardColumn(
            board_id=self.board_id,
            title=title.strip(),
            column_type=kind,
            position=self._next_column_position(),
            width=width or definition.default_width,
            settings=normalized,
            created_at=now,
            updated_at=now,
        )
        await self._save(column)
        self._columns[column.id] = column
        logger.info(
            "board.column.defined",
            extra={
                "board_id": str(self.board_id),
                "column_id": str(column.id),
                "column_type": kind.value,
            },
        )
        return column

    async def update_column(
        self,
        column_id: UUID,
        *,
        title: str | None = None,
        settings: Any = UNSET,
        width: int | None = None,
    ) -> BoardColumn:
        """Rename, resize or reconfigure a column.

        Existing values are kept when settings change; writes after the change
        are validated against the new settings.
        """
        column = self.get_column(column_id)
        changes: dict[str, Any] = {"updated_at": utcnow()}
        if title is not None:
            if not title.strip():
                raise InvalidSettingsError("Column title must not be blank.")
            changes["title"] = title.strip()
        if settings is not UNSET:
            changes["settings"] = validate_settings(column.column_type, settings)
        if width is not None:
            if width <= 0:
                raise InvalidSettingsError("Column width must be positive.", width=width)
            changes["width"] = width
        revised = revise(column, **changes)
        await self._save(revised)
        self._columns[column_id] = revised
        return revised

    async def retype_column(
        self,
        column_id: UUID,
        column_type: ColumnType | str,
        settings: dict[str, Any] | None = None,
    ) -> int:
        """Change a column's type, dropping values that no longer validate.

        Returns how many stored values were dropped.
        """
        column = self.get_column(column_id)
        kind = ColumnType(column_type)
        revised = revise(
            column,
            column_type=kind,
            settings=validate_settings(kind, settings),
            updated_at=utcnow(),
        )
        kept: list[ColumnValue] = []
        dropped: list[ColumnValue] = []
        for (item_id, value_column_id), record in self._values.items():
            if value_column_id != column_id:
                continue
            try:
                canonical = validate_value(
                    revised,
                    record.value,
                    item_id=str(item_id),
                    item_exists=self._item_exists_str,
                )
            except WorkboardError:
                dropped.append(record)
                continue
            kept.append(revise(record, value=canonical, updated_at=utcnow()))
        await self._save(revised, *kept)
        await self._delete(*dropped)
        self._columns[column_id] = revised
        for record in kept:
            self._values[(record.item_id, column_id)] = record
        for record in dropped:
            self._values.pop((record.item_id, column_id), None)
        logger.info(
            "board.column.retyped",
            extra={
                "board_id": str(self.board_id),
                "column_id": str(column_id),
                "column_type": kind.value,
                "dropped": len(dropped),
            },
        )
        return len(dropped)

    async def remove_column(self, column_id: UUID) -> bool:
        """Remove a column.

        Columns still referenced by values are hidden and marked deleted rather
        than removed. Returns True when the column was physically deleted.
        """
        column = self.get_column(column_id)
        referenced = any(key[1] == column_id for key in self._values)
        if referenced:
            now = utcnow()
            revised = revise(column, deleted_at=now, is_visible=False, updated_at=now)
            await self._save(revised)
            self._columns[column_id] = revised
        else:
            await self._delete(column)
            del self._columns[column_id]
        logger.info(
            "board.column.removed",
            extra={
                "board_id": str(self.board_id),
                "column_id": str(column_id),
                "soft": referenced,
            },
        )
        return not referenced

    async def reorder_columns(self, ordered_ids: Iterable[UUID]) -> list[BoardColumn]:
        """Put the given columns first, in order; omitted columns follow as before."""
        requested: list[UUID] = []
        for column_id in ordered_ids:
            self.get_column(column_id)
            if column_id not in requested:
                requested.append(column_id)
        remaining = [
            column.id
            for column in self.list_columns(include_deleted=True)
            if column.id not in requested
        ]
        revised: list[BoardColumn] = []
        for position, column_id in enumerate([*requested, *remaining]):
            column = self._columns[column_id]
            if column.position != position:
                revised.append(revise(column, position=position, updated_at=utcnow()))
        await self._save(*revised)
        for column in revised:
            self._columns[column.id] = column
        return self.list_columns()

    async def set_column_visibility(self, column_id: UUID, visible: bool) -> BoardColumn:
        column = self.get_column(column_id)
        if column.is_visible == visible:
            return column
        revised = revise(column, is_visible=visible, updated_at=utcnow())
        await self._save(revised)
        self._columns[column_id] = revised
        return revised

    # ------------------------------------------------------------------
    # Values
    # ------------------------------------------------------------------

    def _item_exists_str(self, raw_id: str) -> bool:
        try:
            return UUID(raw_id) in self._items
        except ValueError:
            return False

    def _stored(self, item_id: UUID, column_id: UUID) -> Any:
        record = self._values.get((item_id, column_id))
        return UNSET if record is None else record.value

    def _current_value(
        self,
        item: Item,
        column: BoardColumn,
        visiting: frozenset[UUID] = frozenset(),
    ) -> Any:
        match column.column_type:
            case ColumnType.FORMULA:
                if column.id in visiting:
                    return None
                expression = (column.settings or {}).get("expression", "")
                nested = visiting | {column.id}

                def _resolve(title: str) -> Any:
                    referenced = self.column_by_title(title)
                    if referenced is None:
                        return UNSET
                    return self._current_value(item, referenced, nested)

                return _formula(expression).evaluate(_resolve)
            case ColumnType.CREATED_DATE:
                return item.created_at.isoformat()
            case ColumnType.LAST_UPDATED:
                return item.updated_at.isoformat()
            case ColumnType.CREATOR:
                return UNSET if item.creator_id is None else item.creator_id
        return self._stored(item.id, column.id)

    def peek_value(self, item_id: UUID, column_id: UUID) -> Any:
        """Current value without taking the item lock; UNSET when absent."""
        item = self._items.get(item_id)
        column = self._columns.get(column_id)
        if item is None or column is None:
            return UNSET
        return self._current_value(item, column)

    async def get_value(self, item_id: UUID, column_id: UUID) -> Any:
        """Return the value of one cell, or UNSET. Never raises."""
        if item_id not in self._items:
            return UNSET
        async with self.locks.for_item(item_id).read():
            return self.peek_value(item_id, column_id)

    async def get_values(self, item_id: UUID) -> dict[UUID, Any]:
        """All set values of an item keyed by column id, computed columns included."""
        self.get_item(item_id)
        async with self.locks.for_item(item_id).read():
            item = self.get_item(item_id)
            values: dict[UUID, Any] = {}
            for column in self.list_columns():
                value = self._current_value(item, column)
                if value is not UNSET:
                    values[column.id] = value
            return values

    async def read_snapshot(self, item_id: UUID) -> ItemSnapshot | None:
        if item_id not in self._items:
            return None
        async with self.locks.for_item(item_id).read():
            item = self._items.get(item_id)
            if item is None:
                return None
            columns = tuple(self.list_columns())
            values = {
                column.id: value
                for column in columns
                if (value := self._current_value(item, column)) is not UNSET
            }
            return ItemSnapshot(
                item_id=item.id,
                board_id=item.board_id,
                group_id=item.group_id,
                parent_item_id=item.parent_item_id,
                name=item.name,
                priority=item.priority,
                due_date=item.due_date,
                is_archived=item.is_archived,
                creator_id=item.creator_id,
                columns=columns,
                values=values,
            )

    async def _write_value(self, item: Item, column: BoardColumn, raw: Any) -> ValueChange:
        canonical = validate_value(
            column,
            raw,
            item_id=str(item.id),
            item_exists=self._item_exists_str,
        )
        key = (item.id, column.id)
        existing = self._values.get(key)
        previous = UNSET if existing is None else existing.value
        if existing is not None and previous == canonical:
            return ValueChange(item.id, column, previous, canonical, existing)
        now = utcnow()
        if existing is None:
            record = ColumnValue(
                item_id=item.id,
                column_id=column.id,
                value=canonical,
                created_at=now,
                updated_at=now,
            )
        else:
            record = revise(existing, value=canonical, updated_at=now)
        touched = revise(item, updated_at=now)
        await self._save(record, touched)
        self._values[key] = record
        self._items[item.id] = touched
        logger.debug(
            "board.value.set",
            extra={"item_id": str(item.id), "column_id": str(column.id)},
        )
        return ValueChange(item.id, column, previous, canonical, record)

    async def apply_value(self, item_id: UUID, column_id: UUID, raw: Any) -> ValueChange:
        """Validate and store a value, reporting the previous and new value."""
        column = self.get_column(column_id)
        self.get_item(item_id)
        async with self.locks.for_item(item_id).write():
            return await self._write_value(self.get_item(item_id), column, raw)

    async def set_value(self, item_id: UUID, column_id: UUID, raw: Any) -> ColumnValue:
        """Validate `raw` against the column type and replace the stored value."""
        change = await self.apply_value(item_id, column_id, raw)
        return change.record

    async def update_value(
        self,
        item_id: UUID,
        column_id: UUID,
        fn: Callable[[Any], Any],
    ) -> ValueChange:
        """Read-modify-write one cell while holding the item write lock."""
        column = self.get_column(column_id)
        self.get_item(item_id)
        async with self.locks.for_item(item_id).write():
            item = self.get_item(item_id)
            return await self._write_value(item, column, fn(self._stored(item_id, column_id)))

    # ------------------------------------------------------------------
    # Groups and items
    # ------------------------------------------------------------------

    def list_groups(self) -> list[Group]:
        return sorted(self._groups.values(), key=lambda group: group.position)

    def get_group(self, group_id: UUID) -> Group:
        group = self._groups.get(group_id)
        if group is None:
            raise NotFoundError("group", group_id)
        return group

    def get_item(self, item_id: UUID) -> Item:
        item = self._items.get(item_id)
        if item is None:
            raise NotFoundError("item", item_id)
        return item

    def has_item(self, item_id: UUID) -> bool:
        return item_id in self._items

    def list_items(
        self,
        *,
        group_id: UUID | None = None,
        include_archived: bool = False,
        include_subitems: bool = True,
    ) -> list[Item]:
        group_order = {group.id: group.position for group in self._groups.values()}
        items = [
            item
            for item in self._items.values()
            if (group_id is None or item.group_id == group_id)
            and (include_archived or not item.is_archived)
            and (include_subitems or item.parent_item_id is None)
        ]
        return sorted(items, key=lambda item: (group_order.get(item.group_id, 0), item.position))

    def subitems(self, item_id: UUID) -> list[Item]:
        children = [item for item in self._items.values() if item.parent_item_id == item_id]
        return sorted(children, key=lambda item: item.position)

    def updates(self, item_id: UUID) -> list[ItemUpdate]:
        self.get_item(item_id)
        return list(self._updates.get(item_id, []))

    def _next_item_position(self, group_id: UUID, parent_item_id: UUID | None) -> int:
        positions = [
            item.position
            for item in self._items.values()
            if item.group_id == group_id and item.parent_item_id == parent_item_id
        ]
        return max(positions, default=-1) + 1

    async def create_group(self, title: str, *, color: str | None = None) -> Group:
        if not title or not title.strip():
            raise InvalidSettingsError("Group title must not be blank.")
        position = max((group.position for group in self._groups.values()), default=-1) + 1
        group = Group(board_id=self.board_id, title=title.strip(), color=color, position=position)
        await self._save(group)
        self._groups[group.id] = group
        return group

    async def create_item(
        self,
        group_id: UUID | None,
        name: str,
        *,
        parent_item_id: UUID | None = None,
        description: str | None = None,
        priority: Priority | str = Priority.MEDIUM,
        due_date: datetime | None = None,
        creator_id: str | None = None,
    ) -> Item:
        """Create an item at the end of its group, or a subitem under a top-level item."""
        if parent_item_id is not None:
            parent = self.get_item(parent_item_id)
            if parent.parent_item_id is not None:
                raise InvalidItemHierarchyError(
                    "Subitems cannot have subitems of their own.",
                    parent_item_id=parent_item_id,
                )
            group_id = parent.group_id
        if group_id is None:
            raise NotFoundError("group", None)
        self.get_group(group_id)
        if not name or not name.strip():
            raise ValueTypeMismatchError("Item name must not be blank.")
        now = utcnow()
        item = Item(
            board_id=self.board_id,
            group_id=group_id,
            parent_item_id=parent_item_id,
            name=name.strip(),
            description=description,
            position=self._next_item_position(group_id, parent_item_id),
            priority=Priority(priority),
            due_date=as_naive_utc(due_date) if due_date is not None else None,
            creator_id=creator_id,
            created_at=now,
            updated_at=now,
        )
        await self._save(item)
        self._items[item.id] = item
        logger.info(
            "board.item.created",
            extra={"board_id": str(self.board_id), "item_id": str(item.id)},
        )
        return item

    async def update_item(self, item_id: UUID, **changes: Any) -> Item:
        """Change plain item fields: name, description, priority or due date."""
        allowed = {"name", "description", "priority", "due_date"}
        unknown = set(changes) - allowed
        if unknown:
            raise ValueTypeMismatchError("Unknown item fields.", fields=sorted(unknown))
        if "priority" in changes:
            changes["priority"] = Priority(changes["priority"])
        if changes.get("due_date") is not None:
            changes["due_date"] = as_naive_utc(changes["due_date"])
        self.get_item(item_id)
        async with self.locks.for_item(item_id).write():
            revised = revise(self.get_item(item_id), **changes, updated_at=utcnow())
            await self._save(revised)
            self._items[item_id] = revised
            return revised

    async def duplicate_item(self, item_id: UUID, *, creator_id: str | None = None) -> Item:
        """Copy an item with its written values to the end of the same group."""
        self.get_item(item_id)
        async with self.locks.for_item(item_id).read():
            source = self.get_item(item_id)
            copied = {
                column.id: self._stored(item_id, column.id)
                for column in self.list_columns()
                if not lookup(column.column_type).computed
                and self._stored(item_id, column.id) is not UNSET
            }
        now = utcnow()
        duplicate = Item(
            board_id=self.board_id,
            group_id=source.group_id,
            parent_item_id=source.parent_item_id,
            name=f"{source.name}{COPY_SUFFIX}",
            description=source.description,
            position=self._next_item_position(source.group_id, source.parent_item_id),
            priority=source.priority,
            due_date=source.due_date,
            creator_id=creator_id if creator_id is not None else source.creator_id,
            created_at=now,
            updated_at=now,
        )
        records = [
            ColumnValue(
                item_id=duplicate.id,
                column_id=column_id,
                value=value,
                created_at=now,
                updated_at=now,
            )
            for column_id, value in copied.items()
        ]
        await self._save(duplicate, *records)
        self._items[duplicate.id] = duplicate
        for record in records:
            self._values[(duplicate.id, record.column_id)] = record
        return duplicate

    async def move_item(self, item_id: UUID, group_id: UUID) -> ItemMove:
        """Move an item (and its subitems) to the end of another group."""
        self.get_group(group_id)
        item = self.get_item(item_id)
        if item.parent_item_id is not None:
            raise InvalidItemHierarchyError(
                "Subitems move with their parent item.",
                item_id=item_id,
            )
        async with self.locks.for_item(item_id).write():
            item = self.get_item(item_id)
            from_group_id = item.group_id
            if from_group_id == group_id:
                return ItemMove(item, from_group_id, group_id)
            now = utcnow()
            moved = revise(
                item,
                group_id=group_id,
                position=self._next_item_position(group_id, None),
                updated_at=now,
            )
            children = [
                revise(child, group_id=group_id, updated_at=now)
                for child in self.subitems(item_id)
            ]
            await self._save(moved, *children)
            self._items[item_id] = moved
            for child in children:
                self._items[child.id] = child
        logger.info(
            "board.item.moved",
            extra={
                "item_id": str(item_id),
                "from_group_id": str(from_group_id),
                "to_group_id": str(group_id),
            },
        )
        return ItemMove(moved, from_group_id, group_id)

    async def _set_archived(self, item_id: UUID, archived: bool) -> Item:
        self.get_item(item_id)
        async with self.locks.for_item(item_id).write():
            item = self.get_item(item_id)
            if item.is_archived == archived:
                return item
            now = utcnow()
            revised = revise(
                item,
                is_archived=archived,
                archived_at=now if archived else None,
                updated_at=now,
            )
            await self._save(revised)
            self._items[item_id] = revised
            return revised

    async def archive_item(self, item_id: UUID) -> Item:
        return await self._set_archived(item_id, True)

    async def restore_item(self, item_id: UUID) -> Item:
        return await self._set_archived(item_id, False)

    async def delete_item(
        self,
        item_id: UUID,
        *,
        cascade_subitems: bool | None = None,
    ) -> list[UUID]:
        """Permanently delete an item with its values, updates and inbound edges.

        Returns the ids of every deleted item.
        """
        self.get_item(item_id)
        cascade = self._cascade_subitems if cascade_subitems is None else cascade_subitems
        children = self.subitems(item_id)
        if children and not cascade:
            raise ItemHasSubitemsError(
                "Item has subitems; delete them first or cascade.",
                item_id=item_id,
                subitems=len(children),
            )
        async with self.locks.for_item(item_id).write():
            doomed = [item_id, *(child.id for child in self.subitems(item_id))]
            await self._purge(doomed)
        for deleted_id in doomed:
            self.locks.discard(deleted_id)
        logger.info(
            "board.item.deleted",
            extra={"board_id": str(self.board_id), "item_ids": [str(i) for i in doomed]},
        )
        return doomed

    async def _purge(self, item_ids: list[UUID]) -> None:
        doomed = set(item_ids)
        doomed_str = {str(item_id) for item_id in doomed}
        values = [record for key, record in self._values.items() if key[0] in doomed]
        updates = [update for item_id in item_ids for update in self._updates.get(item_id, [])]
        now = utcnow()
        edge_items = [
            revise(
                item,
                dependency_ids=[dep for dep in item.dependency_ids if dep not in doomed_str],
                updated_at=now,
            )
            for item in self._items.values()
            if item.id not in doomed and doomed_str.intersection(item.dependency_ids)
        ]
        edge_values = [
            revise(
                record,
                value=[dep for dep in record.value if dep not in doomed_str],
                updated_at=now,
            )
            for key, record in self._values.items()
            if key[0] not in doomed
            and self._columns[key[1]].column_type == ColumnType.DEPENDENCY
            and isinstance(record.value, list)
            and doomed_str.intersection(record.value)
        ]
        await self._delete(*values, *updates)
        await self._delete(*(self._items[item_id] for item_id in reversed(item_ids)))
        await self._save(*edge_items, *edge_values)
        for record in values:
            self._values.pop((record.item_id, record.column_id), None)
        for item_id in item_ids:
            self._updates.pop(item_id, None)
            self._items.pop(item_id, None)
        for item in edge_items:
            self._items[item.id] = item
        for record in edge_values:
            self._values[(record.item_id, record.column_id)] = record

    async def add_dependency(self, item_id: UUID, depends_on_id: UUID) -> Item:
        """Record that `item_id` depends on `depends_on_id`. Cycles are allowed."""
        self.get_item(depends_on_id)
        if item_id == depends_on_id:
            raise ValueOutOfRangeError("An item cannot depend on itself.", item_id=item_id)
        self.get_item(item_id)
        async with self.locks.for_item(item_id).write():
            item = self.get_item(item_id)
            if str(depends_on_id) in item.dependency_ids:
                return item
            revised = revise(
                item,
                dependency_ids=[*item.dependency_ids, str(depends_on_id)],
                updated_at=utcnow(),
            )
            await self._save(revised)
            self._items[item_id] = revised
            return revised

    async def remove_dependency(self, item_id: UUID, depends_on_id: UUID) -> Item:
        self.get_item(item_id)
        async with self.locks.for_item(item_id).write():
            item = self.get_item(item_id)
            if str(depends_on_id) not in item.dependency_ids:
                return item
            revised = revise(
                item,
                dependency_ids=[dep for dep in item.dependency_ids if dep != str(depends_on_id)],
                updated_at=utcnow(),
            )
            await self._save(revised)
            self._items[item_id] = revised
            return revised

    async def add_update(
        self,
        item_id: UUID,
        body: str,
        *,
        author_id: str | None = None,
    ) -> ItemUpdate:
        """Post a text update on an item."""
        self.get_item(item_id)
        if not body or not body.strip():
            raise ValueTypeMismatchError("Update body must not be blank.", item_id=item_id)
        update = ItemUpdate(item_id=item_id, author_id=author_id, body=body.strip())
        await self._save(update)
        self._updates.setdefault(item_id, []).append(update)
        return update


def filter_items(
    store: BoardStore,
    filters: Iterable[Mapping[str, Any]],
    *,
    include_archived: bool = False,
) -> list[Item]:
    """Return items matching every `{column_id, values}` filter.

    A set-valued cell matches when any of its members is listed.
    """
    criteria: list[tuple[UUID, list[Any]]] = []
    for entry in filters:
        column = store.get_column(UUID(str(entry["column_id"])))
        criteria.append((column.id, list(entry.get("values") or [])))

    def _matches(item: Item) -> bool:
        for column_id, accepted in criteria:
            value = store.peek_value(item.id, column_id)
            if isinstance(value, list):
                if not any(member in accepted for member in value):
                    return False
            elif value is UNSET or value not in accepted:
                return False
        return True

    return [item for item in store.list_items(include_archived=include_archived) if _matches(item)]
