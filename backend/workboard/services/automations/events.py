"""Inbound board events that automation triggers listen for."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, ClassVar
from uuid import UUID

from workboard.services.column_types import UNSET, ColumnType
from workboard.services.column_values import file_ids

if TYPE_CHECKING:
    from workboard.services.board_store import ValueChange


@dataclass(frozen=True)
class StatusChanged:
    trigger_type: ClassVar[str] = "status_change"

    item_id: UUID
    column_id: UUID
    old_value: str | None
    new_value: str | None


@dataclass(frozen=True)
class DateArrived:
    trigger_type: ClassVar[str] = "date_arrives"

    column_id: UUID
    date: datetime
    item_id: UUID | None = None


@dataclass(frozen=True)
class ItemCreated:
    trigger_type: ClassVar[str] = "item_created"

    item_id: UUID
    group_id: UUID | None = None


@dataclass(frozen=True)
class ItemMoved:
    trigger_type: ClassVar[str] = "item_moved"

    item_id: UUID
    from_group_id: UUID
    to_group_id: UUID


@dataclass(frozen=True)
class ColumnChanged:
    trigger_type: ClassVar[str] = "column_changed"

    item_id: UUID
    column_id: UUID
    old_value: Any = None
    new_value: Any = None


@dataclass(frozen=True)
class AssignmentAdded:
    trigger_type: ClassVar[str] = "assignment_added"

    item_id: UUID
    user_id: str
    column_id: UUID | None = None


@dataclass(frozen=True)
class DueDateApproaching:
    trigger_type: ClassVar[str] = "due_date_approaching"

    item_id: UUID
    lead_time: timedelta
    column_id: UUID | None = None
    due_date: datetime | None = None


@dataclass(frozen=True)
class FileUploaded:
    trigger_type: ClassVar[str] = "file_uploaded"

    item_id: UUID
    file_id: str
    column_id: UUID | None = None


BoardEvent = (
    StatusChanged
    | DateArrived
    | ItemCreated
    | ItemMoved
    | ColumnChanged
    | AssignmentAdded
    | DueDateApproaching
    | FileUploaded
)

EVENT_TYPES: dict[str, type[BoardEvent]] = {
    event_type.trigger_type: event_type
    for event_type in (
        StatusChanged,
        DateArrived,
        ItemCreated,
        ItemMoved,
        ColumnChanged,
        AssignmentAdded,
        DueDateApproaching,
        FileUploaded,
    )
}


def _plain(value: Any) -> Any:
    return None if value is UNSET else value


def _members(value: Any) -> list[Any]:
    return list(value) if isinstance(value, list) else []


def events_for_change(change: ValueChange) -> list[BoardEvent]:
    """Derive the events a stored value change produces.

    Unchanged writes produce nothing; every real change produces a
    `ColumnChanged` after any type-specific events.
    """
    if not change.changed:
        return []
    column = change.column
    previous = _plain(change.previous)
    current = _plain(change.current)
    events: list[BoardEvent] = []
    match column.column_type:
        case ColumnType.STATUS:
            events.append(StatusChanged(change.item_id, column.id, previous, current))
        case ColumnType.PEOPLE:
            before = set(_members(previous))
            events.extend(
                AssignmentAdded(change.item_id, user_id, column.id)
                for user_id in _members(current)
                if user_id not in before
            )
        case ColumnType.FILES:
            before = set(file_ids(previous))
            events.extend(
                FileUploaded(change.item_id, file_id, column.id)
                for file_id in file_ids(current)
                if file_id not in before
            )
    events.append(ColumnChanged(change.item_id, column.id, previous, current))
    return events
