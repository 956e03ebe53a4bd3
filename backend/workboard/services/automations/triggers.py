"""Pure trigger matching against inbound board events."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import TYPE_CHECKING, assert_never
from uuid import UUID

from workboard.core.config import settings
from workboard.core.time import as_naive_utc
from workboard.services.automations.events import (
    AssignmentAdded,
    ColumnChanged,
    DateArrived,
    DueDateApproaching,
    FileUploaded,
    ItemCreated,
    ItemMoved,
    StatusChanged,
)
from workboard.services.automations.rules import (
    AssignmentAddedTrigger,
    ColumnChangedTrigger,
    DateArrivesTrigger,
    DueDateApproachingTrigger,
    FileUploadedTrigger,
    ItemCreatedTrigger,
    ItemMovedTrigger,
    StatusChangeTrigger,
)

if TYPE_CHECKING:
    from workboard.services.automations.events import BoardEvent
    from workboard.services.automations.rules import Trigger


def lead_time(trigger: DueDateApproachingTrigger) -> timedelta:
    hours = trigger.lead_hours or settings.due_date_default_lead_hours
    return timedelta(hours=hours)


def _same(expected: UUID | str | None, actual: UUID | str | None) -> bool:
    """An unset filter matches anything."""
    return expected is None or expected == actual


def matches(trigger: Trigger, event: BoardEvent, *, now: datetime) -> bool:
    """Return whether `trigger` fires for `event` at time `now`."""
    if trigger.type != event.trigger_type:
        return False
    match trigger:
        case StatusChangeTrigger():
            return (
                isinstance(event, StatusChanged)
                and _same(trigger.column_id, event.column_id)
                and _same(trigger.from_value, event.old_value)
                and _same(trigger.to_value, event.new_value)
            )
        case DateArrivesTrigger():
            return (
                isinstance(event, DateArrived)
                and _same(trigger.column_id, event.column_id)
                and as_naive_utc(event.date) <= as_naive_utc(now)
            )
        case ItemCreatedTrigger():
            return isinstance(event, ItemCreated) and _same(trigger.group_id, event.group_id)
        case ItemMovedTrigger():
            return (
                isinstance(event, ItemMoved)
                and _same(trigger.from_group_id, event.from_group_id)
                and _same(trigger.to_group_id, event.to_group_id)
            )
        case ColumnChangedTrigger():
            return isinstance(event, ColumnChanged) and _same(trigger.column_id, event.column_id)
        case AssignmentAddedTrigger():
            return (
                isinstance(event, AssignmentAdded)
                and _same(trigger.column_id, event.column_id)
                and _same(trigger.user_id, event.user_id)
            )
        case DueDateApproachingTrigger():
            return (
                isinstance(event, DueDateApproaching)
                and _same(trigger.column_id, event.column_id)
                and event.lead_time <= lead_time(trigger)
            )
        case FileUploadedTrigger():
            return isinstance(event, FileUploaded) and _same(trigger.column_id, event.column_id)
        case _:
            assert_never(trigger)
