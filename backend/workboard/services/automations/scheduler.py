"""Synthesis of time-driven events for `date_arrives` and `due_date_approaching`."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any
from uuid import UUID

from workboard.services.automations.events import DateArrived, DueDateApproaching
from workboard.services.automations.rules import DateArrivesTrigger, DueDateApproachingTrigger
from workboard.services.automations.triggers import lead_time
from workboard.services.column_types import UNSET, ColumnType
from workboard.services.column_values import parse_temporal

if TYPE_CHECKING:
    from collections.abc import Iterable
    from datetime import datetime

    from workboard.services.automations.events import BoardEvent
    from workboard.services.automations.rules import Trigger
    from workboard.services.board_store import BoardStore

_DATE_COLUMN_TYPES = (ColumnType.DATE, ColumnType.DUE_DATE)


@dataclass(frozen=True)
class TimeEvent:
    """A synthesized event plus the key used to fire it at most once."""

    key: tuple[str, UUID, UUID | None, str]
    event: BoardEvent

    @property
    def token(self) -> str:
        """Text form of `key`, stored on the run it produces."""
        return "|".join("" if part is None else str(part) for part in self.key)


def _temporal(value: Any) -> datetime | None:
    if value is UNSET or value is None:
        return None
    try:
        return parse_temporal(value)
    except (TypeError, ValueError):
        return None


def collect_time_events(
    store: BoardStore,
    triggers: Iterable[Trigger],
    *,
    now: datetime,
) -> list[TimeEvent]:
    """Build the time events the given triggers could react to at `now`.

    Archived items are skipped. `DateArrived` covers DATE and DUE_DATE values
    at or before `now`; `DueDateApproaching` covers due dates still ahead of
    `now` within the widest lead window among the triggers.
    """
    trigger_list = list(triggers)
    wants_arrivals = any(isinstance(trigger, DateArrivesTrigger) for trigger in trigger_list)
    leads = [
        lead_time(trigger)
        for trigger in trigger_list
        if isinstance(trigger, DueDateApproachingTrigger)
    ]
    if not wants_arrivals and not leads:
        return []
    widest_lead = max(leads, default=None)
    columns = [
        column for column in store.list_columns() if column.column_type in _DATE_COLUMN_TYPES
    ]
    events: list[TimeEvent] = []
    for item in store.list_items():
        for column in columns:
            moment = _temporal(store.peek_value(item.id, column.id))
            if moment is None:
                continue
            stamp = moment.isoformat()
            if wants_arrivals and moment <= now:
                events.append(
                    TimeEvent(
                        key=(DateArrived.trigger_type, item.id, column.id, stamp),
                        event=DateArrived(column_id=column.id, date=moment, item_id=item.id),
                    ),
                )
            if (
                widest_lead is not None
                and column.column_type == ColumnType.DUE_DATE
                and now <= moment <= now + widest_lead
            ):
                events.append(
                    TimeEvent(
                        key=(DueDateApproaching.trigger_type, item.id, column.id, stamp),
                        event=DueDateApproaching(
                            item_id=item.id,
                            lead_time=moment - now,
                            column_id=column.id,
                            due_date=moment,
                        ),
                    ),
                )
        if widest_lead is not None and item.due_date is not None:
            if now <= item.due_date <= now + widest_lead:
                events.append(
                    TimeEvent(
                        key=(
                            DueDateApproaching.trigger_type,
                            item.id,
                            None,
                            item.due_date.isoformat(),
                        ),
                        event=DueDateApproaching(
                            item_id=item.id,
                            lead_time=item.due_date - now,
                            due_date=item.due_date,
                        ),
                    ),
                )
    return events
