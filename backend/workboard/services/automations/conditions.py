"""Condition evaluation over an item snapshot.

Conditions form a flat list folded strictly left to right: each entry after
the first combines with the accumulated result through its own operator.
``[A, B(OR), C(AND)]`` therefore means ``(A or B) and C``. There is no
operator precedence. An empty list is true.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import TYPE_CHECKING, Any, assert_never

from workboard.services.automations.rules import (
    AssigneeIsCondition,
    ColumnValueCondition,
    DateIsCondition,
    HasLabelCondition,
    IsOverdueCondition,
    PriorityIsCondition,
    StatusIsCondition,
)
from workboard.services.column_types import UNSET, ColumnType
from workboard.services.column_values import parse_temporal

if TYPE_CHECKING:
    from collections.abc import Sequence
    from uuid import UUID

    from workboard.services.automations.rules import Condition
    from workboard.services.board_store import ItemSnapshot


def evaluate_conditions(
    conditions: Sequence[Condition],
    snapshot: ItemSnapshot,
    *,
    now: datetime,
) -> bool:
    result = True
    for index, condition in enumerate(conditions):
        if index == 0:
            result = evaluate_leaf(condition, snapshot, now=now)
        elif condition.operator == "OR":
            result = result or evaluate_leaf(condition, snapshot, now=now)
        else:
            result = result and evaluate_leaf(condition, snapshot, now=now)
    return result


def _implied_value(
    snapshot: ItemSnapshot,
    column_id: UUID | None,
    column_type: ColumnType,
) -> Any:
    if column_id is not None:
        return snapshot.value(column_id)
    column = snapshot.first_column(column_type)
    return UNSET if column is None else snapshot.value(column.id)


def _contains(value: Any, expected: Any) -> bool:
    if isinstance(value, list):
        return expected in value
    return value == expected


def _as_date(value: Any) -> date | None:
    if value is UNSET or value is None:
        return None
    try:
        return parse_temporal(value).date()
    except (TypeError, ValueError):
        return None


def _due_date(snapshot: ItemSnapshot, column_id: UUID | None) -> datetime | None:
    if column_id is None and snapshot.due_date is not None:
        return snapshot.due_date
    value = _implied_value(snapshot, column_id, ColumnType.DUE_DATE)
    if value is UNSET or value is None:
        return None
    try:
        return parse_temporal(value)
    except (TypeError, ValueError):
        return None


def evaluate_leaf(condition: Condition, snapshot: ItemSnapshot, *, now: datetime) -> bool:
    match condition:
        case StatusIsCondition():
            value = _implied_value(snapshot, condition.column_id, ColumnType.STATUS)
            return value == condition.value
        case PriorityIsCondition():
            return snapshot.priority == condition.value
        case AssigneeIsCondition():
            value = _implied_value(snapshot, condition.column_id, ColumnType.PEOPLE)
            return _contains(value, condition.value)
        case ColumnValueCondition():
            value = snapshot.value(condition.column_id)
            if value is UNSET:
                return condition.value is None
            return value == condition.value or _contains(value, condition.value)
        case DateIsCondition():
            if condition.column_id is None and snapshot.due_date is not None:
                return snapshot.due_date.date() == condition.value
            value = _implied_value(snapshot, condition.column_id, ColumnType.DATE)
            return _as_date(value) == condition.value
        case HasLabelCondition():
            value = _implied_value(snapshot, condition.column_id, ColumnType.LABELS)
            return isinstance(value, list) and condition.value in value
        case IsOverdueCondition():
            due = _due_date(snapshot, condition.column_id)
            return due is not None and due < now
        case _:
            assert_never(condition)
