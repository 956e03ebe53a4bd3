"""Closed variant models for automation triggers, conditions and actions.

Definitions are stored on `Automation` as JSON. Each entry is a flat object
with a `type` discriminator, e.g. ``{"type": "status_is", "value": "Done"}``.
A nested ``config`` object, as produced by the board builder, is accepted
and flattened.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Annotated, Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, model_validator

from workboard.core.errors import InvalidAutomationError
from workboard.models.items import Priority

Operator = Literal["AND", "OR"]


class _Rule(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    @model_validator(mode="before")
    @classmethod
    def _flatten_config(cls, data: Any) -> Any:
        if isinstance(data, dict) and isinstance(data.get("config"), dict):
            flattened = {key: value for key, value in data.items() if key not in {"config", "id"}}
            return {**data["config"], **flattened}
        if isinstance(data, dict) and "id" in data:
            return {key: value for key, value in data.items() if key != "id"}
        return data


# ---------------------------------------------------------------------------
# Triggers
# ---------------------------------------------------------------------------


class StatusChangeTrigger(_Rule):
    type: Literal["status_change"] = "status_change"
    column_id: UUID | None = None
    from_value: str | None = None
    to_value: str | None = None


class DateArrivesTrigger(_Rule):
    type: Literal["date_arrives"] = "date_arrives"
    column_id: UUID | None = None


class ItemCreatedTrigger(_Rule):
    type: Literal["item_created"] = "item_created"
    group_id: UUID | None = None


class ItemMovedTrigger(_Rule):
    type: Literal["item_moved"] = "item_moved"
    from_group_id: UUID | None = None
    to_group_id: UUID | None = None


class ColumnChangedTrigger(_Rule):
    type: Literal["column_changed"] = "column_changed"
    column_id: UUID | None = None


class AssignmentAddedTrigger(_Rule):
    type: Literal["assignment_added"] = "assignment_added"
    column_id: UUID | None = None
    user_id: str | None = None


class DueDateApproachingTrigger(_Rule):
    type: Literal["due_date_approaching"] = "due_date_approaching"
    column_id: UUID | None = None
    # Falls back to DUE_DATE_DEFAULT_LEAD_HOURS.
    lead_hours: float | None = Field(default=None, gt=0)


class FileUploadedTrigger(_Rule):
    type: Literal["file_uploaded"] = "file_uploaded"
    column_id: UUID | None = None


Trigger = Annotated[
    StatusChangeTrigger
    | DateArrivesTrigger
    | ItemCreatedTrigger
    | ItemMovedTrigger
    | ColumnChangedTrigger
    | AssignmentAddedTrigger
    | DueDateApproachingTrigger
    | FileUploadedTrigger,
    Field(discriminator="type"),
]


# ---------------------------------------------------------------------------
# Conditions
# ---------------------------------------------------------------------------


class _Condition(_Rule):
    # Ignored on the first condition of a list.
    operator: Operator | None = None


class StatusIsCondition(_Condition):
    type: Literal["status_is"] = "status_is"
    value: str
    column_id: UUID | None = None


class PriorityIsCondition(_Condition):
    type: Literal["priority_is"] = "priority_is"
    value: Priority


class AssigneeIsCondition(_Condition):
    type: Literal["assignee_is"] = "assignee_is"
    value: str
    column_id: UUID | None = None


class ColumnValueCondition(_Condition):
    type: Literal["column_value"] = "column_value"
    column_id: UUID
    value: Any = None


class DateIsCondition(_Condition):
    type: Literal["date_is"] = "date_is"
    value: date
    column_id: UUID | None = None


class HasLabelCondition(_Condition):
    type: Literal["has_label"] = "has_label"
    value: str
    column_id: UUID | None = None


class IsOverdueCondition(_Condition):
    type: Literal["is_overdue"] = "is_overdue"
    column_id: UUID | None = None


Condition = Annotated[
    StatusIsCondition
    | PriorityIsCondition
    | AssigneeIsCondition
    | ColumnValueCondition
    | DateIsCondition
    | HasLabelCondition
    | IsOverdueCondition,
    Field(discriminator="type"),
]


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------


class ChangeStatusAction(_Rule):
    type: Literal["change_status"] = "change_status"
    value: str
    column_id: UUID | None = None


class SetDateAction(_Rule):
    type: Literal["set_date"] = "set_date"
    column_id: UUID | None = None
    value: datetime | date | None = None
    offset_days: int | None = None

    @model_validator(mode="after")
    def _one_source(self) -> SetDateAction:
        if (self.value is None) == (self.offset_days is None):
            raise ValueError("set_date needs exactly one of `value` or `offset_days`.")
        return self


class ChangeColumnAction(_Rule):
    type: Literal["change_column"] = "change_column"
    column_id: UUID
    value: Any = None


class AssignPersonAction(_Rule):
    type: Literal["assign_person"] = "assign_person"
    user_id: str = Field(min_length=1)
    column_id: UUID | None = None


class AddLabelAction(_Rule):
    type: Literal["add_label"] = "add_label"
    label: str = Field(min_length=1)
    column_id: UUID | None = None


class SendNotificationAction(_Rule):
    type: Literal["send_notification"] = "send_notification"
    message: str = ""
    recipient_ids: list[str] = Field(default_factory=list)


class CreateItemAction(_Rule):
    type: Literal["create_item"] = "create_item"
    name: str = Field(min_length=1)
    group_id: UUID | None = None
    as_subitem: bool = False


class DuplicateItemAction(_Rule):
    type: Literal["duplicate_item"] = "duplicate_item"


class MoveToGroupAction(_Rule):
    type: Literal["move_to_group"] = "move_to_group"
    group_id: UUID


class AddUpdateAction(_Rule):
    type: Literal["add_update"] = "add_update"
    body: str = Field(min_length=1)


class ArchiveItemAction(_Rule):
    type: Literal["archive_item"] = "archive_item"


class DeleteItemAction(_Rule):
    type: Literal["delete_item"] = "delete_item"
    cascade_subitems: bool | None = None


Action = Annotated[
    ChangeStatusAction
    | SetDateAction
    | ChangeColumnAction
    | AssignPersonAction
    | AddLabelAction
    | SendNotificationAction
    | CreateItemAction
    | DuplicateItemAction
    | MoveToGroupAction
    | AddUpdateAction
    | ArchiveItemAction
    | DeleteItemAction,
    Field(discriminator="type"),
]

TRIGGER_ADAPTER: TypeAdapter[Trigger] = TypeAdapter(Trigger)
CONDITIONS_ADAPTER: TypeAdapter[list[Condition]] = TypeAdapter(list[Condition])
ACTIONS_ADAPTER: TypeAdapter[list[Action]] = TypeAdapter(list[Action])


def _invalid(part: str, exc: ValidationError) -> InvalidAutomationError:
    errors = [
        f"{'.'.join(str(loc) for loc in error['loc'])}: {error['msg']}"
        for error in exc.errors()
    ]
    return InvalidAutomationError(f"Invalid automation {part}.", errors=errors)


def parse_trigger(raw: Any) -> Trigger:
    if raw is None:
        raise InvalidAutomationError("Automations require a trigger.")
    try:
        return TRIGGER_ADAPTER.validate_python(raw)
    except ValidationError as exc:
        raise _invalid("trigger", exc) from exc


def parse_conditions(raw: Any) -> list[Condition]:
    if raw is not None and not isinstance(raw, (list, tuple)):
        raise InvalidAutomationError("Automation conditions must be a list.")
    try:
        return CONDITIONS_ADAPTER.validate_python(list(raw or []))
    except ValidationError as exc:
        raise _invalid("conditions", exc) from exc


def parse_actions(raw: Any) -> list[Action]:
    if not raw:
        raise InvalidAutomationError("Automations require at least one action.")
    if not isinstance(raw, (list, tuple)):
        raise InvalidAutomationError("Automation actions must be a list.")
    try:
        return ACTIONS_ADAPTER.validate_python(list(raw))
    except ValidationError as exc:
        raise _invalid("actions", exc) from exc


def dump_rule(rule: BaseModel) -> dict[str, Any]:
    return rule.model_dump(mode="json", exclude_none=True)
