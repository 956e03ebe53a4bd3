"""Schemas for automation definitions, runs and inbound events."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlmodel import Field, SQLModel

from workboard.models.automations import RunStatus

RUNTIME_ANNOTATION_TYPES = (datetime, UUID)


class AutomationCreate(SQLModel):
    """Payload for creating an automation.

    `trigger`, `conditions` and `actions` use the flat `{"type": ...}` rule
    shape; a nested `config` object is also accepted.
    """

    name: str
    description: str | None = None
    trigger: dict[str, Any] | None = None
    conditions: list[dict[str, Any]] = Field(default_factory=list)
    actions: list[dict[str, Any]] = Field(default_factory=list)
    is_active: bool = True


class AutomationUpdate(SQLModel):
    """Partial automation update; omitted fields keep their value."""

    name: str | None = None
    description: str | None = None
    trigger: dict[str, Any] | None = None
    conditions: list[dict[str, Any]] | None = None
    actions: list[dict[str, Any]] | None = None
    is_active: bool | None = None


class AutomationToggle(SQLModel):
    is_active: bool


class AutomationRead(SQLModel):
    id: UUID
    board_id: UUID
    name: str
    description: str | None = None
    is_active: bool
    trigger: dict[str, Any]
    conditions: list[dict[str, Any]]
    actions: list[dict[str, Any]]
    created_by: str | None = None
    created_at: datetime
    updated_at: datetime
    last_run: datetime | None = None
    run_count: int


class AutomationRunRead(SQLModel):
    id: UUID
    automation_id: UUID
    board_id: UUID
    event_type: str
    item_id: UUID | None = None
    depth: int
    status: RunStatus
    failed_action_index: int | None = None
    error: str | None = None
    action_results: list[dict[str, Any]] = Field(default_factory=list)
    started_at: datetime
    finished_at: datetime | None = None
    duration_ms: int | None = None


class BoardEventIn(SQLModel):
    """Inbound event reported by an external mutation source.

    `type` is a trigger type such as `status_change`; `payload` holds the
    event fields, e.g. `item_id`, `column_id`, `old_value`, `new_value`.
    """

    type: str
    payload: dict[str, Any] = Field(default_factory=dict)


class TickRequest(SQLModel):
    now: datetime | None = None


class AutomationPauseState(SQLModel):
    board_id: UUID
    paused: bool
