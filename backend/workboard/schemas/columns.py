"""Schemas for column definitions and item column values."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlmodel import Field, SQLModel

from workboard.services.column_types import ColumnType

RUNTIME_ANNOTATION_TYPES = (datetime, UUID)


class ColumnTypeRead(SQLModel):
    """Registered column type and its descriptive metadata."""

    type: ColumnType
    label: str
    description: str
    default_width: int
    supports_multiple: bool = False
    requires_settings: bool = False
    computed: bool = False


class ColumnCreate(SQLModel):
    """Payload for defining a new column on a board."""

    title: str
    column_type: ColumnType
    settings: dict[str, Any] | None = None
    width: int | None = Field(default=None, ge=1)


class ColumnUpdate(SQLModel):
    """Partial column update.

    Sending `column_type` retypes the column and drops values that no longer
    validate. Sending `settings` (even `null`) replaces the settings.
    """

    title: str | None = None
    column_type: ColumnType | None = None
    settings: dict[str, Any] | None = None
    width: int | None = Field(default=None, ge=1)


class ColumnRead(SQLModel):
    id: UUID
    board_id: UUID
    title: str
    column_type: ColumnType
    position: int
    width: int
    settings: dict[str, Any] | None = None
    is_visible: bool
    deleted_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class ColumnUpdateResponse(ColumnRead):
    dropped_values: int = 0


class ColumnRemoveResponse(SQLModel):
    ok: bool = True
    # False when the column was kept as a hidden, deleted tombstone.
    hard_deleted: bool


class ColumnOrder(SQLModel):
    column_ids: list[UUID]


class VisibilityUpdate(SQLModel):
    is_visible: bool


class ValueWrite(SQLModel):
    """Raw value for one cell; `null` clears it."""

    column_id: UUID
    value: Any = None


class ValueRead(SQLModel):
    item_id: UUID
    column_id: UUID
    value: Any = None
    updated_at: datetime | None = None


class ItemValuesRead(SQLModel):
    """Every set value of an item keyed by column id, computed columns included."""

    item_id: UUID
    values: dict[str, Any] = Field(default_factory=dict)


class ItemFilter(SQLModel):
    column_id: UUID
    values: list[Any] = Field(default_factory=list)


class ItemFilterQuery(SQLModel):
    filters: list[ItemFilter] = Field(default_factory=list)
    include_archived: bool = False
