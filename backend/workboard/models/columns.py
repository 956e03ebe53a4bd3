"""Column definition and per-item column value models."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column, UniqueConstraint
from sqlmodel import Field, SQLModel

from workboard.core.time import utcnow
from workboard.services.column_types import ColumnType

RUNTIME_ANNOTATION_TYPES = (datetime,)


class BoardColumn(SQLModel, table=True):
    """Typed field definition applied to every item on one board."""

    __tablename__ = "board_columns"  # pyright: ignore[reportAssignmentType]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    board_id: UUID = Field(foreign_key="boards.id", index=True)
    title: str
    column_type: ColumnType = Field(index=True)
    position: int = Field(default=0)
    width: int = Field(default=150)
    settings: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON))
    is_visible: bool = Field(default=True)
    # Set when removed while values still reference the column.
    deleted_at: datetime | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


class ColumnValue(SQLModel, table=True):
    """Canonical value stored for one (item, column) pair."""

    __tablename__ = "column_values"  # pyright: ignore[reportAssignmentType]
    __table_args__ = (UniqueConstraint("item_id", "column_id", name="uq_column_value_item_column"),)

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    item_id: UUID = Field(foreign_key="items.id", index=True)
    column_id: UUID = Field(foreign_key="board_columns.id", index=True)
    value: Any = Field(default=None, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
