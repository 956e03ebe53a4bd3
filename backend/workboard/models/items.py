"""Item models: board rows, subitems and posted updates."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

from workboard.core.time import utcnow

RUNTIME_ANNOTATION_TYPES = (datetime,)


class Priority(str, Enum):
    """Item priority levels."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class Item(SQLModel, table=True):
    """Board row owned by a group, optionally nested one level under a parent item."""

    __tablename__ = "items"  # pyright: ignore[reportAssignmentType]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    board_id: UUID = Field(foreign_key="boards.id", index=True)
    group_id: UUID = Field(foreign_key="groups.id", index=True)
    parent_item_id: UUID | None = Field(default=None, foreign_key="items.id", index=True)

    name: str
    description: str | None = None
    position: int = Field(default=0)
    priority: Priority = Field(default=Priority.MEDIUM, index=True)
    due_date: datetime | None = None
    is_archived: bool = Field(default=False, index=True)
    archived_at: datetime | None = None
    creator_id: str | None = None
    # Weak edges to items this one depends on; cycles are allowed.
    dependency_ids: list[str] = Field(default_factory=list, sa_column=Column(JSON))

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class ItemUpdate(SQLModel, table=True):
    """Text update posted on an item by a user or an automation."""

    __tablename__ = "item_updates"  # pyright: ignore[reportAssignmentType]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    item_id: UUID = Field(foreign_key="items.id", index=True)
    author_id: str | None = None
    body: str
    created_at: datetime = Field(default_factory=utcnow)
