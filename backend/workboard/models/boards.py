"""Board and group models."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlmodel import Field, SQLModel

from workboard.core.time import utcnow

RUNTIME_ANNOTATION_TYPES = (datetime,)


class Board(SQLModel, table=True):
    """Tenant-visible project container owning columns, groups and automations."""

    __tablename__ = "boards"  # pyright: ignore[reportAssignmentType]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    workspace_id: UUID | None = Field(default=None, index=True)
    name: str
    description: str = Field(default="")
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Group(SQLModel, table=True):
    """Ordered subdivision of a board that owns items."""

    __tablename__ = "groups"  # pyright: ignore[reportAssignmentType]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    board_id: UUID = Field(foreign_key="boards.id", index=True)
    title: str
    color: str | None = None
    position: int = Field(default=0)
    created_at: datetime = Field(default_factory=utcnow)
