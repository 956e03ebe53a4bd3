"""Append-only activity feed entries."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

from workboard.core.time import utcnow

RUNTIME_ANNOTATION_TYPES = (datetime,)


class ActivityEntry(SQLModel, table=True):
    """Activity record for item, column and automation changes on a board."""

    __tablename__ = "activity_entries"  # pyright: ignore[reportAssignmentType]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    board_id: UUID = Field(foreign_key="boards.id", index=True)
    item_id: UUID | None = Field(default=None, index=True)
    actor_id: str | None = Field(default=None, index=True)
    actor_type: str = Field(default="user", index=True)  # user | automation | system
    action: str = Field(index=True)
    target_type: str = Field(default="")
    target_id: UUID | None = None
    automation_id: UUID | None = Field(default=None, index=True)
    payload: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=utcnow)
