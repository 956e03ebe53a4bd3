"""Schemas for board, group and item API operations."""

from __future__ import annotations

from datetime import datetime
from typing import Self
from uuid import UUID

from pydantic import model_validator
from sqlmodel import Field, SQLModel

from workboard.models.items import Priority
from workboard.schemas.columns import ColumnRead

_ERR_NAME_REQUIRED = "name is required"
RUNTIME_ANNOTATION_TYPES = (datetime, UUID)


class BoardCreate(SQLModel):
    """Payload for creating a board."""

    name: str
    description: str = ""
    workspace_id: UUID | None = None

    @model_validator(mode="after")
    def validate_name(self) -> Self:
        name = self.name.strip()
        if not name:
            raise ValueError(_ERR_NAME_REQUIRED)
        self.name = name
        return self


class BoardRead(SQLModel):
    """Board payload returned from read endpoints."""

    id: UUID
    workspace_id: UUID | None = None
    name: str
    description: str
    created_at: datetime
    updated_at: datetime


class GroupCreate(SQLModel):
    title: str
    color: str | None = None


class GroupRead(SQLModel):
    id: UUID
    board_id: UUID
    title: str
    color: str | None = None
    position: int
    created_at: datetime


class ItemCreate(SQLModel):
    """Payload for creating an item, or a subitem when `parent_item_id` is set."""

    name: str
    group_id: UUID | None = None
    parent_item_id: UUID | None = None
    description: str | None = None
    priority: Priority = Priority.MEDIUM
    due_date: datetime | None = None


class ItemUpdate(SQLModel):
    """Partial update of plain item fields."""

    name: str | None = None
    description: str | None = None
    priority: Priority | None = None
    due_date: datetime | None = None


class ItemMove(SQLModel):
    group_id: UUID


class ItemRead(SQLModel):
    """Item payload returned from read endpoints."""

    id: UUID
    board_id: UUID
    group_id: UUID
    parent_item_id: UUID | None = None
    name: str
    description: str | None = None
    position: int
    priority: Priority
    due_date: datetime | None = None
    is_archived: bool
    archived_at: datetime | None = None
    creator_id: str | None = None
    dependency_ids: list[str] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class ItemDeleteResponse(SQLModel):
    deleted_item_ids: list[UUID]


class UpdateCreate(SQLModel):
    body: str


class UpdateRead(SQLModel):
    id: UUID
    item_id: UUID
    author_id: str | None = None
    body: str
    created_at: datetime


class DependencyCreate(SQLModel):
    depends_on_id: UUID


class ActivityRead(SQLModel):
    id: UUID
    board_id: UUID
    item_id: UUID | None = None
    actor_id: str | None = None
    actor_type: str
    action: str
    target_type: str
    target_id: UUID | None = None
    automation_id: UUID | None = None
    payload: dict[str, object] | None = None
    created_at: datetime


class BoardDetail(BoardRead):
    """Board with its groups, visible and hidden columns, and live items."""

    groups: list[GroupRead] = Field(default_factory=list)
    columns: list[ColumnRead] = Field(default_factory=list)
    items: list[ItemRead] = Field(default_factory=list)
