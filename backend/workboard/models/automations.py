"""Automation definitions and their run history."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

from workboard.core.time import utcnow

RUNTIME_ANNOTATION_TYPES = (datetime,)


class RunStatus(str, Enum):
    """Terminal outcome of one automation run."""

    SUCCESS = "success"
    PARTIAL_FAILURE = "partial_failure"
    CYCLE_DETECTED = "cycle_detected"
    PAUSED = "paused"


class Automation(SQLModel, table=True):
    """Board automation: one trigger, ordered conditions, ordered non-empty actions."""

    __tablename__ = "automations"  # pyright: ignore[reportAssignmentType]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    board_id: UUID = Field(foreign_key="boards.id", index=True)
    name: str
    description: str | None = None
    is_active: bool = Field(default=True, index=True)
    trigger: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    conditions: list[dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON))
    actions: list[dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON))
    created_by: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    # Run metadata, written only by the engine.
    last_run: datetime | None = None
    run_count: int = Field(default=0)


class AutomationRun(SQLModel, table=True):
    """One end-to-end pipeline execution of an automation for a single event."""

    __tablename__ = "automation_runs"  # pyright: ignore[reportAssignmentType]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    automation_id: UUID = Field(foreign_key="automations.id", index=True)
    board_id: UUID = Field(foreign_key="boards.id", index=True)
    event_type: str = Field(index=True)
    item_id: UUID | None = Field(default=None, index=True)
    depth: int = Field(default=0)
    # Set on runs fired by a time-driven event; reloaded to keep them one-shot.
    fired_key: str | None = Field(default=None, index=True)
    status: RunStatus = Field(default=RunStatus.SUCCESS, index=True)
    failed_action_index: int | None = None
    error: str | None = None
    action_results: list[dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON))
    started_at: datetime = Field(default_factory=utcnow)
    finished_at: datetime | None = None
    duration_ms: int | None = None
