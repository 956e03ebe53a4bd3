"""Health probe response schema."""

from __future__ import annotations

from pydantic import Field
from sqlmodel import SQLModel


class HealthStatusResponse(SQLModel):
    """Standard payload for service liveness checks."""

    ok: bool = Field(
        description="Indicates whether the probe check succeeded.",
        examples=[True],
    )
    boards_open: int = Field(
        default=0,
        description="Number of boards currently loaded in memory.",
        examples=[2],
    )
