"""Structured error payload schemas used by API responses."""

from __future__ import annotations

from pydantic import Field
from sqlmodel import SQLModel


class ErrorResponse(SQLModel):
    """Error envelope produced by the global exception handlers."""

    detail: str | dict[str, object] | list[object] = Field(
        description=(
            "Error payload. Domain errors carry `code`, `message` and optional "
            "`context`; validation errors carry the field error list."
        ),
        examples=[
            "Not Found",
            {"code": "not_found", "message": "column not found."},
        ],
    )
    request_id: str | None = Field(
        default=None,
        description="Request correlation identifier injected by middleware.",
    )
    code: str | None = Field(
        default=None,
        description="Machine-readable error code for domain errors.",
        examples=["value_type_mismatch", "invalid_automation"],
    )
