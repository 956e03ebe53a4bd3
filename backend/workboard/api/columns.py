"""Column definition and item value endpoints."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, status

from workboard.api.deps import ACTOR_DEP, BOARD_DEP
from workboard.schemas.automations import AutomationRunRead
from workboard.schemas.columns import (
    ColumnCreate,
    ColumnOrder,
    ColumnRead,
    ColumnRemoveResponse,
    ColumnTypeRead,
    ColumnUpdate,
    ColumnUpdateResponse,
    ItemValuesRead,
    ValueRead,
    ValueWrite,
    VisibilityUpdate,
)
from workboard.schemas.errors import ErrorResponse
from workboard.services import mutations
from workboard.services.board_registry import BoardContext
from workboard.services.column_types import list_column_types

router = APIRouter(prefix="/boards", tags=["columns"])
column_types_router = APIRouter(prefix="/column-types", tags=["columns"])


class ValueWriteResponse(ValueRead):
    """Stored value plus the automation runs its change triggered."""

    changed: bool
    automation_runs: list[AutomationRunRead] = []


@column_types_router.get("", response_model=list[ColumnTypeRead])
async def list_types() -> list[ColumnTypeRead]:
    """List every registered column type."""
    return [
        ColumnTypeRead.model_validate(definition, from_attributes=True)
        for definition in list_column_types()
    ]


@router.get("/{board_id}/columns", response_model=list[ColumnRead])
async def list_columns(
    include_hidden: bool = True,
    context: BoardContext = BOARD_DEP,
) -> list[ColumnRead]:
    columns = context.store.list_columns(include_hidden=include_hidden)
    return [ColumnRead.model_validate(column, from_attributes=True) for column in columns]


@router.post(
    "/{board_id}/columns",
    response_model=ColumnRead,
    status_code=status.HTTP_201_CREATED,
)
async def create_column(
    payload: ColumnCreate,
    context: BoardContext = BOARD_DEP,
    actor_id: str | None = ACTOR_DEP,
) -> ColumnRead:
    """Define a typed column; settings are validated for the column type."""
    column = await mutations.define_column(
        context,
        payload.title,
        payload.column_type,
        payload.settings,
        width=payload.width,
        actor_id=actor_id,
    )
    return ColumnRead.model_validate(column, from_attributes=True)


@router.put("/{board_id}/columns/order", response_model=list[ColumnRead])
async def reorder_columns(
    payload: ColumnOrder,
    context: BoardContext = BOARD_DEP,
) -> list[ColumnRead]:
    columns = await context.store.reorder_columns(payload.column_ids)
    return [ColumnRead.model_validate(column, from_attributes=True) for column in columns]


@router.patch("/{board_id}/columns/{column_id}", response_model=ColumnUpdateResponse)
async def update_column(
    column_id: UUID,
    payload: ColumnUpdate,
    context: BoardContext = BOARD_DEP,
    actor_id: str | None = ACTOR_DEP,
) -> ColumnUpdateResponse:
    column, dropped = await mutations.change_column(
        context,
        column_id,
        fields=payload.model_dump(exclude_unset=True),
        actor_id=actor_id,
    )
    response = ColumnUpdateResponse.model_validate(column, from_attributes=True)
    response.dropped_values = dropped
    return response


@router.delete("/{board_id}/columns/{column_id}", response_model=ColumnRemoveResponse)
async def delete_column(
    column_id: UUID,
    context: BoardContext = BOARD_DEP,
    actor_id: str | None = ACTOR_DEP,
) -> ColumnRemoveResponse:
    """Remove a column; columns still holding values are kept as hidden tombstones."""
    hard_deleted = await mutations.remove_column(context, column_id, actor_id=actor_id)
    return ColumnRemoveResponse(hard_deleted=hard_deleted)


@router.put("/{board_id}/columns/{column_id}/visibility", response_model=ColumnRead)
async def set_visibility(
    column_id: UUID,
    payload: VisibilityUpdate,
    context: BoardContext = BOARD_DEP,
) -> ColumnRead:
    column = await context.store.set_column_visibility(column_id, payload.is_visible)
    return ColumnRead.model_validate(column, from_attributes=True)


@router.get("/{board_id}/items/{item_id}/values", response_model=ItemValuesRead)
async def get_item_values(item_id: UUID, context: BoardContext = BOARD_DEP) -> ItemValuesRead:
    values = await context.store.get_values(item_id)
    return ItemValuesRead(
        item_id=item_id,
        values={str(column_id): value for column_id, value in values.items()},
    )


@router.post(
    "/{board_id}/items/{item_id}/values",
    response_model=ValueWriteResponse,
    responses={
        404: {"model": ErrorResponse, "description": "Item or column does not exist"},
        422: {"model": ErrorResponse, "description": "Value does not satisfy the column type"},
    },
)
async def write_item_value(
    item_id: UUID,
    payload: ValueWrite,
    context: BoardContext = BOARD_DEP,
    actor_id: str | None = ACTOR_DEP,
) -> ValueWriteResponse:
    """Validate and store one cell value, then run the automations it triggers."""
    change, runs = await mutations.write_value(
        context,
        item_id,
        payload.column_id,
        payload.value,
        actor_id=actor_id,
    )
    return ValueWriteResponse(
        item_id=item_id,
        column_id=payload.column_id,
        value=change.current,
        updated_at=change.record.updated_at,
        changed=change.changed,
        automation_runs=[AutomationRunRead.model_validate(run, from_attributes=True) for run in runs],
    )
