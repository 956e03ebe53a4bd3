"""Automation definition, run history and event ingestion endpoints."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import TypeAdapter, ValidationError

from workboard.api.deps import ACTOR_DEP, BOARD_DEP
from workboard.core.logging import get_logger
from workboard.schemas.automations import (
    AutomationCreate,
    AutomationPauseState,
    AutomationRead,
    AutomationRunRead,
    AutomationToggle,
    AutomationUpdate,
    BoardEventIn,
    TickRequest,
)
from workboard.schemas.errors import ErrorResponse
from workboard.services.automations.events import EVENT_TYPES, BoardEvent
from workboard.services.board_registry import BoardContext
from workboard.services.mutations import emit

router = APIRouter(prefix="/boards", tags=["automations"])
logger = get_logger(__name__)

_EVENT_ADAPTERS = {
    trigger_type: TypeAdapter(event_type) for trigger_type, event_type in EVENT_TYPES.items()
}


def _automation_read(automation: object) -> AutomationRead:
    return AutomationRead.model_validate(automation, from_attributes=True)


def _run_reads(runs: list[object]) -> list[AutomationRunRead]:
    return [AutomationRunRead.model_validate(run, from_attributes=True) for run in runs]


def _parse_event(payload: BoardEventIn) -> BoardEvent:
    adapter = _EVENT_ADAPTERS.get(payload.type)
    if adapter is None:
        raise HTTPException(
            status_code=422,
            detail={
                "message": f"Unknown event type: {payload.type}.",
                "event_types": sorted(_EVENT_ADAPTERS),
            },
        )
    try:
        return adapter.validate_python(payload.payload)
    except ValidationError as exc:
        raise HTTPException(
            status_code=422,
            detail=[
                {"loc": list(error["loc"]), "msg": error["msg"], "type": error["type"]}
                for error in exc.errors()
            ],
        ) from exc


@router.get("/{board_id}/automations", response_model=list[AutomationRead])
async def list_automations(
    active_only: bool = Query(default=False),
    context: BoardContext = BOARD_DEP,
) -> list[AutomationRead]:
    automations = context.engine.list_automations(active_only=active_only)
    return [_automation_read(automation) for automation in automations]


@router.post(
    "/{board_id}/automations",
    response_model=AutomationRead,
    status_code=status.HTTP_201_CREATED,
    responses={
        422: {"model": ErrorResponse, "description": "Trigger, conditions or actions are invalid"},
    },
)
async def create_automation(
    payload: AutomationCreate,
    context: BoardContext = BOARD_DEP,
    actor_id: str | None = ACTOR_DEP,
) -> AutomationRead:
    """Create an automation.

    Rejects definitions without a trigger or actions, malformed rules, and
    rules that reference unknown columns or groups.
    """
    automation = await context.engine.create(
        payload.name,
        payload.trigger,
        payload.conditions,
        payload.actions,
        description=payload.description,
        is_active=payload.is_active,
        created_by=actor_id,
    )
    return _automation_read(automation)


@router.post("/{board_id}/automations/pause", response_model=AutomationPauseState)
async def pause_automations(context: BoardContext = BOARD_DEP) -> AutomationPauseState:
    """Stop running automations on the board until resumed."""
    context.engine.pause_all()
    return AutomationPauseState(board_id=context.board.id, paused=True)


@router.post("/{board_id}/automations/resume", response_model=AutomationPauseState)
async def resume_automations(context: BoardContext = BOARD_DEP) -> AutomationPauseState:
    context.engine.resume_all()
    return AutomationPauseState(board_id=context.board.id, paused=False)


@router.post("/{board_id}/automations/tick", response_model=list[AutomationRunRead])
async def tick_automations(
    payload: TickRequest | None = None,
    context: BoardContext = BOARD_DEP,
) -> list[AutomationRunRead]:
    """Fire time-driven triggers that are due as of `now` (defaults to the current time)."""
    runs = await context.engine.tick(payload.now if payload is not None else None)
    return _run_reads(list(runs))


@router.get("/{board_id}/automations/{automation_id}", response_model=AutomationRead)
async def get_automation(
    automation_id: UUID,
    context: BoardContext = BOARD_DEP,
) -> AutomationRead:
    return _automation_read(context.engine.get(automation_id))


@router.patch("/{board_id}/automations/{automation_id}", response_model=AutomationRead)
async def update_automation(
    automation_id: UUID,
    payload: AutomationUpdate,
    context: BoardContext = BOARD_DEP,
) -> AutomationRead:
    updates = payload.model_dump(exclude_unset=True)
    automation = await context.engine.update(automation_id, **updates)
    return _automation_read(automation)


@router.delete(
    "/{board_id}/automations/{automation_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def delete_automation(
    automation_id: UUID,
    context: BoardContext = BOARD_DEP,
) -> None:
    await context.engine.delete(automation_id)


@router.post("/{board_id}/automations/{automation_id}/toggle", response_model=AutomationRead)
async def toggle_automation(
    automation_id: UUID,
    payload: AutomationToggle,
    context: BoardContext = BOARD_DEP,
) -> AutomationRead:
    automation = await context.engine.toggle(automation_id, payload.is_active)
    return _automation_read(automation)


@router.get(
    "/{board_id}/automations/{automation_id}/runs",
    response_model=list[AutomationRunRead],
)
async def list_runs(
    automation_id: UUID,
    limit: int | None = Query(default=None, ge=1),
    context: BoardContext = BOARD_DEP,
) -> list[AutomationRunRead]:
    """Recent runs, newest first."""
    return _run_reads(list(context.engine.list_runs(automation_id, limit)))


@router.post("/{board_id}/events", response_model=list[AutomationRunRead])
async def ingest_event(
    payload: BoardEventIn,
    context: BoardContext = BOARD_DEP,
) -> list[AutomationRunRead]:
    """Report a board event from an external mutation source and run matching automations."""
    event = _parse_event(payload)
    logger.info(
        "automation.event.ingested",
        extra={"board_id": str(context.board.id), "event_type": event.trigger_type},
    )
    runs = await emit(context, [event])
    return _run_reads(list(runs))
