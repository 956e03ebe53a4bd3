"""Board, group and item endpoints."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Query, status

from workboard.api.deps import ACTOR_DEP, BOARD_DEP, REGISTRY_DEP
from workboard.models import Item
from workboard.schemas.boards import (
    ActivityRead,
    BoardCreate,
    BoardDetail,
    BoardRead,
    DependencyCreate,
    GroupCreate,
    GroupRead,
    ItemCreate,
    ItemDeleteResponse,
    ItemMove,
    ItemRead,
    ItemUpdate,
    UpdateCreate,
    UpdateRead,
)
from workboard.schemas.columns import ColumnRead, ItemFilterQuery
from workboard.services import mutations
from workboard.services.board_registry import BoardContext, BoardRegistry
from workboard.services.board_store import filter_items

router = APIRouter(prefix="/boards", tags=["boards"])


def _item_read(item: object) -> ItemRead:
    return ItemRead.model_validate(item, from_attributes=True)


def _latest(context: BoardContext, item: Item) -> ItemRead:
    # Automations triggered by the mutation may have changed or removed the item.
    store = context.store
    return _item_read(store.get_item(item.id) if store.has_item(item.id) else item)


@router.post("", response_model=BoardRead, status_code=status.HTTP_201_CREATED)
async def create_board(
    payload: BoardCreate,
    registry: BoardRegistry = REGISTRY_DEP,
) -> BoardRead:
    """Create an empty board and open it."""
    context = await registry.create_board(
        payload.name,
        description=payload.description,
        workspace_id=payload.workspace_id,
    )
    return BoardRead.model_validate(context.board, from_attributes=True)


@router.get("/{board_id}", response_model=BoardDetail)
async def get_board(
    include_archived: bool = Query(default=False),
    context: BoardContext = BOARD_DEP,
) -> BoardDetail:
    """Return the board with its groups, columns and items."""
    store = context.store
    detail = BoardDetail.model_validate(context.board, from_attributes=True)
    detail.groups = [GroupRead.model_validate(g, from_attributes=True) for g in store.list_groups()]
    detail.columns = [
        ColumnRead.model_validate(column, from_attributes=True) for column in store.list_columns()
    ]
    detail.items = [
        _item_read(item) for item in store.list_items(include_archived=include_archived)
    ]
    return detail


@router.get("/{board_id}/activity", response_model=list[ActivityRead])
async def list_activity(
    item_id: UUID | None = Query(default=None),
    automation_id: UUID | None = Query(default=None),
    action_prefix: str | None = Query(default=None),
    context: BoardContext = BOARD_DEP,
) -> list[ActivityRead]:
    entries = context.activity.entries(
        item_id=item_id,
        automation_id=automation_id,
        action_prefix=action_prefix,
    )
    return [ActivityRead.model_validate(entry, from_attributes=True) for entry in entries]


@router.post(
    "/{board_id}/groups",
    response_model=GroupRead,
    status_code=status.HTTP_201_CREATED,
)
async def create_group(
    payload: GroupCreate,
    context: BoardContext = BOARD_DEP,
    actor_id: str | None = ACTOR_DEP,
) -> GroupRead:
    group = await mutations.create_group(
        context,
        payload.title,
        color=payload.color,
        actor_id=actor_id,
    )
    return GroupRead.model_validate(group, from_attributes=True)


@router.post(
    "/{board_id}/items",
    response_model=ItemRead,
    status_code=status.HTTP_201_CREATED,
)
async def create_item(
    payload: ItemCreate,
    context: BoardContext = BOARD_DEP,
    actor_id: str | None = ACTOR_DEP,
) -> ItemRead:
    """Create an item; `item_created` automations run before the response."""
    item = await mutations.create_item(
        context,
        payload.group_id,
        payload.name,
        parent_item_id=payload.parent_item_id,
        description=payload.description,
        priority=payload.priority,
        due_date=payload.due_date,
        actor_id=actor_id,
    )
    return _latest(context, item)


@router.post("/{board_id}/items/filter", response_model=list[ItemRead])
async def filter_board_items(
    payload: ItemFilterQuery,
    context: BoardContext = BOARD_DEP,
) -> list[ItemRead]:
    items = filter_items(
        context.store,
        [entry.model_dump(mode="json") for entry in payload.filters],
        include_archived=payload.include_archived,
    )
    return [_item_read(item) for item in items]


@router.get("/{board_id}/items/{item_id}", response_model=ItemRead)
async def get_item(item_id: UUID, context: BoardContext = BOARD_DEP) -> ItemRead:
    return _item_read(context.store.get_item(item_id))


@router.patch("/{board_id}/items/{item_id}", response_model=ItemRead)
async def update_item(
    item_id: UUID,
    payload: ItemUpdate,
    context: BoardContext = BOARD_DEP,
    actor_id: str | None = ACTOR_DEP,
) -> ItemRead:
    # Explicit nulls clear the optional fields only.
    changes = {
        key: value
        for key, value in payload.model_dump(exclude_unset=True).items()
        if value is not None or key in {"description", "due_date"}
    }
    item = await mutations.update_item(context, item_id, actor_id=actor_id, **changes)
    return _item_read(item)


@router.get("/{board_id}/items/{item_id}/subitems", response_model=list[ItemRead])
async def list_subitems(item_id: UUID, context: BoardContext = BOARD_DEP) -> list[ItemRead]:
    context.store.get_item(item_id)
    return [_item_read(item) for item in context.store.subitems(item_id)]


@router.post("/{board_id}/items/{item_id}/move", response_model=ItemRead)
async def move_item(
    item_id: UUID,
    payload: ItemMove,
    context: BoardContext = BOARD_DEP,
    actor_id: str | None = ACTOR_DEP,
) -> ItemRead:
    item = await mutations.move_item(context, item_id, payload.group_id, actor_id=actor_id)
    return _latest(context, item)


@router.post(
    "/{board_id}/items/{item_id}/duplicate",
    response_model=ItemRead,
    status_code=status.HTTP_201_CREATED,
)
async def duplicate_item(
    item_id: UUID,
    context: BoardContext = BOARD_DEP,
    actor_id: str | None = ACTOR_DEP,
) -> ItemRead:
    duplicate = await mutations.duplicate_item(context, item_id, actor_id=actor_id)
    return _item_read(duplicate)


@router.post("/{board_id}/items/{item_id}/archive", response_model=ItemRead)
async def archive_item(
    item_id: UUID,
    context: BoardContext = BOARD_DEP,
    actor_id: str | None = ACTOR_DEP,
) -> ItemRead:
    return _item_read(await mutations.set_archived(context, item_id, True, actor_id=actor_id))


@router.post("/{board_id}/items/{item_id}/restore", response_model=ItemRead)
async def restore_item(
    item_id: UUID,
    context: BoardContext = BOARD_DEP,
    actor_id: str | None = ACTOR_DEP,
) -> ItemRead:
    return _item_read(await mutations.set_archived(context, item_id, False, actor_id=actor_id))


@router.delete("/{board_id}/items/{item_id}", response_model=ItemDeleteResponse)
async def delete_item(
    item_id: UUID,
    cascade_subitems: bool | None = Query(default=None),
    context: BoardContext = BOARD_DEP,
    actor_id: str | None = ACTOR_DEP,
) -> ItemDeleteResponse:
    """Delete an item permanently.

    Items with subitems are rejected with 409 unless `cascade_subitems` is set
    or the board defaults to cascading.
    """
    deleted = await mutations.delete_item(
        context,
        item_id,
        cascade_subitems=cascade_subitems,
        actor_id=actor_id,
    )
    return ItemDeleteResponse(deleted_item_ids=deleted)


@router.get("/{board_id}/items/{item_id}/updates", response_model=list[UpdateRead])
async def list_updates(item_id: UUID, context: BoardContext = BOARD_DEP) -> list[UpdateRead]:
    context.store.get_item(item_id)
    return [
        UpdateRead.model_validate(update, from_attributes=True)
        for update in context.store.updates(item_id)
    ]


@router.post(
    "/{board_id}/items/{item_id}/updates",
    response_model=UpdateRead,
    status_code=status.HTTP_201_CREATED,
)
async def post_update(
    item_id: UUID,
    payload: UpdateCreate,
    context: BoardContext = BOARD_DEP,
    actor_id: str | None = ACTOR_DEP,
) -> UpdateRead:
    update = await mutations.post_update(context, item_id, payload.body, actor_id=actor_id)
    return UpdateRead.model_validate(update, from_attributes=True)


@router.post("/{board_id}/items/{item_id}/dependencies", response_model=ItemRead)
async def add_dependency(
    item_id: UUID,
    payload: DependencyCreate,
    context: BoardContext = BOARD_DEP,
    actor_id: str | None = ACTOR_DEP,
) -> ItemRead:
    item = await mutations.link_dependency(
        context,
        item_id,
        payload.depends_on_id,
        actor_id=actor_id,
    )
    return _item_read(item)


@router.delete("/{board_id}/items/{item_id}/dependencies/{depends_on_id}", response_model=ItemRead)
async def remove_dependency(
    item_id: UUID,
    depends_on_id: UUID,
    context: BoardContext = BOARD_DEP,
    actor_id: str | None = ACTOR_DEP,
) -> ItemRead:
    item = await mutations.link_dependency(
        context,
        item_id,
        depends_on_id,
        linked=False,
        actor_id=actor_id,
    )
    return _item_read(item)
