"""Persistence collaborators for board stores.

The store never talks to a database directly. It awaits a `BoardPersistence`
for every record it changes and only updates memory after the call returns.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol, TypeVar

from sqlmodel import SQLModel, col, select

from workboard.core.errors import CollaboratorTimeoutError
from workboard.core.logging import get_logger
from workboard.models import (
    Automation,
    AutomationRun,
    Board,
    BoardColumn,
    ColumnValue,
    Group,
    Item,
    ItemUpdate,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable
    from uuid import UUID

    from sqlalchemy.ext.asyncio import async_sessionmaker
    from sqlmodel.ext.asyncio.session import AsyncSession

logger = get_logger(__name__)

RecordT = TypeVar("RecordT", bound=SQLModel)
T = TypeVar("T")


def revise(record: RecordT, **changes: Any) -> RecordT:
    """Return a validated copy of a record with `changes` applied."""
    return type(record).model_validate({**record.model_dump(), **changes})


@dataclass
class BoardSnapshot:
    """Every stored record of one board, used to rehydrate a store."""

    board: Board
    groups: list[Group] = field(default_factory=list)
    columns: list[BoardColumn] = field(default_factory=list)
    items: list[Item] = field(default_factory=list)
    values: list[ColumnValue] = field(default_factory=list)
    updates: list[ItemUpdate] = field(default_factory=list)
    automations: list[Automation] = field(default_factory=list)
    runs: list[AutomationRun] = field(default_factory=list)


class BoardPersistence(Protocol):
    async def save(self, record: SQLModel) -> None: ...

    async def delete(self, record: SQLModel) -> None: ...

    async def load_board(self, board_id: UUID) -> BoardSnapshot | None: ...


class NullPersistence:
    """In-memory only boards: every call succeeds without storing anything."""

    async def save(self, record: SQLModel) -> None:
        return None

    async def delete(self, record: SQLModel) -> None:
        return None

    async def load_board(self, board_id: UUID) -> BoardSnapshot | None:
        return None


class SqlBoardPersistence:
    """SQLModel-backed persistence; each call runs in its own session."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]) -> None:
        self._session_maker = session_maker

    async def save(self, record: SQLModel) -> None:
        async with self._session_maker() as session:
            await session.merge(record)
            await session.commit()

    async def delete(self, record: SQLModel) -> None:
        async with self._session_maker() as session:
            existing = await session.get(type(record), record.id)  # type: ignore[attr-defined]
            if existing is None:
                return
            await session.delete(existing)
            await session.commit()

    async def load_board(self, board_id: UUID) -> BoardSnapshot | None:
        async with self._session_maker() as session:
            board = await session.get(Board, board_id)
            if board is None:
                return None
            groups = list(
                await session.exec(
                    select(Group).where(col(Group.board_id) == board_id).order_by(col(Group.position)),
                ),
            )
            columns = list(
                await session.exec(
                    select(BoardColumn)
                    .where(col(BoardColumn.board_id) == board_id)
                    .order_by(col(BoardColumn.position)),
                ),
            )
            items = list(
                await session.exec(
                    select(Item).where(col(Item.board_id) == board_id).order_by(col(Item.position)),
                ),
            )
            item_ids = [item.id for item in items]
            values: list[ColumnValue] = []
            updates: list[ItemUpdate] = []
            if item_ids:
                values = list(
                    await session.exec(
                        select(ColumnValue).where(col(ColumnValue.item_id).in_(item_ids)),
                    ),
                )
                updates = list(
                    await session.exec(
                        select(ItemUpdate)
                        .where(col(ItemUpdate.item_id).in_(item_ids))
                        .order_by(col(ItemUpdate.created_at)),
                    ),
                )
            automations = list(
                await session.exec(
                    select(Automation)
                    .where(col(Automation.board_id) == board_id)
                    .order_by(col(Automation.created_at)),
                ),
            )
            runs = list(
                await session.exec(
                    select(AutomationRun)
                    .where(col(AutomationRun.board_id) == board_id)
                    .order_by(col(AutomationRun.started_at)),
                ),
            )
        logger.info(
            "persistence.board.loaded",
            extra={"board_id": str(board_id), "items": len(items), "columns": len(columns)},
        )
        return BoardSnapshot(
            board=board,
            groups=groups,
            columns=columns,
            items=items,
            values=values,
            updates=updates,
            automations=automations,
            runs=runs,
        )


async def bounded(call: Awaitable[T], *, timeout: float, operation: str) -> T:
    """Await a collaborator call, converting a timeout into a domain error."""
    try:
        return await asyncio.wait_for(call, timeout=timeout)
    except TimeoutError as exc:
        logger.warning(
            "persistence.timeout",
            extra={"operation": operation, "timeout_seconds": timeout},
        )
        raise CollaboratorTimeoutError(
            f"Persistence {operation} did not complete within {timeout}s.",
            operation=operation,
        ) from exc
