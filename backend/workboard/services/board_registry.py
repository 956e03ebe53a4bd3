"""Lifecycle of open boards: one store, activity log and engine per board."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING

from workboard.core.config import settings
from workboard.core.errors import NotFoundError
from workboard.core.logging import get_logger
from workboard.models import Board
from workboard.services.activity import ActivityLog
from workboard.services.automations.engine import AutomationEngine
from workboard.services.board_store import BoardStore
from workboard.services.persistence import BoardPersistence, NullPersistence, bounded

if TYPE_CHECKING:
    from datetime import datetime
    from uuid import UUID

    from workboard.services.notifications.queue import Notifier

logger = get_logger(__name__)


@dataclass(frozen=True)
class BoardContext:
    """Everything needed to mutate and automate one open board."""

    store: BoardStore
    engine: AutomationEngine
    activity: ActivityLog

    @property
    def board(self) -> Board:
        return self.store.board


class BoardRegistry:
    """Opens boards on demand and tears them down on unload."""

    def __init__(
        self,
        *,
        persistence: BoardPersistence | None = None,
        notifier: Notifier | None = None,
    ) -> None:
        self._persistence: BoardPersistence = persistence or NullPersistence()
        self._notifier = notifier
        self._boards: dict[UUID, BoardContext] = {}
        self._loading: dict[UUID, asyncio.Future[BoardContext]] = {}

    def __contains__(self, board_id: UUID) -> bool:
        return board_id in self._boards

    def __len__(self) -> int:
        return len(self._boards)

    def _context(self, store: BoardStore) -> BoardContext:
        activity = ActivityLog(store.board_id, persistence=self._persistence)
        engine = AutomationEngine(
            store,
            activity,
            notifier=self._notifier,
            persistence=self._persistence,
        )
        return BoardContext(store=store, engine=engine, activity=activity)

    async def create_board(
        self,
        name: str,
        *,
        description: str = "",
        workspace_id: UUID | None = None,
    ) -> BoardContext:
        board = Board(name=name, description=description, workspace_id=workspace_id)
        await bounded(
            self._persistence.save(board),
            timeout=settings.collaborator_timeout_seconds,
            operation="save Board",
        )
        context = self._context(BoardStore(board, persistence=self._persistence))
        self._boards[board.id] = context
        logger.info("board.opened", extra={"board_id": str(board.id), "created": True})
        return context

    async def open_board(self, board_id: UUID) -> BoardContext:
        """Return the open board, loading it from persistence when needed.

        Concurrent first opens of the same board share a single load.
        """
        existing = self._boards.get(board_id)
        if existing is not None:
            return existing
        pending = self._loading.get(board_id)
        if pending is None:
            pending = asyncio.ensure_future(self._load_board(board_id))
            self._loading[board_id] = pending
            pending.add_done_callback(lambda _: self._loading.pop(board_id, None))
        return await asyncio.shield(pending)

    async def _load_board(self, board_id: UUID) -> BoardContext:
        snapshot = await bounded(
            self._persistence.load_board(board_id),
            timeout=settings.collaborator_timeout_seconds,
            operation="load Board",
        )
        if snapshot is None:
            raise NotFoundError("board", board_id)
        context = self._context(BoardStore.from_snapshot(snapshot, persistence=self._persistence))
        context.engine.load(snapshot.automations, snapshot.runs)
        self._boards[board_id] = context
        logger.info("board.opened", extra={"board_id": str(board_id), "created": False})
        return context

    def get(self, board_id: UUID) -> BoardContext:
        context = self._boards.get(board_id)
        if context is None:
            raise NotFoundError("board", board_id)
        return context

    def close_board(self, board_id: UUID) -> bool:
        """Drop the in-memory state of a board. Returns False if it was not open."""
        context = self._boards.pop(board_id, None)
        if context is None:
            return False
        context.engine.pause_all()
        logger.info("board.closed", extra={"board_id": str(board_id)})
        return True

    def close_all(self) -> None:
        for board_id in list(self._boards):
            self.close_board(board_id)

    async def tick_all(self, now: datetime | None = None) -> int:
        """Run time-driven triggers on every open board; returns the run count.

        A board whose tick fails is logged and skipped.
        """
        total = 0
        for board_id, context in list(self._boards.items()):
            try:
                total += len(await context.engine.tick(now))
            except Exception:
                logger.exception("board.tick.failed", extra={"board_id": str(board_id)})
        return total
