"""Per-item single-writer/multiple-reader locks for board stores."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from uuid import UUID


class ReadWriteLock:
    """Asyncio read/write lock that prefers waiting writers over new readers."""

    def __init__(self) -> None:
        self._condition = asyncio.Condition()
        self._readers = 0
        self._writer = False
        self._waiting_writers = 0

    @property
    def readers(self) -> int:
        return self._readers

    @property
    def write_locked(self) -> bool:
        return self._writer

    @asynccontextmanager
    async def read(self) -> AsyncIterator[None]:
        async with self._condition:
            await self._condition.wait_for(
                lambda: not self._writer and self._waiting_writers == 0,
            )
            self._readers += 1
        try:
            yield
        finally:
            async with self._condition:
                self._readers -= 1
                if self._readers == 0:
                    self._condition.notify_all()

    @asynccontextmanager
    async def write(self) -> AsyncIterator[None]:
        async with self._condition:
            self._waiting_writers += 1
            try:
                await self._condition.wait_for(lambda: not self._writer and self._readers == 0)
            finally:
                self._waiting_writers -= 1
            self._writer = True
        try:
            yield
        finally:
            async with self._condition:
                self._writer = False
                self._condition.notify_all()


class ItemLocks:
    """Lazily created read/write lock per item id."""

    def __init__(self) -> None:
        self._locks: dict[UUID, ReadWriteLock] = {}

    def for_item(self, item_id: UUID) -> ReadWriteLock:
        lock = self._locks.get(item_id)
        if lock is None:
            lock = ReadWriteLock()
            self._locks[item_id] = lock
        return lock

    def discard(self, item_id: UUID) -> None:
        self._locks.pop(item_id, None)

    def __len__(self) -> int:
        return len(self._locks)
