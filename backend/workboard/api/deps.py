"""Reusable FastAPI dependencies for board access and actor resolution.

Routers never touch the registry directly: they take the open board through
`BOARD_DEP` and the caller identity through `ACTOR_DEP`.
"""

from __future__ import annotations

from uuid import UUID

from fastapi import Depends, Header, Request

from workboard.services.board_registry import BoardContext, BoardRegistry

ACTOR_HEADER = "X-Actor-Id"


def get_registry(request: Request) -> BoardRegistry:
    """Return the process-wide board registry installed by the app lifespan."""
    registry: BoardRegistry = request.app.state.registry
    return registry


REGISTRY_DEP = Depends(get_registry)


async def get_board_context(
    board_id: UUID,
    registry: BoardRegistry = REGISTRY_DEP,
) -> BoardContext:
    """Load the board on first access; unknown boards raise a 404 domain error."""
    return await registry.open_board(board_id)


def get_actor_id(x_actor_id: str | None = Header(default=None)) -> str | None:
    """Caller identity recorded on activity entries; anonymous when absent."""
    if x_actor_id is None:
        return None
    return x_actor_id.strip() or None


BOARD_DEP = Depends(get_board_context)
ACTOR_DEP = Depends(get_actor_id)
