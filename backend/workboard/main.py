"""FastAPI application entrypoint and router wiring for the workboard backend."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager, suppress
from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends, FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel.ext.asyncio.session import AsyncSession

from workboard.api.automations import router as automations_router
from workboard.api.boards import router as boards_router
from workboard.api.columns import column_types_router
from workboard.api.columns import router as columns_router
from workboard.core.config import settings
from workboard.core.error_handling import install_error_handling
from workboard.core.logging import configure_logging, get_logger
from workboard.db.session import async_session_maker, get_session, init_db
from workboard.schemas.health import HealthStatusResponse
from workboard.services.board_registry import BoardRegistry
from workboard.services.notifications.queue import QueueNotifier
from workboard.services.persistence import BoardPersistence, NullPersistence, SqlBoardPersistence

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

configure_logging()
logger = get_logger(__name__)
SESSION_DEP = Depends(get_session)
OPENAPI_TAGS = [
    {
        "name": "health",
        "description": "Service liveness/readiness probes used by infrastructure checks.",
    },
    {
        "name": "boards",
        "description": "Board, group and item lifecycle plus the board activity feed.",
    },
    {
        "name": "columns",
        "description": "Typed column definitions and validated per-item column values.",
    },
    {
        "name": "automations",
        "description": (
            "Automation rules, run history, pause/resume, time ticks and inbound "
            "event ingestion."
        ),
    },
]


async def _tick_once(registry: BoardRegistry) -> int:
    try:
        runs = await registry.tick_all()
    except Exception:
        logger.exception("automation.ticker.failed", extra={"boards": len(registry)})
        return 0
    if runs:
        logger.info("automation.ticker.ran", extra={"runs": runs, "boards": len(registry)})
    return runs


async def _tick_loop(registry: BoardRegistry, interval: float) -> None:
    while True:
        await asyncio.sleep(interval)
        await _tick_once(registry)


@asynccontextmanager
async def lifespan(fastapi_app: FastAPI) -> AsyncIterator[None]:
    """Initialize the board registry and its collaborators before serving requests."""
    logger.info(
        "app.lifecycle.starting",
        extra={
            "environment": settings.environment,
            "db_persistence_enabled": settings.db_persistence_enabled,
        },
    )
    persistence: BoardPersistence = NullPersistence()
    if settings.db_persistence_enabled:
        await init_db()
        persistence = SqlBoardPersistence(async_session_maker)
    registry = BoardRegistry(persistence=persistence, notifier=QueueNotifier())
    fastapi_app.state.registry = registry
    ticker: asyncio.Task[None] | None = None
    if settings.automation_tick_interval_seconds > 0:
        ticker = asyncio.create_task(
            _tick_loop(registry, settings.automation_tick_interval_seconds),
        )
    logger.info("app.lifecycle.started")
    try:
        yield
    finally:
        if ticker is not None:
            ticker.cancel()
            with suppress(asyncio.CancelledError):
                await ticker
        registry.close_all()
        logger.info("app.lifecycle.stopped")


app = FastAPI(
    title="Workboard API",
    version="0.1.0",
    lifespan=lifespan,
    openapi_tags=OPENAPI_TAGS,
)

origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
if origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    logger.info("app.cors.enabled", extra={"origins_count": len(origins)})
else:
    logger.info("app.cors.disabled")

install_error_handling(app)


@app.get(
    "/healthz",
    tags=["health"],
    response_model=HealthStatusResponse,
    summary="Health Check",
    description="Liveness probe reporting how many boards are loaded.",
    responses={
        status.HTTP_200_OK: {
            "description": "Service is alive.",
            "content": {"application/json": {"example": {"ok": True, "boards_open": 0}}},
        },
    },
)
def healthz(request: Request) -> HealthStatusResponse:
    """Return liveness status for the service."""
    registry: BoardRegistry | None = getattr(request.app.state, "registry", None)
    return HealthStatusResponse(ok=True, boards_open=len(registry) if registry is not None else 0)


@app.get(
    "/readyz",
    tags=["health"],
    response_model=HealthStatusResponse,
    summary="Readiness Check",
    description="Readiness probe; checks the database when persistence is enabled.",
)
async def readyz(session: AsyncSession = SESSION_DEP) -> HealthStatusResponse:
    """Return readiness status for the service."""
    if not settings.db_persistence_enabled:
        return HealthStatusResponse(ok=True)
    try:
        await session.exec(text("SELECT 1"))  # type: ignore[call-overload]
    except SQLAlchemyError:
        logger.warning("app.readiness.database_unavailable", exc_info=True)
        return HealthStatusResponse(ok=False)
    return HealthStatusResponse(ok=True)


api_v1 = APIRouter(prefix="/api/v1")
api_v1.include_router(boards_router)
api_v1.include_router(columns_router)
api_v1.include_router(column_types_router)
api_v1.include_router(automations_router)

app.include_router(api_v1)
