from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tableboard.config import get_settings
from tableboard.database import async_session_factory, close_db, init_db
from tableboard.services.board_session import BoardSession
from tableboard.services.seed_service import SeedService
from tableboard.store.sql import SqlRowStore
from tableboard.websocket.board import board_ws_manager, register_board_websocket

# Import all models to register them with Base BEFORE init_db
from tableboard.models import ReservationRecord, TableRecord  # noqa: F401

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

settings = get_settings()
LOGGER = logging.getLogger("table-board")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown events."""
    try:
        await init_db()
        LOGGER.info("Database initialized")
    except Exception as e:
        LOGGER.error("Database initialization failed: %s", e)
        raise

    store = SqlRowStore(async_session_factory)

    if settings.auto_seed_tables:
        try:
            result = await SeedService(store).ensure_default_tables(
                settings.default_table_count,
                settings.default_table_capacity,
                settings.capacity_override_map,
            )
            LOGGER.info("Roster check: %s", result)
        except Exception as e:
            LOGGER.warning("Default roster seeding failed: %s", e)

    session = BoardSession(store, settings=settings)
    await session.start()
    board_ws_manager.attach(session.board)
    app.state.board_session = session

    yield

    # Shutdown
    await board_ws_manager.close()
    await session.stop()
    await store.close()
    await close_db()


app = FastAPI(
    title="Table Board",
    description="Live table status and reservation book shared across host stands",
    version="1.0.0",
    lifespan=lifespan,
)

# Configure CORS (needed for browser preflight requests)
if settings.is_development:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )
else:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


@app.get("/healthz")
async def health_check() -> dict:
    """Health check endpoint."""
    return {"status": "ok", "service": "table-board"}


# Include API routers
from tableboard.api import reservations_router, tables_router  # noqa: E402

app.include_router(tables_router)
app.include_router(reservations_router)
register_board_websocket(app)
