# @TASK S0-T0.3 - FastAPI application entrypoint

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from inventory_search.config import get_settings
from inventory_search.database import async_session_factory, engine
from inventory_search.search.extensions import (
    ExtensionProber,
    install_extensions,
    validate_database_configuration,
)
from inventory_search.services.rate_limiter import RateLimiter
from inventory_search.services.search_analytics import SearchAnalyticsRecorder

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application lifespan: startup and shutdown events."""
    settings = get_settings()

    # Startup: create all database tables if they don't exist
    from inventory_search.database import Base
    from inventory_search import models  # noqa: F401 - Import models to register them with Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    prober = ExtensionProber(async_session_factory)
    if settings.SEARCH_AUTO_INSTALL_EXTENSIONS:
        await install_extensions(prober, async_session_factory)

    validation = await validate_database_configuration(prober, async_session_factory)
    for warning in validation.warnings:
        logger.warning("Database configuration: %s", warning)

    recorder = SearchAnalyticsRecorder(async_session_factory)
    app.state.capability_prober = prober
    app.state.rate_limiter = RateLimiter(cleanup_probability=settings.RATE_LIMIT_CLEANUP_PROBABILITY)
    app.state.analytics_recorder = recorder

    yield
    # Shutdown: flush pending analytics, then dispose the connection pool
    await recorder.drain()
    await engine.dispose()


app = FastAPI(
    title="Inventory Search",
    description="Household inventory search with extension-aware fallback",
    version="0.1.0",
    lifespan=lifespan,
)

# --- CORS Middleware ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Router includes ---
from inventory_search.api.search import router as search_router  # noqa: E402

app.include_router(search_router, prefix="/api")


@app.get("/api/health", tags=["health"])
async def health_check() -> dict[str, str]:
    """Health check endpoint.

    Returns a simple status response to verify the API is running.
    """
    return {"status": "ok"}
