"""SaaS Guard FastAPI application — entry point for the usage API server."""

from __future__ import annotations

from contextlib import asynccontextmanager
from collections.abc import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config.settings import get_settings
from src.api.deps import reset_dependencies
from src.api.middleware import register_error_handlers
from src.core.constants import API_VERSION
from src.core.logging import get_logger, setup_logging
from src.data.db import close_engine, get_engine

log = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Startup/shutdown lifecycle — initialize DB engine when persisting, close on exit."""
    settings = get_settings()
    log.info("api_starting", usage_store=settings.usage_store)
    if settings.usage_store == "postgres":
        await get_engine()
    yield
    reset_dependencies()
    await close_engine()
    log.info("api_shutdown")


def create_app() -> FastAPI:
    """Build and return the FastAPI application."""
    settings = get_settings()
    setup_logging(settings.log_level, json_output=settings.log_json)

    app = FastAPI(
        title="SaaS Guard API",
        description="Usage ledger and limit evaluation — REST API",
        version=API_VERSION,
        lifespan=lifespan,
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_url, "http://localhost:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(app)

    # Register routers
    from src.api.routes.health import router as health_router
    from src.api.routes.usage import features_router, router as usage_router

    app.include_router(health_router, prefix="/api")
    app.include_router(usage_router, prefix="/api")
    app.include_router(features_router, prefix="/api")

    return app


app = create_app()
