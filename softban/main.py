"""softban FastAPI application factory + lifespan lifecycle.

This module implements:
  - create_app() — testable application factory
  - lifespan     — @asynccontextmanager startup/shutdown sequence
  - app = create_app() — module-level instance for uvicorn

Startup sequence:
  1. load_config()          → app.state.config
  2. create_block_store()   → durable tier (RuntimeError on schema mismatch refuses startup)
  3. BlockManager(...)      → app.state.block_manager
  4. app.state.ready = True

Shutdown (reverse):
  app.state.ready = False → close block store

Applications that protect their own routes either mount their routers on
this app, or run the same lifespan steps and use softban.api.dependencies.
"""

from __future__ import annotations

import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI

from softban.api.admin import router as admin_router
from softban.api.middleware import AdminLocalhostMiddleware
from softban.config import Config, load_config
from softban.manager import BlockManager
from softban.store.factory import create_block_store
from softban.store.protocol import BlockStore
from softban.utils.logger import configure_logging, get_logger

# ─── Logging Setup ────────────────────────────────────────────────────────────
DEBUG = os.getenv("DEBUG", "false").lower() == "true"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO" if not DEBUG else "DEBUG")
JSON_LOGS = os.getenv("JSON_LOGS", "true").lower() == "true"

configure_logging(log_level=LOG_LEVEL, json_output=JSON_LOGS)
logger = get_logger(__name__)


# ─── Lifespan ─────────────────────────────────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan — startup and shutdown sequence."""
    logger.info("softban starting up...")

    # load_config() raises SystemExit on an invalid config file
    config: Config = load_config()
    app.state.config = config

    store: BlockStore = await create_block_store(config)
    try:
        app.state.block_manager = BlockManager(store, config.block.duration)

        app.state.ready = True
        logger.info(
            "softban ready",
            block_duration_seconds=config.block.duration_seconds,
            store_backend=config.store.backend,
        )

        yield

        logger.info("softban shutting down...")
    finally:
        app.state.ready = False
        await store.close()
        logger.info("softban shutdown complete")


# ─── Application Factory ──────────────────────────────────────────────────────


def create_app() -> FastAPI:
    """Create and configure the softban FastAPI application.

    Call this directly in tests to get an isolated app instance.
    """
    application = FastAPI(
        title="softban",
        description="Temporary access denial after external rejections",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs" if DEBUG else None,
        redoc_url="/redoc" if DEBUG else None,
        openapi_url="/openapi.json" if DEBUG else None,
    )

    # ready stays False until the lifespan finishes startup
    application.state.ready = False

    application.add_middleware(AdminLocalhostMiddleware)
    application.include_router(admin_router, prefix="/admin/api")

    return application


app = create_app()
