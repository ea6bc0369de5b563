"""FastAPI application for the catalog sync service.

This is the main entry point for the sync API server. Besides serving the
control endpoints it runs the batch driver in the background, so a run
started through the API progresses without any external scheduler.
"""

import asyncio
import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.database import apply_schema, close_pool, create_pool
from .api.exceptions import ConfigurationError
from .config import SettingsRegistry
from .sync.api.dependencies import set_services
from .sync.api.router import router as sync_router
from .sync.services import SyncServices, build_services

load_dotenv()

# Configure logging
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

RUNNER_INTERVAL_SECONDS = float(os.getenv("SYNC_RUNNER_INTERVAL_SECONDS", "5"))


async def _start_services() -> SyncServices:
    settings = SettingsRegistry.from_env()
    logger.info(f"Loaded settings: {settings.global_settings!r}")

    pool = None
    database_url = settings.global_settings.database_url
    if database_url:
        pool = await create_pool(database_url)
        await apply_schema(pool)
    else:
        logger.warning("DATABASE_URL not set - using in-memory storage, state is lost on restart")

    try:
        return await build_services(settings, pool=pool)
    except ConfigurationError as e:
        # Control and query endpoints still work without the vendor API
        logger.warning(f"Sync engine disabled: {e}")
        return await build_services(settings, pool=pool, with_engine=False)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager.

    Handles startup and shutdown events:
    - Startup: database pool and schema, sync services, background runner
    - Shutdown: stop the runner between batches, close clients and pool
    """
    logger.info("Starting Catalog Sync API...")

    services = await _start_services()
    set_services(services)

    shutdown_event = asyncio.Event()
    runner_task: Optional[asyncio.Task] = None
    if services.runner is not None:
        runner_task = asyncio.create_task(
            services.runner.run_forever(shutdown_event, interval=RUNNER_INTERVAL_SECONDS)
        )

    yield

    logger.info("Shutting down Catalog Sync API...")

    shutdown_event.set()
    if runner_task is not None:
        await runner_task
        logger.info("Sync runner stopped")

    await services.close()
    set_services(None)

    if services.pool is not None:
        await close_pool(services.pool)
        logger.info("Database pool closed")


# Create FastAPI application
app = FastAPI(
    title="Catalog Sync API",
    description="""
    Control API for the resumable vendor catalog sync.

    ## Workflow

    1. Start a sync for a scope (the default scope or a named profile)
    2. Poll its status and log feed while the background runner works
    3. Pause, resume or cancel; commands take effect between batches
    4. Review past runs in the history
    """,
    version="0.1.0",
    lifespan=lifespan,
)

# Configure CORS
cors_origins = os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:5173").split(",")

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Accept", "X-API-Key"],
)

app.include_router(sync_router)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "Catalog Sync API",
        "version": "0.1.0",
        "docs": "/docs",
        "health": "/api/sync/health",
    }


@app.get("/health")
async def health():
    """Global health check."""
    return {"status": "healthy"}
