"""Treadmill Sync: FastAPI application entry point.

Run locally:
    uvicorn treadmill_sync.main:app --port 8090
"""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI

from treadmill_sync.config import get_settings
from treadmill_sync.routers import health, ledger, sync
from treadmill_sync.service import SyncService

# ---------- Logging ----------

logging.basicConfig(
    level=get_settings().log_level.upper(),
    format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    stream=sys.stdout,
)
logger = logging.getLogger("treadmill_sync")


# ---------- App factory ----------

def create_app(service: SyncService | None = None) -> FastAPI:
    """Build the app.  ``service`` is built from settings at startup when omitted."""
    settings = get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Startup / shutdown hooks."""
        logger.info("Starting %s v%s", settings.app_name, settings.app_version)
        svc = service or SyncService.from_settings(settings)
        app.state.service = svc
        await svc.start()
        yield
        await svc.stop()
        app.state.service = None
        logger.info("%s shut down", settings.app_name)

    app = FastAPI(
        title=settings.app_name,
        description=(
            "Pushes treadmill activity from the capture service into the "
            "health record store, live and on a schedule."
        ),
        version=settings.app_version,
        debug=settings.debug,
        lifespan=lifespan,
    )

    # ---------- Health check (outside v1 prefix, always at /health) ----------
    app.include_router(health.router)

    # ---------- API v1 routes ----------
    v1_prefix = "/api/v1"

    app.include_router(sync.router, prefix=v1_prefix)
    app.include_router(ledger.router, prefix=v1_prefix)

    return app


app = create_app()
