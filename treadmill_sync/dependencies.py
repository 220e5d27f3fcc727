"""Shared FastAPI dependencies injected into route handlers."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Request

from treadmill_sync.config import Settings, get_settings
from treadmill_sync.service import SyncService


async def get_service(request: Request) -> SyncService:
    """Return the running SyncService.

    The application lifespan sets ``app.state.service`` before routes run.
    """
    service: SyncService | None = getattr(request.app.state, "service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Sync service is not running")
    return service


# Annotated shortcuts for route signatures
Service = Annotated[SyncService, Depends(get_service)]
AppSettings = Annotated[Settings, Depends(get_settings)]
