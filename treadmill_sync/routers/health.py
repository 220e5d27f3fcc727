"""Health check endpoint."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter

from treadmill_sync.dependencies import AppSettings, Service

router = APIRouter(tags=["system"])
logger = logging.getLogger("treadmill_sync.health")


@router.get("/health")
async def health_check(settings: AppSettings, service: Service) -> dict:
    """Liveness probe. Returns 200 if the sync process is up.

    Also probes the origin's ``/api/health`` endpoint.
    """
    origin_ok = await service.client.check_health()
    if not origin_ok:
        logger.warning("Health check: origin %s unreachable", service.client.base_url)

    return {
        "status": "healthy" if origin_ok else "degraded",
        "version": settings.app_version,
        "origin": "reachable" if origin_ok else "unreachable",
        "live_feed": service.live.state.phase.value,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
