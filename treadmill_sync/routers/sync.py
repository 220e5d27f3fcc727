"""Sync status and manual trigger endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Query

from treadmill_sync.dependencies import Service
from treadmill_sync.models.status import CycleSummary, ServiceStatus
from treadmill_sync.service import cycle_summary

router = APIRouter(tags=["sync"])


@router.get("/status", response_model=ServiceStatus)
async def get_status(service: Service) -> Any:
    return service.status()


@router.post("/sync", response_model=CycleSummary)
async def run_sync(
    service: Service,
    wait: bool = Query(default=True, description="Wait for the cycle to finish"),
) -> Any:
    """Run a sync cycle.

    With ``wait=false`` the cycle starts in the background and the response
    only reports that it was accepted.
    """
    if not wait:
        if service.orchestrator.in_progress:
            return {"status": "skipped"}
        service.trigger_sync()
        return {"status": "started"}
    result = await service.sync_now()
    return cycle_summary(result)


@router.post("/live/connect", response_model=dict)
async def connect_live(service: Service) -> Any:
    await service.live.connect()
    return {"state": service.live.state.phase.value}


@router.post("/live/disconnect", response_model=dict)
async def disconnect_live(service: Service) -> Any:
    await service.live.disconnect()
    return {"state": service.live.state.phase.value}
