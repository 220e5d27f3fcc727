"""Inspect and reset the sync ledger."""

from __future__ import annotations

import asyncio
from datetime import date
from typing import Any

from fastapi import APIRouter, HTTPException

from treadmill_sync.dependencies import Service
from treadmill_sync.errors import TreadmillSyncError
from treadmill_sync.models.base import ErrorDetail
from treadmill_sync.models.status import LedgerClearResult, SyncRecordRead

router = APIRouter(prefix="/ledger", tags=["ledger"])

_NOT_COMMITTED = {404: {"model": ErrorDetail, "description": "Day has not been committed"}}
_ORIGIN_FAILED = {502: {"model": ErrorDetail, "description": "Origin could not provide the day"}}


@router.get("", response_model=list[SyncRecordRead])
async def list_records(service: Service) -> Any:
    return await asyncio.to_thread(service.ledger.list_records)


@router.get("/{day}", response_model=SyncRecordRead, responses=_NOT_COMMITTED)
async def get_record(day: date, service: Service) -> Any:
    record = await asyncio.to_thread(service.ledger.get_record, day)
    if record is None:
        raise HTTPException(status_code=404, detail="Day has not been committed")
    return record


@router.delete("/{day}", response_model=LedgerClearResult, responses=_NOT_COMMITTED)
async def clear_day(day: date, service: Service) -> Any:
    """Forget one day so the next cycle commits it again."""
    removed = await asyncio.to_thread(service.ledger.clear, day)
    if not removed:
        raise HTTPException(status_code=404, detail="Day has not been committed")
    return {"cleared": 1}


@router.delete("", response_model=LedgerClearResult)
async def clear_all(service: Service) -> Any:
    return {"cleared": await asyncio.to_thread(service.ledger.clear_all)}


@router.post("/{day}", response_model=SyncRecordRead, responses=_ORIGIN_FAILED)
async def mark_synced(day: date, service: Service) -> Any:
    """Mark a day as synced without writing it to the sink."""
    try:
        return await service.mark_synced(day)
    except TreadmillSyncError as exc:
        raise HTTPException(status_code=502, detail=exc.message) from exc
