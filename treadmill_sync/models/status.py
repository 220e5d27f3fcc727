"""Pydantic response models for the local control API."""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, Field

from treadmill_sync.models.base import TreadmillBase


# ---------- Connection / sync status ----------

class ConnectionStatus(TreadmillBase):
    state: str
    reason: str | None = None
    url: str
    messages_received: int = 0
    decode_failures: int = 0
    consecutive_failures: int = 0
    reconnect_pending: bool = False


class CycleSummary(TreadmillBase):
    status: str
    committed: list[date] = Field(default_factory=list)
    failed: list[date] = Field(default_factory=list)
    skipped: list[date] = Field(default_factory=list)
    deferred: list[date] = Field(default_factory=list)
    up_to_date: int = 0
    success_count: int = 0
    failure_count: int = 0
    error: str | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None


class SyncStatus(TreadmillBase):
    in_progress: bool
    last_successful_cycle_at: datetime | None = None
    total_committed: int = 0
    total_failed: int = 0
    committed_days: int = 0
    last_result: CycleSummary | None = None


class SchedulerStatus(TreadmillBase):
    running: bool
    interval_seconds: float
    next_run_at: datetime | None = None


class ServiceStatus(BaseModel):
    origin: str
    connection: ConnectionStatus
    sync: SyncStatus
    scheduler: SchedulerStatus


# ---------- Ledger ----------

class SyncRecordRead(TreadmillBase):
    day: date
    committed_at: datetime
    step_count: int
    distance_meters: int
    calories: int
    receipt: str | None = None


class LedgerClearResult(TreadmillBase):
    cleared: int
