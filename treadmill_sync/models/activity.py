"""Pydantic models for the origin's REST payloads: activity dates, daily summaries, samples."""

from __future__ import annotations

from datetime import date

from pydantic import Field

from treadmill_sync.models.base import TreadmillBase


# ---------- Dates ----------

class DatesResponse(TreadmillBase):
    dates: list[date] = Field(default_factory=list)


# ---------- Daily summary ----------

class DailySummaryResponse(TreadmillBase):
    day: date | None = Field(default=None, alias="date")
    total_samples: int | None = Field(default=None, ge=0)
    duration_seconds: int | None = Field(default=None, ge=0)
    distance_meters: int | None = Field(default=None, ge=0)
    calories: int | None = Field(default=None, ge=0)
    steps: int | None = Field(default=None, ge=0)
    avg_speed: float | None = None
    max_speed: float | None = None


# ---------- Samples ----------

class SampleResponse(TreadmillBase):
    timestamp: int
    speed: float | None = None
    distance_delta: int | None = None
    calories_delta: int | None = None
    steps_delta: int | None = None


class SamplesResponse(TreadmillBase):
    day: date | None = Field(default=None, alias="date")
    samples: list[SampleResponse] = Field(default_factory=list)


# ---------- Live feed ----------

class LiveMessageEnvelope(TreadmillBase):
    """Inbound WebSocket frame: ``{"type": "NewSample", "sample": {...}}`` or ``{"type": "Heartbeat"}``."""

    type: str
    sample: SampleResponse | None = None
