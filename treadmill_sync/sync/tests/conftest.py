"""Shared fixtures for ledger, orchestrator and scheduler tests."""

from __future__ import annotations

import asyncio
from datetime import date
from pathlib import Path

import pytest

from treadmill_sync.errors import SinkRejected
from treadmill_sync.sync.base import ActivitySample, DailyMetrics, HealthSink, Workout
from treadmill_sync.sync.config_loader import CycleConfig, SyncConfig, load_sync_config
from treadmill_sync.sync.ledger import SyncLedger
from treadmill_sync.sync.orchestrator import SyncOrchestrator

DAY_1 = date(2025, 3, 20)
DAY_2 = date(2025, 3, 21)
DAY_3 = date(2025, 3, 22)


def make_metrics(
    day: date = DAY_1,
    steps: int = 5000,
    distance: int = 3800,
    calories: int = 210,
    duration: int = 2700,
) -> DailyMetrics:
    return DailyMetrics(
        day=day,
        step_count=steps,
        distance_meters=distance,
        calories=calories,
        duration_seconds=duration,
        avg_speed=1.4,
        max_speed=1.8,
        total_samples=3,
    )


def make_samples(start: int = 1742464800) -> list[ActivitySample]:
    return [
        ActivitySample(timestamp=start, speed=1.2, distance_delta=0, calories_delta=0, steps_delta=0),
        ActivitySample(timestamp=start + 60, speed=1.4, distance_delta=80, calories_delta=4, steps_delta=110),
        ActivitySample(timestamp=start + 120, speed=1.5, distance_delta=85, calories_delta=5, steps_delta=115),
    ]


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeOrigin:
    """In-memory stand-in for ActivityApiClient.

    ``summaries`` maps a day to its DailyMetrics, or to an exception that
    ``fetch_summary`` raises for that day.
    """

    base_url = "http://walkpad.test:8080"

    def __init__(self) -> None:
        self.healthy = True
        self.summaries: dict[date, DailyMetrics | Exception] = {}
        self.samples: dict[date, list[ActivitySample] | Exception] = {}
        self.summary_calls: list[date] = []
        self.sample_calls: list[date] = []
        self.list_delay = 0.0

    def add_day(self, metrics: DailyMetrics) -> None:
        self.summaries[metrics.day] = metrics
        self.samples.setdefault(metrics.day, make_samples())

    async def check_health(self) -> bool:
        return self.healthy

    async def list_dates(self) -> list[date]:
        if self.list_delay:
            await asyncio.sleep(self.list_delay)
        return sorted(self.summaries)

    async def fetch_summary(self, day: date) -> DailyMetrics:
        self.summary_calls.append(day)
        value = self.summaries[day]
        if isinstance(value, Exception):
            raise value
        return value

    async def fetch_samples(self, day: date) -> list[ActivitySample]:
        self.sample_calls.append(day)
        value = self.samples.get(day, [])
        if isinstance(value, Exception):
            raise value
        return value


class RecordingSink(HealthSink):
    """HealthSink that keeps workouts in memory and can reject chosen days."""

    DISPLAY_NAME = "Recording sink"

    def __init__(self) -> None:
        self.workouts: list[Workout] = []
        self.reject: set[date] = set()
        self.delay = 0.0

    async def commit_workout(self, workout: Workout) -> str:
        if self.delay:
            await asyncio.sleep(self.delay)
        if workout.day in self.reject:
            raise SinkRejected(f"rejected {workout.day}")
        self.workouts.append(workout)
        return f"receipt-{workout.day.isoformat()}"

    @property
    def committed_days(self) -> list[date]:
        return [w.day for w in self.workouts]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def sync_config() -> SyncConfig:
    """Load the bundled sync config."""
    return load_sync_config()


@pytest.fixture
def ledger(tmp_path: Path) -> SyncLedger:
    return SyncLedger(tmp_path / "ledger.sqlite3")


@pytest.fixture
def origin() -> FakeOrigin:
    return FakeOrigin()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def orchestrator(origin: FakeOrigin, ledger: SyncLedger, sink: RecordingSink) -> SyncOrchestrator:
    return SyncOrchestrator(origin, ledger, sink, CycleConfig())
