"""Canonical data models and the health sink interface for treadmill sync.

``DailyMetrics`` and ``ActivitySample`` are what the remote data client hands
to the orchestrator; ``Workout`` is what the orchestrator hands to a
``HealthSink``; ``SyncRecord`` is what the ledger keeps.  All of them are
immutable once built.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone


def parse_day(value: date | str) -> date:
    """Return a calendar-day key from a ``date`` or an ISO ``YYYY-MM-DD`` string.

    Raises:
        ValueError: If the string is not an ISO date.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(value.strip())


# ---------------------------------------------------------------------------
# Origin data
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DailyMetrics:
    """Snapshot of one logical day as aggregated by the origin.

    The three counters are non-decreasing within a day.  A newer fetch for
    the same ``day`` supersedes an older one; nothing mutates a snapshot.

    Attributes:
        day:              Calendar date key.
        step_count:       Steps so far.
        distance_meters:  Distance so far in meters.
        calories:         Active energy so far in kcal.
        duration_seconds: Time on the belt.
        avg_speed:        Mean belt speed (m/s).
        max_speed:        Peak belt speed (m/s).
        total_samples:    Number of raw samples the origin holds for the day.
    """

    day: date
    step_count: int = 0
    distance_meters: int = 0
    calories: int = 0
    duration_seconds: int = 0
    avg_speed: float = 0.0
    max_speed: float = 0.0
    total_samples: int = 0


@dataclass(frozen=True)
class ActivitySample:
    """One raw sample from ``/api/dates/{date}/samples``.

    Deltas are increments since the previous sample, so a reset of the
    device's cumulative counters never produces a negative contribution.
    """

    timestamp: int
    speed: float | None = None
    distance_delta: int | None = None
    calories_delta: int | None = None
    steps_delta: int | None = None

    @property
    def at(self) -> datetime:
        return datetime.fromtimestamp(self.timestamp, tz=timezone.utc)


# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SyncRecord:
    """Durable record of the last successful commit of a day.

    Attributes:
        day:             Calendar date key (one record per day).
        committed_at:    UTC time of the last successful commit.
        step_count:      Steps at the moment of that commit.
        distance_meters: Distance at the moment of that commit.
        calories:        Calories at the moment of that commit.
        receipt:         Opaque identifier returned by the sink, if any.
    """

    day: date
    committed_at: datetime
    step_count: int
    distance_meters: int
    calories: int
    receipt: str | None = None


# ---------------------------------------------------------------------------
# Workouts
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class QuantitySample:
    """A quantity recorded over an interval inside a workout.

    ``kind`` is one of ``steps``, ``distance_m`` or ``energy_kcal``.
    """

    kind: str
    value: float
    start: datetime
    end: datetime


@dataclass(frozen=True)
class Workout:
    """A day's treadmill activity, shaped for a health-record store.

    Attributes:
        day:              Calendar date the workout belongs to.
        start:            UTC start (first sample, or midnight when there are none).
        end:              UTC end.
        duration_seconds: Reported time on the belt.
        distance_meters:  Total distance.
        calories:         Total active energy.
        step_count:       Total steps.
        avg_speed:        Mean speed (m/s).
        max_speed:        Peak speed (m/s).
        activity_type:    Always ``walking`` for a treadmill.
        indoor:           Always True for a treadmill.
        samples:          Per-interval quantity samples.
    """

    day: date
    start: datetime
    end: datetime
    duration_seconds: int
    distance_meters: int
    calories: int
    step_count: int
    avg_speed: float = 0.0
    max_speed: float = 0.0
    activity_type: str = "walking"
    indoor: bool = True
    samples: tuple[QuantitySample, ...] = field(default_factory=tuple)


def build_workout(metrics: DailyMetrics, samples: list[ActivitySample]) -> Workout:
    """Assemble a ``Workout`` from a day's summary and its raw samples.

    Each positive delta becomes a quantity sample spanning the interval from
    the previous sample to this one.  Totals always come from ``metrics``,
    never from summing deltas.
    """
    ordered = sorted(samples, key=lambda s: s.timestamp)
    quantities: list[QuantitySample] = []

    if ordered:
        start = ordered[0].at
        end = ordered[-1].at
        previous = start
        for sample in ordered:
            at = sample.at
            for kind, delta in (
                ("steps", sample.steps_delta),
                ("distance_m", sample.distance_delta),
                ("energy_kcal", sample.calories_delta),
            ):
                if delta is not None and delta > 0:
                    quantities.append(
                        QuantitySample(kind=kind, value=float(delta), start=previous, end=at)
                    )
            previous = at
    else:
        start = datetime.combine(metrics.day, time.min, tzinfo=timezone.utc)
        end = start + timedelta(seconds=metrics.duration_seconds)

    return Workout(
        day=metrics.day,
        start=start,
        end=end,
        duration_seconds=metrics.duration_seconds,
        distance_meters=metrics.distance_meters,
        calories=metrics.calories,
        step_count=metrics.step_count,
        avg_speed=metrics.avg_speed,
        max_speed=metrics.max_speed,
        samples=tuple(quantities),
    )


# ---------------------------------------------------------------------------
# Abstract sink
# ---------------------------------------------------------------------------


class HealthSink(ABC):
    """The authoritative health-record store.

    Implementations must make ``commit_workout`` idempotent per day: committing
    the same day twice replaces the earlier workout instead of duplicating it.
    A crash between a sink success and the ledger write produces exactly
    such a repeat on the next cycle.
    """

    #: Human-readable name for logging.
    DISPLAY_NAME: str = "Health Sink"

    @abstractmethod
    async def commit_workout(self, workout: Workout) -> str:
        """Durably store a workout.

        Args:
            workout: The day's workout.

        Returns:
            Opaque receipt identifying the stored workout.

        Raises:
            SinkRejected: If the store refuses the workout.
        """
