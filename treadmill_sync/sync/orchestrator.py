"""Sync orchestrator: push every new or grown day from the origin into the health sink.

One cycle:
1. Probe the origin and list the days it holds
2. Fetch each day's summary (a failing day is skipped, not fatal)
3. Ask the ledger whether the day needs a (re-)commit
4. Fetch the day's samples, build a workout, commit it to the sink
5. Record the commit in the ledger only after the sink confirmed it

At most one cycle runs at a time; a second ``run_cycle()`` while one is in
flight returns immediately with status ``skipped``.  A cancel event is only
checked between days, so a day is never abandoned halfway through its
commit.

Usage::

    orchestrator = SyncOrchestrator(client, ledger, sink)
    result = await orchestrator.run_cycle()
    logger.info("Committed %d day(s)", result.success_count)
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone

from treadmill_sync.client.api import ActivityApiClient
from treadmill_sync.errors import TreadmillSyncError
from treadmill_sync.live.events import EventStream
from treadmill_sync.sync.base import DailyMetrics, HealthSink, build_workout
from treadmill_sync.sync.config_loader import CycleConfig
from treadmill_sync.sync.ledger import SyncLedger

logger = logging.getLogger("treadmill_sync.sync.orchestrator")


@dataclass
class CycleResult:
    """Outcome of one ``run_cycle()`` call.

    Attributes:
        status:      'success', 'failed', 'cancelled' or 'skipped'.
        committed:   Days committed to the sink in this cycle.
        failed:      Days whose samples fetch or sink commit failed.
        skipped:     Days whose summary could not be fetched.
        deferred:    Days held back by policy (the current day).
        up_to_date:  Days already committed with unchanged counters.
        error:       Why the cycle failed, if status == 'failed'.
        started_at:  UTC start of the cycle.
        finished_at: UTC end of the cycle.
    """

    status: str = "success"
    committed: list[date] = field(default_factory=list)
    failed: list[date] = field(default_factory=list)
    skipped: list[date] = field(default_factory=list)
    deferred: list[date] = field(default_factory=list)
    up_to_date: int = 0
    error: str | None = None
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: datetime | None = None

    @property
    def success_count(self) -> int:
        return len(self.committed)

    @property
    def failure_count(self) -> int:
        return len(self.failed) + len(self.skipped)

    @property
    def completed(self) -> bool:
        """True if the cycle went end-to-end, whatever the per-day outcomes."""
        return self.status == "success"


class SyncOrchestrator:
    """Drive one sync cycle at a time from the origin to the health sink.

    The push (live feed) and pull (scheduler) paths both end up here, and the
    ledger check inside the cycle is the only thing standing between them
    and a duplicate commit.
    """

    def __init__(
        self,
        client: ActivityApiClient,
        ledger: SyncLedger,
        sink: HealthSink,
        policy: CycleConfig | None = None,
    ) -> None:
        self._client = client
        self._ledger = ledger
        self._sink = sink
        self._policy = policy or CycleConfig()

        self._in_progress = False
        self.last_successful_cycle_at: datetime | None = None
        self.last_result: CycleResult | None = None
        self.total_committed = 0
        self.total_failed = 0
        self.cycles: EventStream[CycleResult] = EventStream("sync-cycles")

    @property
    def in_progress(self) -> bool:
        return self._in_progress

    @property
    def ledger(self) -> SyncLedger:
        return self._ledger

    async def run_cycle(self, cancel_event: asyncio.Event | None = None) -> CycleResult:
        """Run one end-to-end sync cycle.

        Args:
            cancel_event: Checked before each day; once set, no further day is started.

        Returns:
            CycleResult.  ``status`` is 'skipped' if another cycle was running.
        """
        if self._in_progress:
            logger.debug("Sync cycle already in progress; request coalesced")
            return CycleResult(status="skipped", finished_at=datetime.now(timezone.utc))

        self._in_progress = True
        result = CycleResult()
        try:
            await self._execute(result, cancel_event)
        except asyncio.CancelledError:
            result.status = "cancelled"
            raise
        except Exception as exc:
            logger.exception("Sync cycle crashed")
            result.status = "failed"
            result.error = str(exc) or type(exc).__name__
        finally:
            self._in_progress = False
            result.finished_at = datetime.now(timezone.utc)
            self._finish(result)
        return result

    async def sync_if_due(
        self,
        min_interval: timedelta | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> CycleResult | None:
        """Run a cycle only if the last successful one is older than ``min_interval``.

        Defaults to ``min_interval_seconds`` from the policy.  Used when the live
        feed comes up, so a flapping connection does not re-run cycles.

        Returns:
            The CycleResult, or None if a recent cycle made this one unnecessary.
        """
        interval = (
            timedelta(seconds=self._policy.min_interval_seconds)
            if min_interval is None
            else min_interval
        )
        last = self.last_successful_cycle_at
        if last is not None and datetime.now(timezone.utc) - last < interval:
            logger.debug("Last sync at %s is recent; skipping", last.isoformat())
            return None
        return await self.run_cycle(cancel_event)

    async def _execute(self, result: CycleResult, cancel_event: asyncio.Event | None) -> None:
        if not await self._client.check_health():
            result.status = "failed"
            result.error = f"Origin {self._client.base_url} is unreachable"
            logger.warning("Sync cycle aborted: %s", result.error)
            return

        try:
            days = await self._client.list_dates()
        except TreadmillSyncError as exc:
            result.status = "failed"
            result.error = f"Could not list activity dates: {exc}"
            logger.warning("Sync cycle aborted: %s", result.error)
            return

        logger.info("Sync cycle: %d candidate day(s)", len(days))
        today = date.today()

        for day in days:
            if cancel_event is not None and cancel_event.is_set():
                result.status = "cancelled"
                logger.info("Sync cycle cancelled before %s", day)
                return

            if self._policy.skip_current_day and day == today:
                result.deferred.append(day)
                continue

            try:
                metrics = await self._client.fetch_summary(day)
            except TreadmillSyncError as exc:
                logger.warning("Skipping %s: summary fetch failed: %s", day, exc)
                result.skipped.append(day)
                continue

            if not await asyncio.to_thread(self._ledger.needs_commit, metrics):
                result.up_to_date += 1
                continue

            try:
                await self._commit_day(metrics)
            except Exception as exc:
                logger.warning("Failed to commit %s: %s", day, exc)
                result.failed.append(day)
                continue
            result.committed.append(day)

    async def _commit_day(self, metrics: DailyMetrics) -> None:
        samples = await self._client.fetch_samples(metrics.day)
        workout = build_workout(metrics, samples)
        receipt = await self._sink.commit_workout(workout)
        await asyncio.to_thread(self._ledger.record_commit, metrics, receipt)
        logger.info(
            "Committed %s to %s (steps=%d, distance=%dm, calories=%d, samples=%d)",
            metrics.day, self._sink.DISPLAY_NAME, metrics.step_count,
            metrics.distance_meters, metrics.calories, len(samples),
        )

    def _finish(self, result: CycleResult) -> None:
        self.last_result = result
        self.total_committed += result.success_count
        self.total_failed += result.failure_count
        if result.completed:
            self.last_successful_cycle_at = result.finished_at

        logger.info(
            "Sync cycle %s: %d committed, %d failed, %d skipped, %d up to date",
            result.status, len(result.committed), len(result.failed),
            len(result.skipped), result.up_to_date,
        )
        self.cycles.publish(result)
