"""Background sync scheduler.

Triggers orchestrator cycles on a timer, each inside a bounded time budget:
1. Start a cycle with a fresh cancel event
2. If the budget runs out, set the event and wait for the cycle to stop at
   the next day boundary (never mid-commit)
3. Signal completion exactly once, whatever happened

A timer tick is skipped when another trigger (the live feed coming up, a
manual request) already synced within the interval.  Stopping the scheduler
never cancels a cycle outright: the cycle is asked to stop and the current
day is allowed to finish its commit.

Interval and budget come from ``sync_config.yaml`` (2 hours and 120 seconds
by default).
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable

from treadmill_sync.sync.config_loader import SchedulerConfig
from treadmill_sync.sync.orchestrator import CycleResult, SyncOrchestrator

logger = logging.getLogger("treadmill_sync.sync.scheduler")

_USE_POLICY = object()


class BackgroundScheduler:
    """Run ``SyncOrchestrator.run_cycle()`` periodically within a time budget.

    Usage::

        scheduler = BackgroundScheduler(orchestrator)
        scheduler.start()
        ...
        await scheduler.stop()
    """

    def __init__(
        self,
        orchestrator: SyncOrchestrator,
        policy: SchedulerConfig | None = None,
    ) -> None:
        """Initialize the scheduler.

        Args:
            orchestrator: The orchestrator whose cycles are triggered.
            policy:       Interval / budget settings.
        """
        self._orchestrator = orchestrator
        self._policy = policy or SchedulerConfig()
        self._loop_task: asyncio.Task | None = None
        self.next_run_at: datetime | None = None
        self.runs = 0

    @property
    def running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    def get_interval(self) -> float:
        return self._policy.interval_seconds

    def should_run(self, last_cycle_at: datetime | None) -> bool:
        """Return True if a cycle is due.

        Args:
            last_cycle_at: UTC datetime of last successful cycle (None = never).
        """
        if last_cycle_at is None:
            return True
        elapsed = (datetime.now(timezone.utc) - last_cycle_at).total_seconds()
        return elapsed >= self.get_interval()

    # ------------------------------------------------------------------
    # One invocation
    # ------------------------------------------------------------------

    async def run_once(
        self,
        budget_seconds: float | None | object = _USE_POLICY,
        on_complete: Callable[[bool], None] | None = None,
    ) -> CycleResult:
        """Run one cycle within ``budget_seconds``.

        Args:
            budget_seconds: Time budget; None means unbounded.  Defaults to the policy.
            on_complete:    Called exactly once with True if the cycle completed
                            end-to-end, False otherwise (budget expiry included).

        Returns:
            The cycle's CycleResult.
        """
        budget = self._policy.budget_seconds if budget_seconds is _USE_POLICY else budget_seconds
        cancel_event = asyncio.Event()
        cycle = asyncio.create_task(
            self._orchestrator.run_cycle(cancel_event), name="background-sync-cycle"
        )
        self.runs += 1
        success = False
        try:
            done, _ = await asyncio.wait({cycle}, timeout=budget)
            if not done:
                logger.warning(
                    "Background sync exceeded its %.0fs budget; stopping after the current day",
                    budget,
                )
                cancel_event.set()
            result = await asyncio.shield(cycle)
            success = result.completed
            return result
        except asyncio.CancelledError:
            # The cycle task is never cancelled: a day's commit always finishes.
            logger.info("Background sync stopping; waiting for the current day to finish")
            cancel_event.set()
            await asyncio.wait({cycle})
            raise
        except Exception as exc:
            logger.error("Background sync failed: %s", exc)
            return CycleResult(
                status="failed",
                error=str(exc) or type(exc).__name__,
                finished_at=datetime.now(timezone.utc),
            )
        finally:
            if not cycle.done():
                cancel_event.set()
            _signal_completion(on_complete, success)

    # ------------------------------------------------------------------
    # Timer loop
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the periodic loop.  A no-op if it is already running."""
        if self.running:
            return
        self._loop_task = asyncio.create_task(self._run_forever(), name="background-sync")
        logger.info(
            "Background sync every %.0fs (budget %s)",
            self._policy.interval_seconds,
            f"{self._policy.budget_seconds:.0f}s" if self._policy.budget_seconds else "unbounded",
        )

    async def stop(self) -> None:
        """Stop the loop.  A cycle in flight finishes its current day first."""
        task, self._loop_task = self._loop_task, None
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        self.next_run_at = None

    async def _run_forever(self) -> None:
        interval = self.get_interval()
        if not self._policy.run_on_start:
            await self._sleep_until_next(interval)
        while True:
            last = self._orchestrator.last_successful_cycle_at
            if self.should_run(last):
                await self.run_once()
                delay = interval
            else:
                # Another trigger synced recently; wait out the rest of the interval.
                elapsed = (datetime.now(timezone.utc) - last).total_seconds()
                delay = max(interval - elapsed, 0.0)
                logger.debug("Last sync at %s is recent; next background run in %.0fs", last, delay)
            await self._sleep_until_next(delay)

    async def _sleep_until_next(self, delay: float) -> None:
        self.next_run_at = datetime.now(timezone.utc) + timedelta(seconds=delay)
        await asyncio.sleep(delay)


def _signal_completion(on_complete: Callable[[bool], None] | None, success: bool) -> None:
    if on_complete is None:
        return
    try:
        on_complete(success)
    except Exception:
        logger.exception("Background sync completion callback failed")
