"""Wire the client, ledger, sink, orchestrator, scheduler and live feed into one service.

The live feed and the background scheduler are two independent producers of
sync work.  Both call into the same orchestrator, whose in-flight guard and
ledger check keep them from committing a day twice.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date
from typing import Any

from treadmill_sync.client.api import ActivityApiClient
from treadmill_sync.config import Settings, get_settings
from treadmill_sync.live.connection import Connector, LiveConnectionManager
from treadmill_sync.live.messages import ConnectionPhase, ConnectionState
from treadmill_sync.sync.base import HealthSink, SyncRecord
from treadmill_sync.sync.config_loader import SyncConfig, get_sync_config
from treadmill_sync.sync.ledger import SyncLedger
from treadmill_sync.sync.orchestrator import CycleResult, SyncOrchestrator
from treadmill_sync.sync.scheduler import BackgroundScheduler
from treadmill_sync.sync.sink import FileHealthSink

logger = logging.getLogger("treadmill_sync.service")


class SyncService:
    """Everything one deployment needs, built from settings and the sync policy."""

    def __init__(
        self,
        settings: Settings,
        config: SyncConfig,
        client: ActivityApiClient | None = None,
        ledger: SyncLedger | None = None,
        sink: HealthSink | None = None,
        connector: Connector | None = None,
    ) -> None:
        self.settings = settings
        self.config = config
        self.client = client or ActivityApiClient(
            settings.base_url, timeout=settings.request_timeout_seconds
        )
        self.ledger = ledger or SyncLedger(settings.ledger_path)
        self.sink = sink or FileHealthSink(settings.sink_dir)
        self.orchestrator = SyncOrchestrator(self.client, self.ledger, self.sink, config.sync)
        self.scheduler = BackgroundScheduler(self.orchestrator, config.scheduler)
        self.live = LiveConnectionManager.from_base_url(
            settings.base_url, config.live, connector=connector
        )

        self._live_enabled = settings.live_enabled
        self._scheduler_enabled = settings.scheduler_enabled and config.scheduler.enabled
        self._background: set[asyncio.Task] = set()
        self._stopping = asyncio.Event()
        self.live.states.subscribe(self._on_connection_state)

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "SyncService":
        s = settings or get_settings()
        return cls(s, get_sync_config(s.sync_config_path))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        logger.info("Starting sync service for origin %s", self.client.base_url)
        self._stopping.clear()
        if self._live_enabled:
            await self.live.connect()
        if self._scheduler_enabled:
            self.scheduler.start()

    async def stop(self) -> None:
        """Stop every trigger.  Cycles in flight finish their current day first."""
        self._stopping.set()
        await self.scheduler.stop()
        await self.live.disconnect()
        pending = list(self._background)
        if pending:
            logger.info("Waiting for %d background sync(s) to wind down", len(pending))
            await asyncio.gather(*pending, return_exceptions=True)
        logger.info("Sync service stopped")

    # ------------------------------------------------------------------
    # Sync triggers
    # ------------------------------------------------------------------

    async def sync_now(self) -> CycleResult:
        """Run a cycle now.  Returns status 'skipped' if one is already running."""
        return await self.orchestrator.run_cycle(self._stopping)

    def trigger_sync(self) -> asyncio.Task:
        """Start a cycle in the background and return its task."""
        return self._spawn(self.orchestrator.run_cycle(self._stopping), "manual-sync")

    def _on_connection_state(self, state: ConnectionState) -> None:
        if state.phase is ConnectionPhase.CONNECTED and self.config.sync.sync_on_connect:
            logger.info("Live feed is up; syncing if the last cycle is stale")
            self._spawn(
                self.orchestrator.sync_if_due(cancel_event=self._stopping), "opportunistic-sync"
            )

    def _spawn(self, coro, name: str) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    # ------------------------------------------------------------------
    # Manual ledger actions
    # ------------------------------------------------------------------

    async def mark_synced(self, day: date | str) -> SyncRecord:
        """Record ``day`` as committed with the origin's current counters.

        Nothing is written to the sink.  For days the user already entered
        by hand, so the next cycle leaves them alone until they grow.

        Raises:
            Unreachable / DecodeFailure: If the day's summary cannot be fetched.
        """
        metrics = await self.client.fetch_summary(day)
        record = await asyncio.to_thread(self.ledger.record_commit, metrics, None)
        logger.info("Marked %s as synced by hand (steps=%d)", record.day, record.step_count)
        return record

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def status(self) -> dict[str, Any]:
        orch = self.orchestrator
        last = orch.last_result
        return {
            "origin": self.client.base_url,
            "connection": {
                "state": self.live.state.phase.value,
                "reason": self.live.state.reason,
                "url": self.live.url,
                "messages_received": self.live.messages_received,
                "decode_failures": self.live.decode_failures,
                "consecutive_failures": self.live.consecutive_failures,
                "reconnect_pending": self.live.reconnect_pending,
            },
            "sync": {
                "in_progress": orch.in_progress,
                "last_successful_cycle_at": orch.last_successful_cycle_at,
                "total_committed": orch.total_committed,
                "total_failed": orch.total_failed,
                "committed_days": len(self.ledger),
                "last_result": cycle_summary(last) if last else None,
            },
            "scheduler": {
                "running": self.scheduler.running,
                "interval_seconds": self.scheduler.get_interval(),
                "next_run_at": self.scheduler.next_run_at,
            },
        }


def cycle_summary(result: CycleResult) -> dict[str, Any]:
    return {
        "status": result.status,
        "committed": result.committed,
        "failed": result.failed,
        "skipped": result.skipped,
        "deferred": result.deferred,
        "up_to_date": result.up_to_date,
        "success_count": result.success_count,
        "failure_count": result.failure_count,
        "error": result.error,
        "started_at": result.started_at,
        "finished_at": result.finished_at,
    }
