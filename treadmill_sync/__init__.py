"""Treadmill Sync: push treadmill activity from the capture service into a health record store.

Subpackages:
    client/ — REST client for the capture service (the origin)
    live/   — Live WebSocket feed: connection state machine, messages, event streams
    sync/   — Ledger, orchestrator, background scheduler, health sinks, policy config
    routers/ — Local control API

Core modules:
    config  — Environment settings and origin URL derivation
    errors  — Error hierarchy
    service — Wires everything together for one deployment
"""

from treadmill_sync.errors import (
    DecodeFailure,
    InvalidEndpoint,
    SinkRejected,
    TreadmillSyncError,
    Unreachable,
)
from treadmill_sync.sync.base import (
    ActivitySample,
    DailyMetrics,
    HealthSink,
    SyncRecord,
    Workout,
)

__version__ = "0.1.0"

__all__ = [
    "TreadmillSyncError",
    "InvalidEndpoint",
    "Unreachable",
    "DecodeFailure",
    "SinkRejected",
    "DailyMetrics",
    "ActivitySample",
    "SyncRecord",
    "Workout",
    "HealthSink",
]
