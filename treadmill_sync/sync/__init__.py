"""Sync infrastructure for treadmill activity.

Modules:
    base          — Domain models, workout builder, HealthSink ABC
    ledger        — Durable record of committed days (SQLite)
    sink          — File-backed HealthSink
    orchestrator  — One sync cycle at a time, per-day failure tolerance
    scheduler     — Periodic cycles inside a time budget
    config_loader — Load/validate sync_config.yaml
"""
