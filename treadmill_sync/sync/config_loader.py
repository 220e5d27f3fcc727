"""Load, validate, and hot-reload the treadmill sync policy.

The policy lives in ``sync_config.yaml`` alongside this module.  At startup
it is loaded once and cached.  Call ``reload_sync_config()`` to re-read from
disk after an edit; no restart is required.

Usage::

    from treadmill_sync.sync.config_loader import get_sync_config

    config = get_sync_config()
    config.live.reconnect.delay_for(3)   # 20.0
    config.scheduler.interval_seconds    # 7200
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger("treadmill_sync.config")

# Path to the YAML file sitting next to this module
_CONFIG_PATH = Path(__file__).parent / "sync_config.yaml"


# ---------------------------------------------------------------------------
# Typed config sections
# ---------------------------------------------------------------------------


@dataclass
class ReconnectPolicy:
    """Capped exponential backoff between live-feed reconnect attempts."""

    initial_delay_seconds: float = 5.0
    max_delay_seconds: float = 60.0
    multiplier: float = 2.0

    def delay_for(self, consecutive_failures: int) -> float:
        """Return the delay before the next attempt.

        Args:
            consecutive_failures: Failures since the last received message (≥ 1).

        Returns:
            Seconds to wait, never more than ``max_delay_seconds``.
        """
        exponent = max(consecutive_failures - 1, 0)
        delay = self.initial_delay_seconds * (self.multiplier ** exponent)
        return min(delay, self.max_delay_seconds)


@dataclass
class LiveConfig:
    """Live WebSocket feed settings."""

    path: str = "/ws/live"
    reconnect: ReconnectPolicy = field(default_factory=ReconnectPolicy)
    heartbeat_interval_seconds: float = 30.0
    receive_timeout_seconds: float = 90.0
    open_timeout_seconds: float = 10.0


@dataclass
class CycleConfig:
    """Sync cycle settings."""

    skip_current_day: bool = False
    min_interval_seconds: float = 600.0
    sync_on_connect: bool = True


@dataclass
class SchedulerConfig:
    """Background scheduler settings."""

    enabled: bool = True
    interval_seconds: float = 7200.0
    budget_seconds: float | None = 120.0
    run_on_start: bool = True


@dataclass
class SyncConfig:
    """Complete, validated sync policy.

    Attributes:
        version:   Config schema version string.
        live:      Live feed connection policy.
        sync:      Sync cycle policy.
        scheduler: Background scheduler policy.
    """

    version: str
    live: LiveConfig
    sync: CycleConfig
    scheduler: SchedulerConfig


# ---------------------------------------------------------------------------
# Loader / validation
# ---------------------------------------------------------------------------


class ConfigValidationError(ValueError):
    """Raised when sync_config.yaml fails validation."""


def _load_yaml(path: Path) -> dict:
    """Read and parse a YAML file.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigValidationError: If the YAML is malformed.
    """
    if not path.exists():
        raise FileNotFoundError(f"Sync config not found: {path}")

    with path.open("r", encoding="utf-8") as fh:
        try:
            return yaml.safe_load(fh) or {}
        except yaml.YAMLError as exc:
            raise ConfigValidationError(f"YAML parse error in {path}: {exc}") from exc


def _validate_and_build(raw: dict) -> SyncConfig:
    """Validate the raw YAML dict and construct a SyncConfig.

    Every problem is collected before raising so one edit can fix them all.

    Raises:
        ConfigValidationError: If any value is missing its expected type or range.
    """
    errors: list[str] = []

    def _section(key: str) -> dict:
        value = raw.get(key) or {}
        if not isinstance(value, dict):
            errors.append(f"'{key}' must be a mapping")
            return {}
        return value

    def _number(d: dict, key: str, section: str, default: float, minimum: float = 0.0) -> float:
        value = d.get(key, default)
        try:
            number = float(value)
        except (TypeError, ValueError):
            errors.append(f"{section}.{key} must be a number, got {value!r}")
            return default
        if number < minimum:
            errors.append(f"{section}.{key} = {number} is below the minimum {minimum}")
        return number

    version = str(raw.get("version", "1.0"))

    # ── Live feed ──
    live_raw = _section("live")
    rc_raw = live_raw.get("reconnect") or {}
    if not isinstance(rc_raw, dict):
        errors.append("'live.reconnect' must be a mapping")
        rc_raw = {}
    reconnect = ReconnectPolicy(
        initial_delay_seconds=_number(rc_raw, "initial_delay_seconds", "live.reconnect", 5.0),
        max_delay_seconds=_number(rc_raw, "max_delay_seconds", "live.reconnect", 60.0),
        multiplier=_number(rc_raw, "multiplier", "live.reconnect", 2.0, minimum=1.0),
    )
    if reconnect.max_delay_seconds < reconnect.initial_delay_seconds:
        errors.append(
            "live.reconnect.max_delay_seconds must be >= initial_delay_seconds "
            f"({reconnect.max_delay_seconds} < {reconnect.initial_delay_seconds})"
        )

    path = str(live_raw.get("path", "/ws/live"))
    if not path.startswith("/"):
        errors.append(f"live.path must start with '/', got {path!r}")

    heartbeat = _number(live_raw, "heartbeat_interval_seconds", "live", 30.0)
    receive_timeout = _number(live_raw, "receive_timeout_seconds", "live", 90.0)
    open_timeout = _number(live_raw, "open_timeout_seconds", "live", 10.0)
    if heartbeat <= 0:
        errors.append("live.heartbeat_interval_seconds must be positive")
    if open_timeout <= 0:
        errors.append("live.open_timeout_seconds must be positive")
    if receive_timeout and receive_timeout <= heartbeat:
        logger.warning(
            "live.receive_timeout_seconds (%.0f) <= heartbeat interval (%.0f); "
            "idle sockets will be dropped between heartbeats.",
            receive_timeout,
            heartbeat,
        )

    live = LiveConfig(
        path=path,
        reconnect=reconnect,
        heartbeat_interval_seconds=heartbeat,
        receive_timeout_seconds=receive_timeout,
        open_timeout_seconds=open_timeout,
    )

    # ── Sync cycle ──
    sync_raw = _section("sync")
    cycle = CycleConfig(
        skip_current_day=bool(sync_raw.get("skip_current_day", False)),
        min_interval_seconds=_number(sync_raw, "min_interval_seconds", "sync", 600.0),
        sync_on_connect=bool(sync_raw.get("sync_on_connect", True)),
    )

    # ── Scheduler ──
    sched_raw = _section("scheduler")
    budget_value: Any = sched_raw.get("budget_seconds", 120.0)
    budget = (
        None
        if budget_value is None
        else _number(sched_raw, "budget_seconds", "scheduler", 120.0)
    )
    scheduler = SchedulerConfig(
        enabled=bool(sched_raw.get("enabled", True)),
        interval_seconds=_number(sched_raw, "interval_seconds", "scheduler", 7200.0, minimum=1.0),
        budget_seconds=budget,
        run_on_start=bool(sched_raw.get("run_on_start", True)),
    )

    if errors:
        raise ConfigValidationError(
            f"sync_config.yaml has {len(errors)} validation error(s):\n"
            + "\n".join(f"  • {e}" for e in errors)
        )

    return SyncConfig(
        version=version,
        live=live,
        sync=cycle,
        scheduler=scheduler,
    )


def load_sync_config(path: Path | None = None) -> SyncConfig:
    """Load and validate the sync policy from disk.

    Args:
        path: Override path to YAML. Uses the bundled sync_config.yaml by default.

    Returns:
        Validated SyncConfig instance.
    """
    target = path or _CONFIG_PATH
    raw = _load_yaml(target)
    config = _validate_and_build(raw)
    logger.info("Loaded sync config v%s from %s", config.version, target)
    return config


# ---------------------------------------------------------------------------
# Global singleton with hot-reload support
# ---------------------------------------------------------------------------

_config: SyncConfig | None = None
_config_lock = threading.Lock()


def get_sync_config(path: Path | None = None) -> SyncConfig:
    """Return the global SyncConfig singleton, loading it on first call.

    Thread-safe.  ``path`` only matters on the first call; use
    ``reload_sync_config()`` to pick up later edits.
    """
    global _config
    if _config is None:
        with _config_lock:
            if _config is None:  # double-checked locking
                _config = load_sync_config(path)
    return _config


def reload_sync_config(path: Path | None = None) -> SyncConfig:
    """Reload the sync policy from disk and replace the global singleton.

    If validation fails, the old config is retained and the error is re-raised.

    Raises:
        ConfigValidationError: If the new config is invalid.
        FileNotFoundError:     If the config file is missing.
    """
    global _config
    new_config = load_sync_config(path)  # validate before acquiring lock
    with _config_lock:
        old_version = _config.version if _config else "none"
        _config = new_config
    logger.info("Reloaded sync config: %s → %s", old_version, new_config.version)
    return new_config
