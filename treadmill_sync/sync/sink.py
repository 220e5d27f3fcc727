"""File-backed health sink.

Writes one JSON document per day to a directory.  Re-committing a day
replaces its file, which is what makes commits idempotent.  Useful as the
default sink for a headless deployment and as a stand-in for a real health
store in tests.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
import uuid
from dataclasses import asdict
from pathlib import Path

from treadmill_sync.errors import SinkRejected
from treadmill_sync.sync.base import HealthSink, Workout

logger = logging.getLogger("treadmill_sync.sync.sink")

_RECEIPT_NAMESPACE = uuid.UUID("6f1c7d0e-5b1a-4c55-9a7e-3d1f5e2b9c10")


def workout_receipt(workout: Workout) -> str:
    """Deterministic receipt for a workout: same day and totals, same receipt."""
    key = (
        f"{workout.day.isoformat()}:{workout.step_count}:"
        f"{workout.distance_meters}:{workout.calories}"
    )
    return str(uuid.uuid5(_RECEIPT_NAMESPACE, key))


def workout_to_json(workout: Workout) -> dict:
    """Serialize a workout to a JSON-compatible dict."""
    data = asdict(workout)
    data["receipt"] = workout_receipt(workout)
    return data


class FileHealthSink(HealthSink):
    """Store each day's workout as ``<directory>/<YYYY-MM-DD>.json``."""

    DISPLAY_NAME = "Workout directory"

    def __init__(self, directory: Path) -> None:
        self._directory = Path(directory)

    async def commit_workout(self, workout: Workout) -> str:
        if workout.end < workout.start:
            raise SinkRejected(f"Workout for {workout.day} ends before it starts")
        return await asyncio.to_thread(self._write, workout)

    def _write(self, workout: Workout) -> str:
        payload = workout_to_json(workout)
        target = self._directory / f"{workout.day.isoformat()}.json"
        try:
            self._directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self._directory, suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    json.dump(payload, fh, default=str, indent=2, sort_keys=True)
                os.replace(tmp_name, target)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise SinkRejected(f"Could not write {target}: {exc}") from exc

        logger.info("Committed workout for %s to %s", workout.day, target)
        return payload["receipt"]

    def read(self, day: str) -> dict | None:
        """Return the stored document for ``day`` (ISO string), if any."""
        target = self._directory / f"{day}.json"
        if not target.exists():
            return None
        return json.loads(target.read_text(encoding="utf-8"))
