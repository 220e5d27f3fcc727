"""Fixtures for application-level tests: a mocked origin behind a real SyncService."""

from __future__ import annotations

from pathlib import Path

import httpx
import pytest

from treadmill_sync.client.api import ActivityApiClient
from treadmill_sync.config import Settings
from treadmill_sync.service import SyncService
from treadmill_sync.sync.config_loader import SyncConfig, load_sync_config

ORIGIN_URL = "http://walkpad.test:8080"


def summary(day: str, steps: int) -> dict:
    return {
        "date": day,
        "total_samples": 2,
        "duration_seconds": 1800,
        "distance_meters": steps * 3 // 4,
        "calories": steps // 30,
        "steps": steps,
        "avg_speed": 1.3,
        "max_speed": 1.6,
    }


class MockOrigin:
    """Routes for the capture service's REST API, backed by a dict of days."""

    def __init__(self) -> None:
        self.healthy = True
        self.days: dict[str, int] = {"2025-03-20": 5000, "2025-03-21": 6200}

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == "/api/health":
            return httpx.Response(200 if self.healthy else 503)
        if path == "/api/dates":
            return httpx.Response(200, json={"dates": sorted(self.days)})
        parts = path.strip("/").split("/")
        if len(parts) == 4 and parts[:2] == ["api", "dates"] and parts[2] in self.days:
            day, kind = parts[2], parts[3]
            if kind == "summary":
                return httpx.Response(200, json=summary(day, self.days[day]))
            if kind == "samples":
                return httpx.Response(200, json={
                    "date": day,
                    "samples": [
                        {"timestamp": 1742464800, "speed": 1.2, "steps_delta": 0},
                        {"timestamp": 1742464860, "speed": 1.4, "steps_delta": 96},
                    ],
                })
        return httpx.Response(404)


@pytest.fixture
def mock_origin() -> MockOrigin:
    return MockOrigin()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        origin_base_url=ORIGIN_URL,
        ledger_path=tmp_path / "ledger.sqlite3",
        sink_dir=tmp_path / "workouts",
        live_enabled=False,
        scheduler_enabled=False,
    )


@pytest.fixture
def sync_config() -> SyncConfig:
    return load_sync_config()


@pytest.fixture
def service(settings: Settings, sync_config: SyncConfig, mock_origin: MockOrigin) -> SyncService:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(mock_origin.handler))
    client = ActivityApiClient(settings.base_url, http_client=http_client)
    return SyncService(settings, sync_config, client=client)
