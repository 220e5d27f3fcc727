"""Fake transport and connector for live connection tests."""

from __future__ import annotations

import asyncio
import json

import pytest

from treadmill_sync.live.connection import ConnectionClosed
from treadmill_sync.live.messages import ConnectionPhase
from treadmill_sync.sync.config_loader import LiveConfig, ReconnectPolicy

LIVE_URL = "ws://walkpad.test:8080/ws/live"

HEARTBEAT = json.dumps({"type": "Heartbeat"})


def sample_frame(timestamp: int, steps_delta: int = 12) -> str:
    return json.dumps({
        "type": "NewSample",
        "sample": {
            "timestamp": timestamp,
            "speed": 1.4,
            "distance_delta": 9,
            "calories_delta": 1,
            "steps_delta": steps_delta,
        },
    })


class FakeTransport:
    """Transport fed by the test: queue text frames or an exception to raise."""

    def __init__(self) -> None:
        self.inbox: asyncio.Queue[str | Exception] = asyncio.Queue()
        self.pings = 0
        self.ping_error: Exception | None = None
        self.closed = False

    def feed(self, text: str) -> None:
        self.inbox.put_nowait(text)

    def fail(self, exc: Exception | None = None) -> None:
        self.inbox.put_nowait(exc or ConnectionClosed("peer went away"))

    async def receive(self) -> str:
        item = await self.inbox.get()
        if isinstance(item, Exception):
            raise item
        return item

    async def ping(self) -> None:
        self.pings += 1
        if self.ping_error is not None:
            raise self.ping_error

    async def close(self) -> None:
        self.closed = True


class FakeConnector:
    """Connector that hands out FakeTransports, or raises queued errors first.

    With ``hang`` set, the open never completes, like a peer that accepts TCP
    and then says nothing.
    """

    def __init__(self) -> None:
        self.urls: list[str] = []
        self.transports: list[FakeTransport] = []
        self.errors: list[Exception] = []
        self.hang = False

    async def __call__(self, url: str) -> FakeTransport:
        self.urls.append(url)
        if self.hang:
            await asyncio.Event().wait()
        if self.errors:
            raise self.errors.pop(0)
        transport = FakeTransport()
        self.transports.append(transport)
        return transport

    @property
    def current(self) -> FakeTransport:
        return self.transports[-1]


async def wait_until(predicate, timeout: float = 1.0) -> None:
    """Poll ``predicate`` until it is true or fail the test."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            pytest.fail("condition not reached in time")
        await asyncio.sleep(0.005)


async def wait_for_phase(manager, phase: ConnectionPhase, timeout: float = 1.0) -> None:
    await wait_until(lambda: manager.state.phase is phase, timeout)


@pytest.fixture
def connector() -> FakeConnector:
    return FakeConnector()


@pytest.fixture
def fast_policy() -> LiveConfig:
    """Short delays so reconnects happen within a test."""
    return LiveConfig(
        reconnect=ReconnectPolicy(initial_delay_seconds=0.05, max_delay_seconds=0.2, multiplier=2.0),
        heartbeat_interval_seconds=30.0,
        receive_timeout_seconds=5.0,
        open_timeout_seconds=1.0,
    )
