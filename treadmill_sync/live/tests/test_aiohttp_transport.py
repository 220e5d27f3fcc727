"""Tests for the aiohttp transport against a real local WebSocket server."""

from __future__ import annotations

import asyncio
from dataclasses import replace

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from treadmill_sync.errors import InvalidEndpoint
from treadmill_sync.live.connection import AiohttpTransport, ConnectionClosed, LiveConnectionManager
from treadmill_sync.live.messages import ConnectionPhase, ConnectionState, LiveSample
from treadmill_sync.live.tests.conftest import HEARTBEAT, sample_frame, wait_for_phase, wait_until
from treadmill_sync.sync.config_loader import LiveConfig


class LiveFeedServer:
    """``/ws/live`` endpoint that sends ``frames`` to every client.

    With ``close_after_frames`` set, the server closes the socket right after
    the frames; otherwise it holds it open until the client leaves.
    """

    def __init__(self) -> None:
        self.frames: list[str | bytes] = []
        self.close_after_frames = False
        self.connections = 0
        self.sockets: list[web.WebSocketResponse] = []
        app = web.Application()
        app.router.add_get("/ws/live", self.handle)
        self.server = TestServer(app)

    async def handle(self, request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse()
        await ws.prepare(request)
        self.connections += 1
        self.sockets.append(ws)
        for frame in self.frames:
            if isinstance(frame, bytes):
                await ws.send_bytes(frame)
            else:
                await ws.send_str(frame)
        if self.close_after_frames:
            await ws.close()
            return ws
        async for _ in ws:
            pass
        return ws

    @property
    def url(self) -> str:
        return str(self.server.make_url("/ws/live")).replace("http://", "ws://", 1)


@pytest_asyncio.fixture
async def live_server():
    feed = LiveFeedServer()
    await feed.server.start_server()
    yield feed
    for ws in feed.sockets:
        await ws.close()
    await feed.server.close()


class TestAiohttpTransport:
    @pytest.mark.asyncio
    async def test_text_frame(self, live_server: LiveFeedServer) -> None:
        live_server.frames = [HEARTBEAT]

        transport = await AiohttpTransport.open(live_server.url)
        try:
            assert await transport.receive() == HEARTBEAT
        finally:
            await transport.close()

    @pytest.mark.asyncio
    async def test_binary_frame_is_decoded_as_utf8(self, live_server: LiveFeedServer) -> None:
        live_server.frames = [HEARTBEAT.encode("utf-8")]

        transport = await AiohttpTransport.open(live_server.url)
        try:
            assert await transport.receive() == HEARTBEAT
        finally:
            await transport.close()

    @pytest.mark.asyncio
    async def test_server_close_raises_connection_closed(self, live_server: LiveFeedServer) -> None:
        live_server.frames = [HEARTBEAT]
        live_server.close_after_frames = True

        transport = await AiohttpTransport.open(live_server.url)
        try:
            assert await transport.receive() == HEARTBEAT
            with pytest.raises(ConnectionClosed):
                await transport.receive()
        finally:
            await transport.close()

    @pytest.mark.asyncio
    async def test_close_releases_session(self, live_server: LiveFeedServer) -> None:
        transport = await AiohttpTransport.open(live_server.url)

        await transport.close()
        await transport.close()  # second close is harmless

        assert transport._session.closed
        await wait_until(lambda: live_server.sockets and live_server.sockets[0].closed)

    @pytest.mark.asyncio
    async def test_url_without_host_is_invalid_endpoint(self) -> None:
        with pytest.raises(InvalidEndpoint):
            await AiohttpTransport.open("ws:///ws/live")


class TestManagerOverAiohttp:
    @pytest.mark.asyncio
    async def test_first_frame_connects_and_samples_flow(
        self, live_server: LiveFeedServer, fast_policy: LiveConfig,
    ) -> None:
        live_server.frames = [HEARTBEAT, sample_frame(1742464800), sample_frame(1742464801)]
        manager = LiveConnectionManager(live_server.url, fast_policy)
        samples: list[LiveSample] = []
        manager.samples.subscribe(samples.append)

        await manager.connect()
        await wait_for_phase(manager, ConnectionPhase.CONNECTED)
        await wait_until(lambda: len(samples) == 2)

        assert [s.timestamp for s in samples] == [1742464800, 1742464801]
        assert manager.messages_received == 3
        await manager.disconnect()
        assert manager.state == ConnectionState.disconnected()

    @pytest.mark.asyncio
    async def test_server_close_fails_then_reconnects(
        self, live_server: LiveFeedServer, fast_policy: LiveConfig,
    ) -> None:
        live_server.frames = [HEARTBEAT]
        live_server.close_after_frames = True
        manager = LiveConnectionManager(live_server.url, fast_policy)
        phases: list[ConnectionPhase] = []
        manager.states.subscribe(lambda s: phases.append(s.phase))

        await manager.connect()
        await wait_until(lambda: live_server.connections >= 2)

        assert phases[:4] == [
            ConnectionPhase.CONNECTING,
            ConnectionPhase.CONNECTED,
            ConnectionPhase.FAILED,
            ConnectionPhase.CONNECTING,
        ]
        await manager.disconnect()

    @pytest.mark.asyncio
    async def test_silent_server_fails_instead_of_hanging(self, fast_policy: LiveConfig) -> None:
        """A peer that accepts TCP but never answers the upgrade."""
        peers: list[asyncio.StreamWriter] = []

        async def accept(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
            peers.append(writer)

        server = await asyncio.start_server(accept, "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        manager = LiveConnectionManager(
            f"ws://127.0.0.1:{port}/ws/live", replace(fast_policy, open_timeout_seconds=0.2)
        )
        states: list[ConnectionState] = []
        manager.states.subscribe(states.append)

        try:
            await manager.connect()
            await wait_until(lambda: len(peers) >= 2, timeout=2.0)
        finally:
            await manager.disconnect()
            for writer in peers:
                writer.close()
            server.close()
            await server.wait_closed()

        failed = [s for s in states if s.phase is ConnectionPhase.FAILED]
        assert failed
        assert "handshake" in failed[0].reason
        assert states[-1] == ConnectionState.disconnected()
