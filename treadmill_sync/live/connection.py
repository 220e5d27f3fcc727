"""Live connection manager for the origin's ``/ws/live`` feed.

Owns zero or one WebSocket at a time and runs it through a small state
machine::

    Disconnected ─connect()─▶ Connecting ─first message─▶ Connected
         ▲                        ▲                           │
         │                        └── backoff elapsed ── Failed ◀─ error/close
         └──────────── disconnect() (from any state) ─────────┘

A socket that opens is not yet ``Connected``: endpoints that accept the TCP
connection but never stream are common, so only a decoded message proves
the feed is live.  After a failure exactly one reconnect is scheduled, with
a delay that doubles per consecutive failure up to a cap and resets once a
message arrives.

Transport failures never escape as exceptions.  They show up on the
``states`` stream, where callers such as the orchestrator can decide to fall
back to polling.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Protocol

import aiohttp

from treadmill_sync.config import live_url_for
from treadmill_sync.errors import DecodeFailure, InvalidEndpoint
from treadmill_sync.live.events import EventStream
from treadmill_sync.live.messages import (
    ConnectionPhase,
    ConnectionState,
    LiveSample,
    SampleMessage,
    decode_message,
)
from treadmill_sync.sync.config_loader import LiveConfig

logger = logging.getLogger("treadmill_sync.live")

class ConnectionClosed(ConnectionError):
    """The WebSocket was closed by the peer or errored."""


# ---------------------------------------------------------------------------
# Transport
# ---------------------------------------------------------------------------


class Transport(Protocol):
    """What the manager needs from an open socket."""

    async def receive(self) -> str:
        """Return the next text frame.  Raises ConnectionClosed when the socket ends."""

    async def ping(self) -> None:
        """Send a keep-alive probe."""

    async def close(self) -> None:
        """Close the socket.  Safe to call twice."""


Connector = Callable[[str], Awaitable[Transport]]


class AiohttpTransport:
    """``Transport`` over an aiohttp client WebSocket."""

    def __init__(self, session: aiohttp.ClientSession, ws: aiohttp.ClientWebSocketResponse) -> None:
        self._session = session
        self._ws = ws

    @classmethod
    async def open(cls, url: str) -> "AiohttpTransport":
        """Open a WebSocket to ``url``.

        Raises:
            InvalidEndpoint: If aiohttp rejects the URL.
            aiohttp.ClientError / OSError: On connect failure.  The caller bounds
                how long the open may take.
        """
        session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=None))
        try:
            ws = await session.ws_connect(url, autoping=True)
        except aiohttp.InvalidURL as exc:
            await session.close()
            raise InvalidEndpoint(f"Invalid live feed URL {url!r}") from exc
        except BaseException:
            await session.close()
            raise
        return cls(session, ws)

    async def receive(self) -> str:
        while True:
            msg = await self._ws.receive()
            if msg.type == aiohttp.WSMsgType.TEXT:
                return msg.data
            if msg.type == aiohttp.WSMsgType.BINARY:
                return msg.data.decode("utf-8", errors="replace")
            if msg.type in (
                aiohttp.WSMsgType.CLOSE,
                aiohttp.WSMsgType.CLOSING,
                aiohttp.WSMsgType.CLOSED,
            ):
                raise ConnectionClosed(f"socket closed (code={self._ws.close_code})")
            if msg.type == aiohttp.WSMsgType.ERROR:
                raise ConnectionClosed(f"socket error: {self._ws.exception()}")
            # PING / PONG are answered by aiohttp itself

    async def ping(self) -> None:
        await self._ws.ping()

    async def close(self) -> None:
        try:
            await self._ws.close()
        finally:
            await self._session.close()


# ---------------------------------------------------------------------------
# Manager
# ---------------------------------------------------------------------------


class LiveConnectionManager:
    """Keep one live feed connection up and publish what it receives.

    Observables:
        states:  Every ConnectionState transition, in order.
        samples: Every LiveSample, in receipt order.

    Usage::

        manager = LiveConnectionManager.from_base_url("http://walkpad.local:8080")
        manager.samples.subscribe(on_sample)
        await manager.connect()
        ...
        await manager.disconnect()
    """

    def __init__(
        self,
        url: str,
        policy: LiveConfig | None = None,
        connector: Connector | None = None,
    ) -> None:
        """Initialize the manager.  Nothing is opened until ``connect()``.

        Args:
            url:       Full ``ws://`` or ``wss://`` URL of the live feed.
            policy:    Backoff, heartbeat and timeout settings.
            connector: Coroutine opening a Transport for a URL (for testing).

        Raises:
            InvalidEndpoint: If ``url`` is not a ws(s) URL.
        """
        if not url.startswith(("ws://", "wss://")):
            raise InvalidEndpoint(f"Live feed URL must be ws:// or wss://, got {url!r}")
        self._url = url
        self._policy = policy or LiveConfig()
        self._connector: Connector = connector or AiohttpTransport.open

        self.states: EventStream[ConnectionState] = EventStream("connection-state")
        self.samples: EventStream[LiveSample] = EventStream("live-samples")

        self._state = ConnectionState.disconnected()
        self._auto_reconnect = False
        self._task: asyncio.Task | None = None
        self._consecutive_failures = 0
        self._reconnect_pending = False
        self.messages_received = 0
        self.decode_failures = 0

    @classmethod
    def from_base_url(
        cls,
        base_url: str,
        policy: LiveConfig | None = None,
        connector: Connector | None = None,
    ) -> "LiveConnectionManager":
        policy = policy or LiveConfig()
        return cls(live_url_for(base_url, policy.path), policy=policy, connector=connector)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def url(self) -> str:
        return self._url

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state.phase is ConnectionPhase.CONNECTED

    @property
    def auto_reconnect(self) -> bool:
        return self._auto_reconnect

    @property
    def reconnect_pending(self) -> bool:
        """True while waiting out a backoff delay before the next attempt."""
        return self._reconnect_pending

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    def next_reconnect_delay(self) -> float:
        """Delay the next failure would wait before reconnecting."""
        return self._policy.reconnect.delay_for(self._consecutive_failures + 1)

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Start (or keep) the live connection.

        A no-op while connecting or connected.  If a reconnect is waiting
        out its backoff, the wait is cut short and a fresh attempt starts now.
        """
        if self._task is not None and not self._task.done():
            if not self._reconnect_pending:
                logger.debug("Live feed already %s; connect() ignored", self._state)
                return
            logger.info("Live feed: skipping remaining backoff on explicit connect()")
            await self._stop_task()

        self._auto_reconnect = True
        self._set_state(ConnectionState.connecting())
        self._task = asyncio.create_task(self._supervise(), name="live-connection")

    async def disconnect(self) -> None:
        """Close the connection and stop reconnecting until ``connect()`` is called again."""
        self._auto_reconnect = False
        await self._stop_task()
        self._consecutive_failures = 0
        self._set_state(ConnectionState.disconnected())

    # ------------------------------------------------------------------
    # Supervisor task (owns the transport)
    # ------------------------------------------------------------------

    async def _stop_task(self) -> None:
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        self._reconnect_pending = False

    async def _supervise(self) -> None:
        while True:
            transport: Transport | None = None
            try:
                logger.info("Connecting to live feed %s", self._url)
                transport = await self._open()
                logger.debug("Live feed socket open; waiting for first message")
                await self._run_session(transport)
                reason = "stream ended"
            except InvalidEndpoint as exc:
                logger.error("Live feed endpoint rejected: %s", exc)
                self._auto_reconnect = False
                self._set_state(ConnectionState.failed(str(exc)))
                return
            except Exception as exc:
                reason = str(exc) or type(exc).__name__
            finally:
                if transport is not None:
                    await _close_quietly(transport)

            self._consecutive_failures += 1
            self._set_state(ConnectionState.failed(reason))
            if not self._auto_reconnect:
                return

            delay = self._policy.reconnect.delay_for(self._consecutive_failures)
            logger.warning(
                "Live feed lost (%s); reconnect %d in %.1fs",
                reason, self._consecutive_failures, delay,
            )
            self._reconnect_pending = True
            try:
                await asyncio.sleep(delay)
            finally:
                self._reconnect_pending = False

            if not self._auto_reconnect:
                return
            self._set_state(ConnectionState.connecting())

    async def _open(self) -> Transport:
        """Open a transport, giving up after ``open_timeout_seconds``.

        A peer that accepts TCP but never completes the upgrade would
        otherwise hold the manager in Connecting forever.
        """
        timeout = self._policy.open_timeout_seconds
        try:
            return await asyncio.wait_for(self._connector(self._url), timeout)
        except asyncio.TimeoutError as exc:
            raise ConnectionClosed(f"no handshake within {timeout:g}s") from exc

    async def _run_session(self, transport: Transport) -> None:
        """Receive and keep-alive until either side fails; re-raise the failure."""
        receiver = asyncio.create_task(self._receive_loop(transport), name="live-receive")
        heartbeat = asyncio.create_task(self._heartbeat_loop(transport), name="live-heartbeat")
        try:
            done, _ = await asyncio.wait(
                {receiver, heartbeat}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            for task in (receiver, heartbeat):
                task.cancel()
            await asyncio.gather(receiver, heartbeat, return_exceptions=True)

        for task in done:
            task.result()

    async def _receive_loop(self, transport: Transport) -> None:
        timeout = self._policy.receive_timeout_seconds or None
        while True:
            try:
                text = await asyncio.wait_for(transport.receive(), timeout)
            except asyncio.TimeoutError as exc:
                raise ConnectionClosed(f"no message for {timeout:.0f}s") from exc

            try:
                message = decode_message(text)
            except DecodeFailure as exc:
                self.decode_failures += 1
                logger.warning("Dropping undecodable live message: %s", exc)
                continue

            self.messages_received += 1
            self._consecutive_failures = 0
            if self._state.phase is not ConnectionPhase.CONNECTED:
                logger.info("Live feed connected (%s)", self._url)
                self._set_state(ConnectionState.connected())

            if isinstance(message, SampleMessage):
                logger.debug("Live sample: steps_delta=%s", message.sample.steps_delta)
                self.samples.publish(message.sample)

    async def _heartbeat_loop(self, transport: Transport) -> None:
        interval = self._policy.heartbeat_interval_seconds
        while True:
            await asyncio.sleep(interval)
            await transport.ping()

    def _set_state(self, state: ConnectionState) -> None:
        if state == self._state:
            return
        logger.debug("Live feed state: %s → %s", self._state, state)
        self._state = state
        self.states.publish(state)


async def _close_quietly(transport: Transport) -> None:
    try:
        await transport.close()
    except Exception as exc:
        logger.debug("Ignoring error while closing live transport: %s", exc)
