"""Remote data client for the treadmill capture service.

Typed request/response calls against the origin's REST API.  Every failure is
mapped onto the error taxonomy in ``treadmill_sync.errors`` so callers never
see raw httpx or pydantic exceptions.

Endpoints used:
    /api/health                — Liveness probe (200 = reachable)
    /api/dates                 — Days with recorded activity
    /api/dates/{date}/summary  — Daily counters
    /api/dates/{date}/samples  — Raw samples for a day
"""

from __future__ import annotations

import logging
from datetime import date

import httpx
from pydantic import ValidationError

from treadmill_sync.errors import DecodeFailure, InvalidEndpoint, Unreachable
from treadmill_sync.models.activity import (
    DailySummaryResponse,
    DatesResponse,
    SamplesResponse,
)
from treadmill_sync.sync.base import ActivitySample, DailyMetrics, parse_day

logger = logging.getLogger("treadmill_sync.client")

_DEFAULT_TIMEOUT = 30.0


class ActivityApiClient:
    """Read-only client for the origin's activity endpoints."""

    def __init__(
        self,
        base_url: str,
        timeout: float = _DEFAULT_TIMEOUT,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            base_url:    Origin base URL, e.g. ``http://walkpad.local:8080``.
            timeout:     Per-request timeout in seconds.
            http_client: Optional pre-configured httpx client (for testing).

        Raises:
            InvalidEndpoint: If ``base_url`` is not an http(s) URL with a host.
        """
        try:
            url = httpx.URL(base_url)
        except (httpx.InvalidURL, TypeError) as exc:
            raise InvalidEndpoint(f"Invalid origin URL {base_url!r}: {exc}") from exc
        if url.scheme not in ("http", "https") or not url.host:
            raise InvalidEndpoint(f"Origin URL must be http(s) with a host, got {base_url!r}")

        self._base_url = str(url).rstrip("/")
        self._timeout = timeout
        self._http_client = http_client

    @property
    def base_url(self) -> str:
        return self._base_url

    # ------------------------------------------------------------------
    # Endpoints
    # ------------------------------------------------------------------

    async def check_health(self) -> bool:
        """Return True if the origin answers ``/api/health`` with 200."""
        try:
            response = await self._request("/api/health")
        except Unreachable as exc:
            logger.info("Origin health probe failed: %s", exc)
            return False
        return response.status_code == 200

    async def list_dates(self) -> list[date]:
        """Return the days for which the origin holds activity."""
        data = await self._get("/api/dates")
        try:
            return DatesResponse.model_validate(data).dates
        except ValidationError as exc:
            raise DecodeFailure(f"Bad /api/dates payload: {exc}") from exc

    async def fetch_summary(self, day: date | str) -> DailyMetrics:
        """Fetch the daily counters for ``day``."""
        target = parse_day(day)
        data = await self._get(f"/api/dates/{target.isoformat()}/summary")
        try:
            summary = DailySummaryResponse.model_validate(data)
        except ValidationError as exc:
            raise DecodeFailure(f"Bad summary payload for {target}: {exc}") from exc

        return DailyMetrics(
            day=target,
            step_count=summary.steps or 0,
            distance_meters=summary.distance_meters or 0,
            calories=summary.calories or 0,
            duration_seconds=summary.duration_seconds or 0,
            avg_speed=summary.avg_speed or 0.0,
            max_speed=summary.max_speed or 0.0,
            total_samples=summary.total_samples or 0,
        )

    async def fetch_samples(self, day: date | str) -> list[ActivitySample]:
        """Fetch the raw samples recorded on ``day``."""
        target = parse_day(day)
        data = await self._get(f"/api/dates/{target.isoformat()}/samples")
        try:
            parsed = SamplesResponse.model_validate(data)
        except ValidationError as exc:
            raise DecodeFailure(f"Bad samples payload for {target}: {exc}") from exc

        return [
            ActivitySample(
                timestamp=s.timestamp,
                speed=s.speed,
                distance_delta=s.distance_delta,
                calories_delta=s.calories_delta,
                steps_delta=s.steps_delta,
            )
            for s in parsed.samples
        ]

    # ------------------------------------------------------------------
    # HTTP helpers
    # ------------------------------------------------------------------

    async def _get(self, path: str) -> dict:
        """GET ``path`` and return the decoded JSON object.

        Raises:
            Unreachable:  Transport failure or non-2xx status.
            DecodeFailure: Body is not a JSON object.
        """
        response = await self._request(path)
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise Unreachable(
                f"GET {path} returned {exc.response.status_code}"
            ) from exc

        try:
            data = response.json()
        except ValueError as exc:
            raise DecodeFailure(f"GET {path} returned invalid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise DecodeFailure(f"GET {path} returned {type(data).__name__}, expected object")
        return data

    async def _request(self, path: str) -> httpx.Response:
        url = f"{self._base_url}{path}"
        try:
            if self._http_client is not None:
                return await self._http_client.get(url, timeout=self._timeout)
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                return await client.get(url)
        except (httpx.InvalidURL, httpx.UnsupportedProtocol) as exc:
            raise InvalidEndpoint(f"Invalid request URL {url!r}: {exc}") from exc
        except httpx.TransportError as exc:
            raise Unreachable(f"GET {url} failed: {exc}") from exc
