"""Live feed message types and connection state.

Inbound frames are JSON objects tagged by ``type``::

    {"type": "NewSample", "sample": {"timestamp": 1742480000, "speed": 1.2, "steps_delta": 4}}
    {"type": "Heartbeat"}

Any other ``type``, or a frame that is not JSON, is a ``DecodeFailure``.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum

from pydantic import ValidationError

from treadmill_sync.errors import DecodeFailure
from treadmill_sync.models.activity import LiveMessageEnvelope


# ---------------------------------------------------------------------------
# Connection state
# ---------------------------------------------------------------------------


class ConnectionPhase(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    FAILED = "failed"


@dataclass(frozen=True)
class ConnectionState:
    """Current phase of the live connection; ``reason`` is set only when FAILED."""

    phase: ConnectionPhase
    reason: str | None = None

    @classmethod
    def disconnected(cls) -> "ConnectionState":
        return cls(ConnectionPhase.DISCONNECTED)

    @classmethod
    def connecting(cls) -> "ConnectionState":
        return cls(ConnectionPhase.CONNECTING)

    @classmethod
    def connected(cls) -> "ConnectionState":
        return cls(ConnectionPhase.CONNECTED)

    @classmethod
    def failed(cls, reason: str) -> "ConnectionState":
        return cls(ConnectionPhase.FAILED, reason)

    def __str__(self) -> str:
        if self.reason:
            return f"{self.phase.value}({self.reason})"
        return self.phase.value


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LiveSample:
    """A push sample.  Deltas are increments since the previous sample.

    Attributes:
        timestamp:           Epoch seconds.
        speed_instantaneous: Belt speed (m/s) at ``timestamp``.
        steps_delta:         Steps since the previous sample.
        distance_delta:      Meters since the previous sample.
        calories_delta:      kcal since the previous sample.
    """

    timestamp: int
    speed_instantaneous: float | None = None
    steps_delta: int | None = None
    distance_delta: int | None = None
    calories_delta: int | None = None


@dataclass(frozen=True)
class SampleMessage:
    sample: LiveSample


@dataclass(frozen=True)
class HeartbeatMessage:
    pass


LiveMessage = SampleMessage | HeartbeatMessage


def decode_message(text: str | bytes) -> LiveMessage:
    """Decode one inbound frame.

    Raises:
        DecodeFailure: For non-JSON frames, unknown types, or a bad sample.
    """
    try:
        data = json.loads(text)
    except (TypeError, ValueError) as exc:
        raise DecodeFailure(f"Live frame is not JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise DecodeFailure(f"Live frame is {type(data).__name__}, expected object")

    try:
        envelope = LiveMessageEnvelope.model_validate(data)
    except ValidationError as exc:
        raise DecodeFailure(f"Malformed live frame: {exc}") from exc

    if envelope.type == "Heartbeat":
        return HeartbeatMessage()
    if envelope.type == "NewSample":
        if envelope.sample is None:
            raise DecodeFailure("NewSample frame without a sample")
        s = envelope.sample
        return SampleMessage(
            LiveSample(
                timestamp=s.timestamp,
                speed_instantaneous=s.speed,
                steps_delta=s.steps_delta,
                distance_delta=s.distance_delta,
                calories_delta=s.calories_delta,
            )
        )
    raise DecodeFailure(f"Unknown live message type: {envelope.type!r}")
