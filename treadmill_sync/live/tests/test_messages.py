"""Tests for live frame decoding and connection state values."""

from __future__ import annotations

import pytest

from treadmill_sync.errors import DecodeFailure
from treadmill_sync.live.messages import (
    ConnectionPhase,
    ConnectionState,
    HeartbeatMessage,
    SampleMessage,
    decode_message,
)
from treadmill_sync.live.tests.conftest import HEARTBEAT, sample_frame


class TestDecodeMessage:
    def test_heartbeat(self) -> None:
        assert decode_message(HEARTBEAT) == HeartbeatMessage()

    def test_new_sample(self) -> None:
        message = decode_message(sample_frame(1742480000, steps_delta=7))
        assert isinstance(message, SampleMessage)
        assert message.sample.timestamp == 1742480000
        assert message.sample.steps_delta == 7
        assert message.sample.distance_delta == 9

    def test_optional_sample_fields(self) -> None:
        message = decode_message('{"type": "NewSample", "sample": {"timestamp": 5}}')
        assert message.sample.speed_instantaneous is None
        assert message.sample.calories_delta is None

    def test_bytes_frame(self) -> None:
        assert decode_message(HEARTBEAT.encode()) == HeartbeatMessage()

    @pytest.mark.parametrize(
        "frame",
        [
            "",
            "{not json",
            "[1, 2, 3]",
            '{"sample": {"timestamp": 1}}',
            '{"type": "Goodbye"}',
            '{"type": "NewSample"}',
            '{"type": "NewSample", "sample": {"speed": 1.0}}',
        ],
    )
    def test_undecodable_frames(self, frame: str) -> None:
        with pytest.raises(DecodeFailure):
            decode_message(frame)


class TestConnectionState:
    def test_failed_carries_reason(self) -> None:
        state = ConnectionState.failed("refused")
        assert state.phase is ConnectionPhase.FAILED
        assert str(state) == "failed(refused)"

    def test_plain_states_have_no_reason(self) -> None:
        assert str(ConnectionState.connected()) == "connected"
        assert ConnectionState.connecting().reason is None

    def test_equality_by_value(self) -> None:
        assert ConnectionState.failed("x") == ConnectionState.failed("x")
        assert ConnectionState.failed("x") != ConnectionState.failed("y")
