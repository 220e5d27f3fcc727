"""Error hierarchy for treadmill sync.

Transport-level failures on the live feed never surface as these exceptions;
the connection manager turns them into state transitions.  The orchestrator
catches them per day so a single bad day never aborts a cycle.

Usage::

    from treadmill_sync.errors import Unreachable

    try:
        metrics = await client.fetch_summary(day)
    except Unreachable as exc:
        logger.warning("Origin unreachable for %s: %s", day, exc)
"""

from __future__ import annotations

__all__ = [
    "TreadmillSyncError",
    "InvalidEndpoint",
    "Unreachable",
    "DecodeFailure",
    "SinkRejected",
]


class TreadmillSyncError(Exception):
    """Base exception for all treadmill sync errors.

    Attributes:
        code:    Machine-readable error code.
        message: Human-readable description.
    """

    code: str = "TREADMILL_SYNC_ERROR"

    def __init__(self, message: str = "") -> None:
        self.message = message or self.__class__.__doc__ or self.code
        super().__init__(self.message)


class InvalidEndpoint(TreadmillSyncError):
    """Malformed origin URL or configuration.  Not retried."""

    code = "INVALID_ENDPOINT"


class Unreachable(TreadmillSyncError):
    """The origin could not be reached (DNS, refused, timeout, server error)."""

    code = "UNREACHABLE"


class DecodeFailure(TreadmillSyncError):
    """A payload from the origin could not be decoded."""

    code = "DECODE_FAILURE"


class SinkRejected(TreadmillSyncError):
    """The health sink refused a workout commit."""

    code = "SINK_REJECTED"
