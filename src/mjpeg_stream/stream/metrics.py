"""
Stream Metrics
==============

Per-application counters for streaming sessions, exposed at /metrics.
"""

import logging

from mjpeg_stream.models.result import StreamOutcome, StreamResult


logger = logging.getLogger(__name__)


class StreamMetrics:
    """Metrics for streaming session observability."""

    __slots__ = (
        "sessions_started",
        "sessions_active",
        "frames_sent",
        "bytes_sent",
        "completed",
        "disconnects",
        "timeouts",
        "failures",
        "pictures_served",
    )

    def __init__(self) -> None:
        self.sessions_started: int = 0
        self.sessions_active: int = 0
        self.frames_sent: int = 0
        self.bytes_sent: int = 0
        self.completed: int = 0
        self.disconnects: int = 0
        self.timeouts: int = 0
        self.failures: int = 0
        self.pictures_served: int = 0

    def record_start(self) -> None:
        """Count a session that is about to stream."""
        self.sessions_started += 1
        self.sessions_active += 1

    def record_result(self, result: StreamResult) -> None:
        """Fold a finished session into the counters."""
        self.sessions_active = max(0, self.sessions_active - 1)
        self.frames_sent += result.frames_sent
        self.bytes_sent += result.bytes_sent

        if result.outcome == StreamOutcome.COMPLETED:
            self.completed += 1
        elif result.outcome == StreamOutcome.CLIENT_DISCONNECTED:
            self.disconnects += 1
        elif result.outcome == StreamOutcome.TIMED_OUT:
            self.timeouts += 1
        else:
            self.failures += 1

    def record_abandoned(self) -> None:
        """A session that ended without a result (cancelled or misconfigured)."""
        self.sessions_active = max(0, self.sessions_active - 1)

    def to_dict(self) -> dict:
        """Export metrics as dict."""
        return {
            "sessions_started": self.sessions_started,
            "sessions_active": self.sessions_active,
            "frames_sent": self.frames_sent,
            "bytes_sent": self.bytes_sent,
            "completed": self.completed,
            "disconnects": self.disconnects,
            "timeouts": self.timeouts,
            "failures": self.failures,
            "pictures_served": self.pictures_served,
        }
