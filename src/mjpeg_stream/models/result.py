"""
Stream Result
=============

Outcome of one streaming session, returned by the stream writer.

Each session ends with exactly ONE outcome:
    - COMPLETED: the frame source was exhausted
    - CLIENT_DISCONNECTED: the peer went away (expected, not an error)
    - TIMED_OUT: producing or flushing a frame took too long (handled
      like a disconnect)
    - SOURCE_FAILED: the frame source raised (the only error outcome)
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class StreamOutcome(str, Enum):
    """How a streaming session ended."""

    COMPLETED = "COMPLETED"
    CLIENT_DISCONNECTED = "CLIENT_DISCONNECTED"
    TIMED_OUT = "TIMED_OUT"
    SOURCE_FAILED = "SOURCE_FAILED"


class StreamResult(BaseModel):
    """
    Summary of a finished streaming session.

    Attributes:
        outcome: How the session ended
        frames_sent: Frames fully written and flushed
        bytes_sent: Body bytes flushed to the sink
        duration_seconds: Wall time from session start to end
        error: Fault description for SOURCE_FAILED, otherwise None
    """

    outcome: StreamOutcome
    frames_sent: int = Field(default=0, ge=0)
    bytes_sent: int = Field(default=0, ge=0)
    duration_seconds: float = Field(default=0.0, ge=0)
    error: Optional[str] = None

    @property
    def is_error(self) -> bool:
        """True only when the session was aborted by a fault."""
        return self.outcome == StreamOutcome.SOURCE_FAILED
