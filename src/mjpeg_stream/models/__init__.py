"""
Data Models
===========

Pydantic models for mjpeg-stream.

Models:
    - StreamOutcome: How a streaming session ended
    - StreamResult: Summary returned by the stream writer
"""

from mjpeg_stream.models.result import StreamOutcome, StreamResult

__all__ = [
    "StreamOutcome",
    "StreamResult",
]
