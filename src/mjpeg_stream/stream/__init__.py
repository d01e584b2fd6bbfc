"""
Stream Module
=============

MJPEG streaming core and its collaborators.

This module provides:
    - Frame: Encoded image passed from source to writer
    - FrameSource and variants: Lazy, paced frame producers
    - MJPEGStreamWriter: multipart/x-mixed-replace protocol driver
    - ASGIResponseSink, MemorySink: Flushable byte sinks
    - MJPEGStreamingResponse: Starlette response running one session
    - MultipartStreamParser, MJPEGStreamClient: Reading streams back

Example:
    from mjpeg_stream.stream import MJPEGStreamWriter, MemorySink, StaticFrameSource

    writer = MJPEGStreamWriter(boundary_token="abcd4321")
    sink = MemorySink()
    result = await writer.stream_frames(sink, StaticFrameSource(frames))
"""

from mjpeg_stream.stream.errors import (
    BoundaryCollisionError,
    ClientDisconnectedError,
    ConfigurationError,
    FlushUnsupportedError,
    FrameSourceError,
    MultipartParseError,
    StreamError,
    StreamTimeoutError,
)
from mjpeg_stream.stream.frame import Frame
from mjpeg_stream.stream.sources import (
    BaseFrameSource,
    CameraFrameSource,
    ColorCycleFrameSource,
    FrameSource,
    FrameSourceFactory,
    IterableFrameSource,
    StaticFrameSource,
    create_source_factory,
    demo_frames,
)
from mjpeg_stream.stream.sink import ASGIResponseSink, FrameSink, MemorySink
from mjpeg_stream.stream.writer import MJPEGStreamWriter, StreamSession, content_type_header
from mjpeg_stream.stream.metrics import StreamMetrics
from mjpeg_stream.stream.response import MJPEGStreamingResponse, single_frame_response
from mjpeg_stream.stream.parser import (
    MultipartStreamParser,
    Part,
    boundary_from_content_type,
    parse_multipart,
)
from mjpeg_stream.stream.client import MJPEGStreamClient


__all__ = [
    # Errors
    "StreamError",
    "ConfigurationError",
    "FlushUnsupportedError",
    "ClientDisconnectedError",
    "FrameSourceError",
    "StreamTimeoutError",
    "BoundaryCollisionError",
    "MultipartParseError",
    # Frames and sources
    "Frame",
    "FrameSource",
    "FrameSourceFactory",
    "BaseFrameSource",
    "StaticFrameSource",
    "ColorCycleFrameSource",
    "CameraFrameSource",
    "IterableFrameSource",
    "create_source_factory",
    "demo_frames",
    # Writing
    "FrameSink",
    "ASGIResponseSink",
    "MemorySink",
    "MJPEGStreamWriter",
    "StreamSession",
    "content_type_header",
    "StreamMetrics",
    "MJPEGStreamingResponse",
    "single_frame_response",
    # Reading
    "MultipartStreamParser",
    "Part",
    "boundary_from_content_type",
    "parse_multipart",
    "MJPEGStreamClient",
]
