"""
MJPEG Stream Client
===================

Blocking HTTP client reading frames from a multipart MJPEG endpoint.

This client:
    - Opens one streaming GET request
    - Takes the boundary from the response Content-Type
    - Parses parts incrementally and yields them as Frames
    - Tracks simple metrics for monitoring

Example:
    with MJPEGStreamClient("http://localhost:8080/animation") as client:
        for frame in client:
            print(frame)

Design Rules:
    - No reconnection; a broken stream ends iteration
    - Only one frame is buffered beyond the network read size
"""

import logging
import time
from typing import Iterator, Optional

import requests

from mjpeg_stream.stream.errors import ClientDisconnectedError, MultipartParseError
from mjpeg_stream.stream.frame import Frame
from mjpeg_stream.stream.parser import MultipartStreamParser, boundary_from_content_type


logger = logging.getLogger(__name__)


class StreamClientMetrics:
    """Metrics for MJPEGStreamClient observability."""

    __slots__ = (
        "frames_received",
        "bytes_received",
        "first_frame_time",
        "last_frame_time",
    )

    def __init__(self) -> None:
        self.frames_received: int = 0
        self.bytes_received: int = 0
        self.first_frame_time: float = 0.0
        self.last_frame_time: float = 0.0

    @property
    def fps(self) -> float:
        """Average frame rate since the first frame."""
        elapsed = self.last_frame_time - self.first_frame_time
        if self.frames_received < 2 or elapsed <= 0:
            return 0.0
        return (self.frames_received - 1) / elapsed

    def to_dict(self) -> dict:
        """Export metrics as dict."""
        return {
            "frames_received": self.frames_received,
            "bytes_received": self.bytes_received,
            "fps": round(self.fps, 2),
        }


class MJPEGStreamClient:
    """
    Reader for a `multipart/x-mixed-replace` HTTP stream.

    Attributes:
        url: Stream URL
        timeout: Connect/read timeout in seconds
        chunk_size: Bytes read from the socket at a time
        boundary: Boundary token, known once connected
        metrics: Operational metrics
    """

    def __init__(
        self,
        url: str,
        timeout: float = 5.0,
        chunk_size: int = 8192,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self.chunk_size = chunk_size
        self.boundary: Optional[str] = None
        self.metrics = StreamClientMetrics()

        self._session = session or requests.Session()
        self._owns_session = session is None
        self._response: Optional[requests.Response] = None

    def connect(self) -> None:
        """
        Open the stream.

        Raises:
            requests.HTTPError: On a non-2xx status
            MultipartParseError: If the response is not a multipart stream
        """
        response = self._session.get(self.url, stream=True, timeout=self.timeout)
        response.raise_for_status()

        try:
            self.boundary = boundary_from_content_type(
                response.headers.get("Content-Type", "")
            )
        except MultipartParseError:
            response.close()
            raise

        self._response = response
        logger.info(f"Connected to {self.url} (boundary={self.boundary})")

    def close(self) -> None:
        """Close the stream and release the connection."""
        if self._response is not None:
            self._response.close()
            self._response = None
        if self._owns_session:
            self._session.close()

    def frames(self, limit: Optional[int] = None) -> Iterator[Frame]:
        """
        Yield frames until the server ends the stream or `limit` is reached.

        Raises:
            ClientDisconnectedError: If the connection breaks mid-stream
        """
        if self._response is None:
            self.connect()

        parser = MultipartStreamParser(self.boundary)
        emitted = 0

        try:
            for chunk in self._response.iter_content(chunk_size=self.chunk_size):
                for part in parser.feed(chunk):
                    yield self._record(part.to_frame())
                    emitted += 1
                    if limit is not None and emitted >= limit:
                        return
            for part in parser.finish():
                yield self._record(part.to_frame())
        except requests.exceptions.ChunkedEncodingError as e:
            raise ClientDisconnectedError(f"Stream broken: {e}") from e
        except requests.exceptions.ConnectionError as e:
            raise ClientDisconnectedError(f"Connection lost: {e}") from e

        logger.info(f"Stream ended after {self.metrics.frames_received} frames")

    def _record(self, frame: Frame) -> Frame:
        now = time.monotonic()
        if self.metrics.frames_received == 0:
            self.metrics.first_frame_time = now
        self.metrics.frames_received += 1
        self.metrics.bytes_received += frame.length
        self.metrics.last_frame_time = now
        return frame

    def __iter__(self) -> Iterator[Frame]:
        return self.frames()

    def __enter__(self) -> "MJPEGStreamClient":
        self.connect()
        return self

    def __exit__(self, *args) -> None:
        self.close()
