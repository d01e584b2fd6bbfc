"""
Stream Errors
=============

Exception hierarchy for the streaming core.

Taxonomy:
    - ConfigurationError: session cannot start (e.g. sink cannot flush)
    - ClientDisconnectedError: peer is gone, expected and not reported
    - FrameSourceError: the source could not produce the next frame
    - StreamTimeoutError: a frame took too long to produce or flush
    - BoundaryCollisionError: payload contains the boundary token
    - MultipartParseError: received bytes are not valid multipart
"""


class StreamError(Exception):
    """Base class for all streaming errors."""
    pass


class ConfigurationError(StreamError):
    """Raised when a session is started with an unusable setup."""
    pass


class FlushUnsupportedError(ConfigurationError):
    """Raised when the sink cannot flush, so the stream would not be live."""
    pass


class ClientDisconnectedError(StreamError):
    """Raised by a sink once the peer has closed the connection."""
    pass


class FrameSourceError(StreamError):
    """Raised by a frame source that cannot produce a frame."""
    pass


class StreamTimeoutError(StreamError):
    """Raised when producing or flushing a frame exceeds its deadline."""

    def __init__(self, stage: str, timeout: float) -> None:
        super().__init__(f"{stage} exceeded {timeout:.3f}s")
        self.stage = stage
        self.timeout = timeout


class BoundaryCollisionError(StreamError):
    """Raised when a frame payload contains the boundary token."""

    def __init__(self, token: str, frame_index: int) -> None:
        super().__init__(
            f"Boundary token {token!r} found inside payload of frame {frame_index}"
        )
        self.token = token
        self.frame_index = frame_index


class MultipartParseError(StreamError):
    """Raised when a multipart body cannot be parsed."""
    pass
