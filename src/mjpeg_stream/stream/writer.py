"""
MJPEG Stream Writer
===================

Emits a sequence of frames as a `multipart/x-mixed-replace` body.

Wire layout per frame:

    CRLF "--" token CRLF
    "Content-Type: " mime CRLF
    "Content-Length: " length CRLF
    CRLF
    payload

Nothing is written after the last payload. The delimiter that opens frame
k+1 closes the payload of frame k.

Each frame is flushed as soon as it is written; without the flush the
transport would buffer and the client would not see a live stream.

Design Rules:
    - A sink that cannot flush is a configuration error, raised before
      anything is written
    - Client disconnects and timeouts end the session quietly
    - A peer leaving cancels a pending frame pull at once
    - Frame source faults end the session with SOURCE_FAILED
    - The frame source is always closed when the session ends
    - No retries; a new session needs a new connection
"""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import AsyncIterable, Awaitable, Iterable, Optional, TypeVar, Union

from mjpeg_stream.config import StreamConfig
from mjpeg_stream.models.result import StreamOutcome, StreamResult
from mjpeg_stream.stream.errors import (
    BoundaryCollisionError,
    ClientDisconnectedError,
    FlushUnsupportedError,
    StreamTimeoutError,
)
from mjpeg_stream.stream.frame import Frame
from mjpeg_stream.stream.sink import FrameSink
from mjpeg_stream.stream.sources import FrameSource, IterableFrameSource


logger = logging.getLogger(__name__)

T = TypeVar("T")

CRLF = b"\r\n"


def content_type_header(boundary_token: str) -> str:
    """Response Content-Type for a stream using the given boundary."""
    return f"multipart/x-mixed-replace; boundary={boundary_token}"


def encode_boundary_line(boundary_token: str) -> bytes:
    """Delimiter opening a part: CRLF "--" token CRLF."""
    return CRLF + b"--" + boundary_token.encode("ascii") + CRLF


def encode_part_headers(frame: Frame) -> bytes:
    """Part header block, including the blank line ending it."""
    return (
        b"Content-Type: " + frame.mime_type.encode("ascii") + CRLF
        + b"Content-Length: " + str(frame.length).encode("ascii") + CRLF
        + CRLF
    )


def contains_boundary(frame: Frame, boundary_token: str) -> bool:
    """Whether the boundary token occurs inside the frame payload."""
    return boundary_token.encode("ascii") in frame.payload


@dataclass
class StreamSession:
    """
    Per-connection streaming state.

    Attributes:
        boundary_token: Multipart boundary for this session
        frame_index: Frames fully written and flushed so far
        bytes_sent: Body bytes flushed so far
        terminated: Set once the session has ended
        session_id: Short identifier for log correlation
    """

    boundary_token: str
    frame_index: int = 0
    bytes_sent: int = 0
    terminated: bool = False
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    started_at: float = field(default_factory=time.monotonic)

    @property
    def elapsed(self) -> float:
        """Seconds since the session started."""
        return time.monotonic() - self.started_at


class MJPEGStreamWriter:
    """
    Drives the multipart protocol for one session at a time.

    The writer holds only immutable configuration, so one instance can
    serve any number of concurrent sessions.

    Attributes:
        boundary_token: Multipart boundary
        next_frame_timeout: Max seconds to wait for the next frame
        flush_timeout: Max seconds a flush may take
        check_boundary: Reject payloads that contain the boundary

    Example:
        writer = MJPEGStreamWriter(boundary_token="abcd4321")
        result = await writer.stream_frames(sink, source)
        if result.is_error:
            logger.error(result.error)
    """

    def __init__(
        self,
        boundary_token: str = "abcd4321",
        next_frame_timeout: Optional[float] = None,
        flush_timeout: Optional[float] = None,
        check_boundary: bool = False,
    ) -> None:
        if not boundary_token:
            raise ValueError("boundary_token must not be empty")

        self.boundary_token = boundary_token
        self.next_frame_timeout = next_frame_timeout
        self.flush_timeout = flush_timeout
        self.check_boundary = check_boundary

        self._boundary_line = encode_boundary_line(boundary_token)

    @classmethod
    def from_config(cls, config: StreamConfig) -> "MJPEGStreamWriter":
        """Create a writer from stream configuration."""
        return cls(
            boundary_token=config.boundary_token,
            next_frame_timeout=config.next_frame_timeout_sec,
            flush_timeout=config.flush_timeout_sec,
            check_boundary=config.check_boundary,
        )

    @property
    def content_type(self) -> str:
        """Response Content-Type header value."""
        return content_type_header(self.boundary_token)

    async def stream_frames(
        self,
        sink: FrameSink,
        frames: Union[FrameSource, AsyncIterable[Frame], Iterable[Frame]],
    ) -> StreamResult:
        """
        Stream frames to the sink until the source ends or the session aborts.

        Args:
            sink: Writable, flushable byte sink
            frames: Frame source, or any iterable or async iterable of frames

        Returns:
            StreamResult describing how the session ended

        Raises:
            FlushUnsupportedError: If the sink cannot flush
            TypeError: If frames is neither a source nor iterable
            asyncio.CancelledError: If the surrounding task is cancelled
        """
        source = frames if isinstance(frames, FrameSource) else IterableFrameSource(frames)
        session = StreamSession(boundary_token=self.boundary_token)

        try:
            if not getattr(sink, "supports_flush", False):
                logger.error(
                    f"Session {session.session_id}: sink {type(sink).__name__} "
                    f"cannot flush, refusing to stream"
                )
                raise FlushUnsupportedError(
                    f"{type(sink).__name__} does not support flushing; "
                    f"frames would be buffered instead of streamed"
                )

            logger.info(f"Session {session.session_id} started (boundary={self.boundary_token})")
            outcome, error = await self._run(session, sink, source)
        finally:
            session.terminated = True
            await self._close_source(session, source)

        result = StreamResult(
            outcome=outcome,
            frames_sent=session.frame_index,
            bytes_sent=session.bytes_sent,
            duration_seconds=session.elapsed,
            error=error,
        )
        logger.info(
            f"Session {session.session_id} ended: {outcome.value} "
            f"(frames={result.frames_sent}, bytes={result.bytes_sent}, "
            f"duration={result.duration_seconds:.2f}s)"
        )
        return result

    async def _run(
        self,
        session: StreamSession,
        sink: FrameSink,
        source: FrameSource,
    ) -> tuple[StreamOutcome, Optional[str]]:
        """Pull and send frames until a termination condition is met."""
        while True:
            try:
                frame = await self._pull(sink, source)
                if frame is not None and self.check_boundary:
                    if contains_boundary(frame, self.boundary_token):
                        raise BoundaryCollisionError(self.boundary_token, session.frame_index)
            except ClientDisconnectedError as e:
                logger.info(
                    f"Session {session.session_id}: client disconnected "
                    f"while waiting for frame {session.frame_index + 1} ({e})"
                )
                return StreamOutcome.CLIENT_DISCONNECTED, None
            except StreamTimeoutError as e:
                logger.warning(f"Session {session.session_id}: {e}, aborting")
                return StreamOutcome.TIMED_OUT, None
            except Exception as e:
                logger.error(
                    f"Session {session.session_id}: frame source failed "
                    f"at frame {session.frame_index}: {e}"
                )
                return StreamOutcome.SOURCE_FAILED, f"{type(e).__name__}: {e}"

            if frame is None:
                return StreamOutcome.COMPLETED, None

            try:
                await self._send_frame(session, sink, frame)
            except StreamTimeoutError as e:
                logger.warning(f"Session {session.session_id}: {e}, aborting")
                return StreamOutcome.TIMED_OUT, None
            except (ClientDisconnectedError, OSError) as e:
                logger.info(
                    f"Session {session.session_id}: client disconnected "
                    f"after {session.frame_index} frames ({e})"
                )
                return StreamOutcome.CLIENT_DISCONNECTED, None

    async def _pull(self, sink: FrameSink, source: FrameSource) -> Optional[Frame]:
        """
        Wait for the next frame, giving up as soon as the peer leaves.

        The pull is cancelled when the sink reports a disconnect, so the
        source never produces for a client that is gone.
        """
        pull = self._bounded(source.next(), self.next_frame_timeout, "next frame")
        wait_disconnected = getattr(sink, "wait_disconnected", None)
        if wait_disconnected is None:
            return await pull

        pull_task = asyncio.ensure_future(pull)
        gone_task = asyncio.ensure_future(wait_disconnected())
        try:
            await asyncio.wait({pull_task, gone_task}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (pull_task, gone_task):
                task.cancel()
            await asyncio.gather(pull_task, gone_task, return_exceptions=True)

        if gone_task.done() and not gone_task.cancelled():
            raise ClientDisconnectedError("Client disconnected")
        return pull_task.result()

    async def _send_frame(self, session: StreamSession, sink: FrameSink, frame: Frame) -> None:
        """Write one part and flush it."""
        headers = encode_part_headers(frame)

        await sink.write(self._boundary_line)
        await sink.write(headers)
        await sink.write(frame.payload)
        await self._bounded(sink.flush(), self.flush_timeout, "flush")

        session.frame_index += 1
        session.bytes_sent += len(self._boundary_line) + len(headers) + frame.length
        logger.debug(
            f"Session {session.session_id}: sent frame {session.frame_index} "
            f"({frame.length} bytes)"
        )

    @staticmethod
    async def _bounded(awaitable: Awaitable[T], timeout: Optional[float], stage: str) -> T:
        if timeout is None:
            return await awaitable
        try:
            return await asyncio.wait_for(awaitable, timeout=timeout)
        except asyncio.TimeoutError as e:
            raise StreamTimeoutError(stage, timeout) from e

    @staticmethod
    async def _close_source(session: StreamSession, source: FrameSource) -> None:
        try:
            await source.close()
        except Exception as e:
            logger.warning(f"Session {session.session_id}: error closing frame source: {e}")
