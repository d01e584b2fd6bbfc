"""
Frame Sources
=============

Lazy, paced producers of encoded frames.

A frame source is pulled by the stream writer one frame at a time. Pulling
may suspend for the pacing interval; returning None marks the end of the
sequence. Each streaming session gets its own source instance from a
stateless factory, so a slow client never affects another one.

Variants:
    - StaticFrameSource: fixed list of frames, optionally looping
    - ColorCycleFrameSource: rendered solid-colour scene (test pattern)
    - CameraFrameSource: live capture device through OpenCV
    - IterableFrameSource: adapter for any iterable of frames

Example:
    source = StaticFrameSource([frame_a, frame_b], interval=0.5)

    async with source:
        async for frame in source:
            send(frame)
"""

import asyncio
import logging
import time
from typing import (
    AsyncIterable,
    Callable,
    Iterable,
    Optional,
    Protocol,
    Sequence,
    Union,
    runtime_checkable,
)

from mjpeg_stream.config import StreamConfig
from mjpeg_stream.stream.encoder import (
    BLUE,
    GREEN,
    RED,
    RGB,
    encode_image,
    encode_labelled_color,
    encode_solid_color,
)
from mjpeg_stream.stream.errors import FrameSourceError
from mjpeg_stream.stream.frame import Frame


logger = logging.getLogger(__name__)


@runtime_checkable
class FrameSource(Protocol):
    """
    Protocol for frame producers.

    All implementations must provide an async `next` method returning the
    next Frame (or None at end of sequence) and an async `close` method
    that releases any held resources. `close` must be idempotent.
    """

    async def next(self) -> Optional[Frame]:
        ...

    async def close(self) -> None:
        ...


FrameSourceFactory = Callable[[], FrameSource]


class BaseFrameSource:
    """
    Common pacing and lifecycle handling for frame sources.

    The first frame is produced immediately; every following frame is
    delayed so that consecutive frames are `interval` seconds apart,
    measured from when the previous frame was handed out.

    Subclasses implement `_produce()` and optionally `_release()`.
    """

    def __init__(self, interval: float = 0.0) -> None:
        if interval < 0:
            raise ValueError(f"interval must be >= 0, got {interval}")

        self.interval = interval
        self._closed: bool = False
        self._last_emit: Optional[float] = None
        self._produced: int = 0

    @property
    def closed(self) -> bool:
        """Whether close() has been called."""
        return self._closed

    @property
    def produced(self) -> int:
        """Number of frames handed out so far."""
        return self._produced

    async def next(self) -> Optional[Frame]:
        """Wait for the pacing delay, then produce the next frame."""
        if self._closed:
            return None

        if self._last_emit is not None and self.interval > 0:
            delay = self._last_emit + self.interval - time.monotonic()
            if delay > 0:
                await asyncio.sleep(delay)
            if self._closed:
                return None

        frame = await self._produce()
        if frame is None:
            return None

        self._last_emit = time.monotonic()
        self._produced += 1
        return frame

    async def close(self) -> None:
        """Stop producing and release resources. Safe to call twice."""
        if self._closed:
            return
        self._closed = True
        await self._release()

    async def _produce(self) -> Optional[Frame]:
        raise NotImplementedError

    async def _release(self) -> None:
        pass

    def __aiter__(self) -> "BaseFrameSource":
        return self

    async def __anext__(self) -> Frame:
        frame = await self.next()
        if frame is None:
            raise StopAsyncIteration
        return frame

    async def __aenter__(self) -> "BaseFrameSource":
        return self

    async def __aexit__(self, *args) -> None:
        await self.close()


class StaticFrameSource(BaseFrameSource):
    """
    Fixed list of pre-encoded frames.

    Attributes:
        frames: Frames to emit, in order
        loop: Start again from the first frame after the last one
    """

    def __init__(
        self,
        frames: Sequence[Frame],
        interval: float = 0.0,
        loop: bool = False,
    ) -> None:
        super().__init__(interval=interval)
        if loop and not frames:
            raise ValueError("Cannot loop over an empty frame list")

        self.frames = tuple(frames)
        self.loop = loop
        self._position: int = 0

    async def _produce(self) -> Optional[Frame]:
        if self._position >= len(self.frames):
            if not self.loop:
                return None
            self._position = 0

        frame = self.frames[self._position]
        self._position += 1
        return frame


class ColorCycleFrameSource(BaseFrameSource):
    """
    Rendered scene cycling through solid colours.

    Frames are encoded on demand, so an infinite source never holds more
    than one frame in memory.
    """

    def __init__(
        self,
        colors: Sequence[RGB],
        width: int = 200,
        height: int = 200,
        interval: float = 0.0,
        limit: Optional[int] = None,
        label: bool = False,
        quality: int = 90,
    ) -> None:
        super().__init__(interval=interval)
        if not colors:
            raise ValueError("colors must not be empty")
        if limit is not None and limit < 0:
            raise ValueError(f"limit must be >= 0, got {limit}")

        self.colors = tuple(colors)
        self.width = width
        self.height = height
        self.limit = limit
        self.label = label
        self.quality = quality
        self._index: int = 0

    async def _produce(self) -> Optional[Frame]:
        if self.limit is not None and self._index >= self.limit:
            return None

        color = self.colors[self._index % len(self.colors)]
        if self.label:
            payload = encode_labelled_color(
                self.width, self.height, color,
                label=f"frame {self._index}",
                quality=self.quality,
            )
        else:
            payload = encode_solid_color(
                self.width, self.height, color, quality=self.quality
            )

        self._index += 1
        return Frame(payload=payload)


class CameraFrameSource(BaseFrameSource):
    """
    Live capture device read through OpenCV.

    The device is opened lazily on the first pull and released on close.
    Blocking capture calls run in a worker thread.
    """

    def __init__(
        self,
        device: int = 0,
        interval: float = 0.0,
        quality: int = 80,
    ) -> None:
        super().__init__(interval=interval)
        self.device = device
        self.quality = quality
        self._capture = None
        self._reading: Optional[asyncio.Future] = None

    def _open(self):
        import cv2

        capture = cv2.VideoCapture(self.device)
        if not capture.isOpened():
            capture.release()
            raise FrameSourceError(f"Cannot open capture device {self.device}")

        logger.info(f"Opened capture device {self.device}")
        return capture

    def _read_jpeg(self) -> bytes:
        if self._capture is None:
            self._capture = self._open()

        ok, image = self._capture.read()
        if not ok or image is None:
            raise FrameSourceError(f"Capture device {self.device} returned no frame")

        return encode_image(image, self.quality)

    async def _produce(self) -> Optional[Frame]:
        # Shielded: a cancelled pull leaves the worker thread running, and
        # the capture must not be released under it
        self._reading = asyncio.ensure_future(asyncio.to_thread(self._read_jpeg))
        payload = await asyncio.shield(self._reading)
        return Frame(payload=payload)

    def _release_capture(self) -> None:
        capture, self._capture = self._capture, None
        if capture is not None:
            capture.release()
            logger.info(f"Released capture device {self.device}")

    def _release_after_read(self, reading: asyncio.Future) -> None:
        if not reading.cancelled() and reading.exception() is not None:
            logger.debug(f"Abandoned read on device {self.device} failed: {reading.exception()}")
        self._release_capture()

    async def _release(self) -> None:
        reading = self._reading
        if reading is not None and not reading.done():
            logger.debug(f"Capture device {self.device} busy, releasing after the current read")
            reading.add_done_callback(self._release_after_read)
            return
        await asyncio.to_thread(self._release_capture)


class IterableFrameSource(BaseFrameSource):
    """
    Adapter turning an iterable of frames into a FrameSource.

    Accepts async iterables (such as async generators) and plain
    iterables (lists, generators).
    """

    def __init__(self, frames: Union[AsyncIterable[Frame], Iterable[Frame]]) -> None:
        super().__init__(interval=0.0)
        if hasattr(frames, "__aiter__"):
            self._iterator = frames.__aiter__()
            self._is_async = True
        elif hasattr(frames, "__iter__"):
            self._iterator = iter(frames)
            self._is_async = False
        else:
            raise TypeError(
                f"Expected a FrameSource or an iterable of frames, "
                f"got {type(frames).__name__}"
            )

    async def _produce(self) -> Optional[Frame]:
        if not self._is_async:
            return next(self._iterator, None)
        try:
            return await self._iterator.__anext__()
        except StopAsyncIteration:
            return None

    async def _release(self) -> None:
        if self._is_async:
            aclose = getattr(self._iterator, "aclose", None)
            if aclose is not None:
                await aclose()
        else:
            close = getattr(self._iterator, "close", None)
            if close is not None:
                close()


# =============================================================================
# Factories
# =============================================================================

DEMO_COLORS = (BLUE, RED, GREEN)

SOURCE_NAMES = ("demo", "pattern", "camera")


def demo_frames(width: int = 200, height: int = 200, quality: int = 90) -> list[Frame]:
    """The three-frame blue, red, green animation."""
    return [
        Frame(payload=encode_solid_color(width, height, color, quality=quality))
        for color in DEMO_COLORS
    ]


def create_source_factory(name: str, config: StreamConfig) -> FrameSourceFactory:
    """
    Build a stateless factory for the named source.

    Fails fast if the name is unknown.

    Args:
        name: One of "demo", "pattern", "camera"
        config: Stream configuration (sizes, pacing, quality)

    Returns:
        Callable creating a fresh FrameSource per session
    """
    interval = config.frame_interval_ms / 1000.0

    if name == "demo":
        frames = demo_frames(config.frame_width, config.frame_height, config.jpeg_quality)

        def factory() -> FrameSource:
            return StaticFrameSource(frames, interval=interval)

    elif name == "pattern":
        def factory() -> FrameSource:
            return ColorCycleFrameSource(
                DEMO_COLORS,
                width=config.frame_width,
                height=config.frame_height,
                interval=interval,
                label=True,
                quality=config.jpeg_quality,
            )

    elif name == "camera":
        def factory() -> FrameSource:
            return CameraFrameSource(
                device=config.camera_device,
                interval=interval,
                quality=config.jpeg_quality,
            )

    else:
        raise ValueError(
            f"Unknown frame source: {name!r} (expected one of {', '.join(SOURCE_NAMES)})"
        )

    logger.info(f"Frame source factory ready: {name} (interval={interval:.3f}s)")
    return factory
