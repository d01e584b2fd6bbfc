"""
Frame Source Tests
==================

Pacing, lifecycle and variants of the frame sources.
"""

import asyncio
import threading
import time

import numpy as np
import pytest

from conftest import make_frames
from mjpeg_stream.config import StreamConfig
from mjpeg_stream.stream.encoder import BLUE, GREEN, RED, mean_color
from mjpeg_stream.stream.errors import FrameSourceError
from mjpeg_stream.stream.frame import Frame
from mjpeg_stream.stream.sources import (
    CameraFrameSource,
    ColorCycleFrameSource,
    FrameSource,
    IterableFrameSource,
    StaticFrameSource,
    create_source_factory,
    demo_frames,
)


async def pull(source, count):
    return [await source.next() for _ in range(count)]


class TestFrame:
    """Frame value object."""

    def test_length_is_derived(self):
        frame = Frame(b"12345")
        assert frame.length == 5
        assert frame.mime_type == "image/jpeg"

    def test_immutable(self):
        frame = Frame(b"abc")
        with pytest.raises(AttributeError):
            frame.payload = b"other"

    def test_rejects_empty_mime_type(self):
        with pytest.raises(ValueError):
            Frame(b"abc", mime_type="")

    def test_rejects_text_payload(self):
        with pytest.raises(TypeError):
            Frame("not bytes")

    def test_repr_does_not_dump_payload(self):
        assert repr(Frame(b"x" * 1000)) == "Frame(mime_type='image/jpeg', length=1000)"


class TestStaticFrameSource:
    """Fixed list variant."""

    def test_emits_in_order_then_ends(self):
        frames = make_frames(3)
        source = StaticFrameSource(frames)

        result = asyncio.run(pull(source, 5))

        assert result == frames + [None, None]
        assert source.produced == 3

    def test_loop_repeats(self):
        frames = make_frames(2)
        source = StaticFrameSource(frames, loop=True)

        result = asyncio.run(pull(source, 5))

        assert result == [frames[0], frames[1], frames[0], frames[1], frames[0]]

    def test_loop_requires_frames(self):
        with pytest.raises(ValueError):
            StaticFrameSource([], loop=True)

    def test_negative_interval_rejected(self):
        with pytest.raises(ValueError):
            StaticFrameSource(make_frames(1), interval=-1)

    def test_pacing(self):
        """First frame is immediate; later frames are spaced by the interval."""
        source = StaticFrameSource(make_frames(3), interval=0.05)

        async def timed():
            times = []
            start = time.monotonic()
            async for _ in source:
                times.append(time.monotonic() - start)
            return times

        times = asyncio.run(timed())

        assert len(times) == 3
        assert times[0] < 0.04
        assert times[1] >= 0.045
        assert times[2] >= 0.095

    def test_closed_source_returns_none(self):
        source = StaticFrameSource(make_frames(3))

        async def scenario():
            first = await source.next()
            await source.close()
            await source.close()
            return first, await source.next()

        first, after_close = asyncio.run(scenario())

        assert first is not None
        assert after_close is None
        assert source.closed

    def test_context_manager_closes(self):
        source = StaticFrameSource(make_frames(1))

        async def scenario():
            async with source:
                await source.next()

        asyncio.run(scenario())
        assert source.closed

    def test_satisfies_protocol(self):
        assert isinstance(StaticFrameSource([]), FrameSource)


class TestColorCycleFrameSource:
    """Rendered scene variant."""

    def test_limit_and_colours(self):
        source = ColorCycleFrameSource([BLUE, RED, GREEN], width=32, height=32, limit=4)

        frames = asyncio.run(pull(source, 5))

        assert frames[-1] is None
        colours = [mean_color(f.payload) for f in frames[:4]]
        for actual, expected in zip(colours, [BLUE, RED, GREEN, BLUE]):
            assert all(abs(a - e) <= 12 for a, e in zip(actual, expected))

    def test_labelled_frames_are_jpeg(self):
        source = ColorCycleFrameSource([RED], width=64, height=64, limit=1, label=True)

        frame = asyncio.run(source.next())

        assert frame.mime_type == "image/jpeg"
        assert frame.payload[:2] == b"\xff\xd8"

    def test_requires_colours(self):
        with pytest.raises(ValueError):
            ColorCycleFrameSource([])


class _FakeCapture:
    def __init__(self, opened=True, frames=1):
        self.opened = opened
        self.remaining = frames
        self.released = False

    def isOpened(self):
        return self.opened

    def read(self):
        if self.remaining <= 0:
            return False, None
        self.remaining -= 1
        return True, np.zeros((16, 16, 3), dtype=np.uint8)

    def release(self):
        self.released = True


class _BlockingCapture(_FakeCapture):
    """Capture whose read blocks until released by the test."""

    def __init__(self):
        super().__init__(frames=1)
        self.reading = threading.Event()
        self.unblock = threading.Event()

    def read(self):
        self.reading.set()
        self.unblock.wait(2.0)
        return super().read()


class TestCameraFrameSource:
    """Live camera variant, with OpenCV capture replaced by a fake."""

    def test_reads_and_releases(self, monkeypatch):
        import cv2

        capture = _FakeCapture(frames=2)
        monkeypatch.setattr(cv2, "VideoCapture", lambda device: capture)
        source = CameraFrameSource(device=3)

        async def scenario():
            frames = await pull(source, 2)
            await source.close()
            return frames

        frames = asyncio.run(scenario())

        assert all(f.payload[:2] == b"\xff\xd8" for f in frames)
        assert capture.released

    def test_unopenable_device(self, monkeypatch):
        import cv2

        monkeypatch.setattr(cv2, "VideoCapture", lambda device: _FakeCapture(opened=False))

        with pytest.raises(FrameSourceError):
            asyncio.run(CameraFrameSource(device=7).next())

    def test_read_failure(self, monkeypatch):
        import cv2

        monkeypatch.setattr(cv2, "VideoCapture", lambda device: _FakeCapture(frames=0))

        with pytest.raises(FrameSourceError):
            asyncio.run(CameraFrameSource().next())

    def test_release_waits_for_read_in_progress(self, monkeypatch):
        """Closing during a blocked read defers the release until the read returns."""
        import cv2

        capture = _BlockingCapture()
        monkeypatch.setattr(cv2, "VideoCapture", lambda device: capture)
        source = CameraFrameSource()

        async def scenario():
            pending = asyncio.ensure_future(source.next())
            assert await asyncio.to_thread(capture.reading.wait, 1.0)
            pending.cancel()
            await asyncio.gather(pending, return_exceptions=True)
            await source.close()
            released_during_read = capture.released

            capture.unblock.set()
            for _ in range(100):
                if capture.released:
                    break
                await asyncio.sleep(0.01)
            return released_during_read

        released_during_read = asyncio.run(scenario())

        assert released_during_read is False
        assert capture.released
        assert source.closed


class TestIterableFrameSource:
    def test_wraps_async_generator(self):
        frames = make_frames(2)

        async def gen():
            for frame in frames:
                yield frame

        source = IterableFrameSource(gen())

        assert asyncio.run(pull(source, 3)) == frames + [None]

    def test_wraps_plain_iterables(self):
        frames = make_frames(2)

        assert asyncio.run(pull(IterableFrameSource(frames), 3)) == frames + [None]

    def test_closes_sync_generator(self):
        finalized = []

        def gen():
            try:
                yield from make_frames(5)
            finally:
                finalized.append(True)

        source = IterableFrameSource(gen())

        async def scenario():
            await source.next()
            await source.close()

        asyncio.run(scenario())

        assert finalized == [True]

    def test_rejects_non_iterable(self):
        with pytest.raises(TypeError):
            IterableFrameSource(object())


class TestFactories:
    """Source factory registry."""

    def test_demo_frames_colours(self):
        frames = demo_frames(width=40, height=40)

        assert len(frames) == 3
        for frame, expected in zip(frames, (BLUE, RED, GREEN)):
            assert all(abs(a - e) <= 12 for a, e in zip(mean_color(frame.payload), expected))

    def test_factory_creates_fresh_sources(self):
        """Each session restarts the sequence from the beginning."""
        factory = create_source_factory("demo", StreamConfig(frame_interval_ms=0))

        first, second = factory(), factory()
        asyncio.run(pull(first, 3))

        assert first is not second
        assert asyncio.run(second.next()) is not None
        assert second.produced == 1

    def test_pattern_is_endless(self):
        factory = create_source_factory("pattern", StreamConfig(frame_interval_ms=0, frame_width=16, frame_height=16))
        source = factory()

        frames = asyncio.run(pull(source, 7))

        assert all(frame is not None for frame in frames)

    def test_camera_factory(self):
        factory = create_source_factory("camera", StreamConfig(camera_device=2))
        source = factory()

        assert isinstance(source, CameraFrameSource)
        assert source.device == 2

    def test_unknown_source(self):
        with pytest.raises(ValueError, match="Unknown frame source"):
            create_source_factory("hologram", StreamConfig())
