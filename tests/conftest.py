"""
Test Configuration
==================

Pytest fixtures and test configuration for mjpeg-stream.
"""

from typing import List, Optional

import pytest

from mjpeg_stream.stream.frame import Frame
from mjpeg_stream.stream.sources import BaseFrameSource


BOUNDARY = "abcd4321"


class RecordingSource(BaseFrameSource):
    """
    Frame source that records pulls and can fail on a given pull.

    Attributes:
        pulls: Number of times next() produced or attempted a frame
        close_calls: Number of close() calls
    """

    def __init__(
        self,
        frames: List[Frame],
        fail_on_pull: Optional[int] = None,
        interval: float = 0.0,
    ) -> None:
        super().__init__(interval=interval)
        self.frames = list(frames)
        self.fail_on_pull = fail_on_pull
        self.pulls: int = 0
        self.close_calls: int = 0

    async def _produce(self) -> Optional[Frame]:
        self.pulls += 1
        if self.fail_on_pull is not None and self.pulls == self.fail_on_pull:
            raise RuntimeError(f"camera unplugged on pull {self.pulls}")
        if self.pulls > len(self.frames):
            return None
        return self.frames[self.pulls - 1]

    async def close(self) -> None:
        self.close_calls += 1
        await super().close()


def make_frames(count: int) -> List[Frame]:
    """Small fake JPEG-like frames with distinct payloads."""
    return [
        Frame(payload=b"\xff\xd8" + f"frame-{i}".encode() * (i + 1) + b"\xff\xd9")
        for i in range(count)
    ]


@pytest.fixture
def sample_frames() -> List[Frame]:
    """Provide three small frames with distinct MIME types."""
    return [
        Frame(payload=b"\xff\xd8blue\xff\xd9", mime_type="image/jpeg"),
        Frame(payload=b"\x89PNG\r\n\x1a\nred", mime_type="image/png"),
        Frame(payload=b"\xff\xd8green\xff\xd9", mime_type="image/jpeg"),
    ]


@pytest.fixture
def test_settings(tmp_path):
    """Settings with no pacing and a temporary static root."""
    from mjpeg_stream.config import Settings, StaticConfig, StreamConfig

    static_root = tmp_path / "static"
    static_root.mkdir()
    (static_root / "index.html").write_text("<html><body>mjpeg</body></html>")

    return Settings(
        stream=StreamConfig(frame_interval_ms=0),
        static=StaticConfig(root=str(static_root)),
    )
