"""
Stream Client Tests
===================

MJPEGStreamClient against a fake requests session.
"""

import pytest
import requests

from conftest import BOUNDARY, make_frames
from mjpeg_stream.stream.client import MJPEGStreamClient
from mjpeg_stream.stream.errors import ClientDisconnectedError, MultipartParseError
from mjpeg_stream.stream.writer import encode_boundary_line, encode_part_headers


def encode_stream(frames, boundary=BOUNDARY):
    return b"".join(
        encode_boundary_line(boundary) + encode_part_headers(f) + f.payload
        for f in frames
    )


class FakeResponse:
    def __init__(self, body, content_type, status_code=200, chunk=7, error=None):
        self.body = body
        self.headers = {"Content-Type": content_type}
        self.status_code = status_code
        self.chunk = chunk
        self.error = error
        self.closed = False

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code}")

    def iter_content(self, chunk_size):
        for i in range(0, len(self.body), self.chunk):
            yield self.body[i:i + self.chunk]
        if self.error is not None:
            raise self.error

    def close(self):
        self.closed = True


class FakeSession:
    def __init__(self, response):
        self.response = response
        self.requests = []

    def get(self, url, stream, timeout):
        self.requests.append((url, stream, timeout))
        return self.response

    def close(self):
        pass


def content_type(boundary=BOUNDARY):
    return f"multipart/x-mixed-replace; boundary={boundary}"


class TestMJPEGStreamClient:
    def test_reads_all_frames(self):
        frames = make_frames(4)
        session = FakeSession(FakeResponse(encode_stream(frames), content_type()))

        with MJPEGStreamClient("http://cam/animation", session=session) as client:
            received = list(client)

        assert received == frames
        assert client.boundary == BOUNDARY
        assert client.metrics.frames_received == 4
        assert client.metrics.bytes_received == sum(f.length for f in frames)
        assert session.requests == [("http://cam/animation", True, 5.0)]
        assert session.response.closed

    def test_limit(self):
        frames = make_frames(5)
        session = FakeSession(FakeResponse(encode_stream(frames), content_type()))
        client = MJPEGStreamClient("http://cam/stream", session=session)

        received = list(client.frames(limit=2))
        client.close()

        assert received == frames[:2]

    def test_not_multipart(self):
        response = FakeResponse(b"\xff\xd8", "image/jpeg")
        client = MJPEGStreamClient("http://cam/picture", session=FakeSession(response))

        with pytest.raises(MultipartParseError):
            client.connect()
        assert response.closed

    def test_http_error(self):
        response = FakeResponse(b"", content_type(), status_code=404)
        client = MJPEGStreamClient("http://cam/missing", session=FakeSession(response))

        with pytest.raises(requests.HTTPError):
            client.connect()

    def test_broken_stream(self):
        frames = make_frames(2)
        response = FakeResponse(
            encode_stream(frames),
            content_type(),
            error=requests.exceptions.ChunkedEncodingError("connection broken"),
        )
        client = MJPEGStreamClient("http://cam/stream", session=FakeSession(response))

        received = []
        with pytest.raises(ClientDisconnectedError):
            for frame in client:
                received.append(frame)

        assert received == frames
