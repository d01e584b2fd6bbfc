"""
HTTP Responses
==============

Starlette responses wiring the stream writer to an ASGI connection.

This module provides:
    - MJPEGStreamingResponse: live multipart stream, one session per request
    - single_frame_response: plain image response, no multipart framing
"""

import logging
from typing import Callable, Mapping, Optional

from starlette.responses import Response
from starlette.types import Receive, Scope, Send

from mjpeg_stream.models.result import StreamResult
from mjpeg_stream.stream.errors import FrameSourceError
from mjpeg_stream.stream.frame import Frame
from mjpeg_stream.stream.metrics import StreamMetrics
from mjpeg_stream.stream.sink import ASGIResponseSink
from mjpeg_stream.stream.sources import FrameSourceFactory
from mjpeg_stream.stream.writer import MJPEGStreamWriter


logger = logging.getLogger(__name__)


NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
}


class MJPEGStreamingResponse(Response):
    """
    Response streaming frames as `multipart/x-mixed-replace`.

    A fresh frame source is created from the factory when the response
    is sent, so every request starts the sequence from the beginning.

    A session that ends with SOURCE_FAILED is not finished cleanly: the
    final body message is withheld and FrameSourceError is raised, so the
    client sees the connection close instead of a normal end of stream.

    Attributes:
        source_factory: Creates the frame source for this session
        writer: Stream writer holding the boundary and timeouts
        metrics: Optional counters updated with the session outcome
        on_result: Optional callback receiving the StreamResult
    """

    def __init__(
        self,
        source_factory: FrameSourceFactory,
        writer: MJPEGStreamWriter,
        metrics: Optional[StreamMetrics] = None,
        on_result: Optional[Callable[[StreamResult], None]] = None,
        status_code: int = 200,
        headers: Optional[Mapping[str, str]] = None,
    ) -> None:
        self.source_factory = source_factory
        self.writer = writer
        self.metrics = metrics
        self.on_result = on_result
        self.status_code = status_code
        self.media_type = writer.content_type
        self.background = None
        self.init_headers({**NO_CACHE_HEADERS, **(headers or {})})

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        await send({
            "type": "http.response.start",
            "status": self.status_code,
            "headers": self.raw_headers,
        })

        if self.metrics is not None:
            self.metrics.record_start()

        result: Optional[StreamResult] = None
        try:
            source = self.source_factory()
            async with ASGIResponseSink(send, receive) as sink:
                result = await self.writer.stream_frames(sink, source)
                if result.is_error:
                    sink.abort()
        finally:
            if self.metrics is not None:
                if result is None:
                    self.metrics.record_abandoned()
                else:
                    self.metrics.record_result(result)

        if self.on_result is not None:
            self.on_result(result)

        if result.is_error:
            raise FrameSourceError(result.error)


def single_frame_response(frame: Frame) -> Response:
    """
    Plain response carrying one frame.

    Content-Type is the frame MIME type and Content-Length its size.
    """
    return Response(content=bytes(frame.payload), media_type=frame.mime_type)
