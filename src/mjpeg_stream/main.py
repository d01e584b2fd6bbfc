"""
mjpeg-stream Main Application
=============================

FastAPI entry point for the MJPEG streaming server.

Endpoints:
    GET  /animation - Live MJPEG stream from the configured frame source
    GET  /stream    - Endless labelled colour-cycle MJPEG stream
    GET  /picture   - Single JPEG image (no multipart framing)
    GET  /health    - Liveness probe
    GET  /metrics   - Streaming counters
    GET  /*         - Static files from the configured root
"""

import logging
import os
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response
from fastapi.staticfiles import StaticFiles

from mjpeg_stream import __version__
from mjpeg_stream.config import Settings, settings
from mjpeg_stream.stream import (
    Frame,
    MJPEGStreamWriter,
    MJPEGStreamingResponse,
    StreamMetrics,
    create_source_factory,
    single_frame_response,
)
from mjpeg_stream.stream.encoder import BLUE, encode_solid_color


logger = logging.getLogger(__name__)


# =============================================================================
# Application Factory
# =============================================================================

def create_app(app_settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Everything a request needs (writer, source factories, the still
    picture, metrics) is created here and stored on `app.state`, so
    independent apps with different settings can coexist.

    Fails fast if the configured frame source is unknown.
    """
    cfg = app_settings or settings
    stream_cfg = cfg.stream

    writer = MJPEGStreamWriter.from_config(stream_cfg)
    animation_factory = create_source_factory(stream_cfg.source, stream_cfg)
    pattern_factory = create_source_factory("pattern", stream_cfg)
    picture = Frame(
        payload=encode_solid_color(
            stream_cfg.frame_width,
            stream_cfg.frame_height,
            BLUE,
            quality=stream_cfg.jpeg_quality,
        )
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Application lifespan manager."""
        app.state.startup_time = time.time()
        logger.info(f"Starting mjpeg-stream {__version__}")
        logger.info(
            f"Boundary: {stream_cfg.boundary_token}, source: {stream_cfg.source}, "
            f"interval: {stream_cfg.frame_interval_ms}ms"
        )

        yield

        active = app.state.metrics.sessions_active
        logger.info(f"Shutting down ({active} active sessions)")

    app = FastAPI(
        title="mjpeg-stream",
        description="Live image streaming over multipart/x-mixed-replace",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = cfg
    app.state.writer = writer
    app.state.metrics = StreamMetrics()
    app.state.startup_time = time.time()

    # -------------------------------------------------------------------------
    # Streaming endpoints
    # -------------------------------------------------------------------------

    @app.get("/animation")
    async def animation(request: Request) -> Response:
        """Stream frames from the configured source."""
        logger.info(f"Animation stream requested by {_client_addr(request)}")
        return MJPEGStreamingResponse(
            animation_factory,
            request.app.state.writer,
            metrics=request.app.state.metrics,
        )

    @app.get("/stream")
    async def stream(request: Request) -> Response:
        """Stream an endless labelled colour cycle."""
        logger.info(f"Pattern stream requested by {_client_addr(request)}")
        return MJPEGStreamingResponse(
            pattern_factory,
            request.app.state.writer,
            metrics=request.app.state.metrics,
        )

    @app.get("/picture")
    async def get_picture(request: Request) -> Response:
        """Single still image with Content-Type and Content-Length."""
        request.app.state.metrics.pictures_served += 1
        return single_frame_response(picture)

    # -------------------------------------------------------------------------
    # Service endpoints
    # -------------------------------------------------------------------------

    @app.get("/health")
    async def health(request: Request) -> JSONResponse:
        """
        Liveness probe - is the process alive?

        Always returns 200 if the service is running.
        """
        return JSONResponse({
            "status": "healthy",
            "version": __version__,
            "uptime_seconds": round(time.time() - request.app.state.startup_time, 1),
        })

    @app.get("/metrics")
    async def metrics(request: Request) -> JSONResponse:
        """Streaming counters for observability."""
        return JSONResponse({
            "uptime_seconds": round(time.time() - request.app.state.startup_time, 1),
            "boundary_token": stream_cfg.boundary_token,
            "source": stream_cfg.source,
            **request.app.state.metrics.to_dict(),
        })

    # Static files last so the routes above take precedence
    static_root = Path(cfg.static.root)
    if static_root.is_dir():
        app.mount("/", StaticFiles(directory=str(static_root), html=True), name="static")
        logger.info(f"Serving static files from {static_root.resolve()}")
    else:
        logger.warning(f"Static root {static_root} not found, static files disabled")

    return app


def _client_addr(request: Request) -> str:
    if request.client is None:
        return "unknown"
    return f"{request.client.host}:{request.client.port}"


# =============================================================================
# FastAPI Application
# =============================================================================

app = create_app(settings)


# =============================================================================
# Main Entry Point
# =============================================================================

def run() -> None:
    """Run the server with uvicorn."""
    import uvicorn

    port = int(os.environ.get("PORT", settings.server.port))

    uvicorn.run(
        "mjpeg_stream.main:app",
        host=settings.server.host,
        port=port,
        reload=False,
    )


if __name__ == "__main__":
    run()
