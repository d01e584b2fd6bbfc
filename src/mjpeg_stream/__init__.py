"""
mjpeg-stream
============

Live image streaming to browsers over `multipart/x-mixed-replace` (MJPEG).

A frame source produces encoded images at a chosen pace; the stream
writer frames each one with a boundary and per-part headers and flushes
it to the client as soon as it is written.

Components:
    - stream: Frame model, frame sources, writer, sinks, parser, client
    - models: Session outcome models
    - main: FastAPI application (streaming, single picture, static files)

Example:
    from mjpeg_stream.main import create_app
    from mjpeg_stream.config import load_config

    app = create_app(load_config())
"""

__version__ = "0.1.0"

__all__ = [
    "__version__",
]
