"""
Byte Sinks
==========

Writable, flushable byte sinks consumed by the stream writer.

This module provides:
    - FrameSink: protocol the writer depends on
    - ASGIResponseSink: sink over an ASGI `send`/`receive` pair
    - MemorySink: in-memory sink for tests and tools

Design Rules:
    - write() only stages bytes; flush() hands them to the transport
    - At most one frame is staged at a time
    - A gone peer surfaces as ClientDisconnectedError on write/flush
"""

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, Protocol, runtime_checkable

from mjpeg_stream.stream.errors import ClientDisconnectedError


logger = logging.getLogger(__name__)


Message = dict
Send = Callable[[Message], Awaitable[None]]
Receive = Callable[[], Awaitable[Message]]


@runtime_checkable
class FrameSink(Protocol):
    """
    Protocol for byte sinks.

    `supports_flush` must be True for the sink to be used for live
    streaming. Sinks raise ClientDisconnectedError once the peer is gone.
    A sink may also offer `async wait_disconnected()`, which the writer
    races against the frame source so a gone peer stops the pull at once.
    """

    supports_flush: bool

    async def write(self, data: bytes) -> None:
        ...

    async def flush(self) -> None:
        ...


class ASGIResponseSink:
    """
    Sink writing response body chunks to an ASGI connection.

    Each flush() sends one `http.response.body` message with
    `more_body=True`, which the server writes to the socket right away.
    A background task listens on `receive` for `http.disconnect`.

    The response start message must already have been sent.

    Example:
        async with ASGIResponseSink(send, receive) as sink:
            await sink.write(b"...")
            await sink.flush()
    """

    supports_flush = True

    def __init__(self, send: Send, receive: Optional[Receive] = None) -> None:
        self._send = send
        self._receive = receive
        self._pending: List[bytes] = []
        self._disconnected = asyncio.Event()
        self._watcher: Optional[asyncio.Task] = None
        self._closed: bool = False
        self.bytes_flushed: int = 0

    @property
    def disconnected(self) -> bool:
        """Whether the peer has been seen to disconnect."""
        return self._disconnected.is_set()

    @property
    def pending_bytes(self) -> int:
        """Bytes staged but not yet flushed."""
        return sum(len(chunk) for chunk in self._pending)

    def start(self) -> None:
        """Start listening for client disconnect."""
        if self._receive is not None and self._watcher is None:
            self._watcher = asyncio.create_task(
                self._watch_disconnect(),
                name="mjpeg_disconnect_watcher",
            )

    async def stop(self) -> None:
        """Stop the disconnect listener."""
        if self._watcher is not None:
            self._watcher.cancel()
            try:
                await self._watcher
            except asyncio.CancelledError:
                pass
            self._watcher = None

    async def wait_disconnected(self) -> None:
        """Block until the peer is known to be gone."""
        await self._disconnected.wait()

    async def _watch_disconnect(self) -> None:
        while True:
            try:
                message = await self._receive()
            except Exception as e:
                # The connection can no longer be read; treat it as gone
                logger.warning(f"Receiving from client failed, assuming disconnect: {e}")
                self._disconnected.set()
                return

            if message["type"] == "http.disconnect":
                logger.debug("Client sent http.disconnect")
                self._disconnected.set()
                return

    def _check_connected(self) -> None:
        if self._disconnected.is_set():
            raise ClientDisconnectedError("Client disconnected")

    async def write(self, data: bytes) -> None:
        """Stage bytes for the next flush."""
        self._check_connected()
        if data:
            self._pending.append(bytes(data))

    async def flush(self) -> None:
        """Send all staged bytes as one body chunk."""
        self._check_connected()
        if not self._pending:
            return

        chunk = b"".join(self._pending)
        self._pending.clear()

        try:
            await self._send({
                "type": "http.response.body",
                "body": chunk,
                "more_body": True,
            })
        except OSError as e:
            self._disconnected.set()
            raise ClientDisconnectedError(f"Send failed: {e}") from e

        self.bytes_flushed += len(chunk)

    async def close(self) -> None:
        """
        Finish the response body.

        Staged bytes that were never flushed are discarded, so an aborted
        frame never reaches the client half-written.
        """
        if self._closed:
            return
        self._closed = True
        self._pending.clear()

        if self._disconnected.is_set():
            return

        try:
            await self._send({"type": "http.response.body", "body": b"", "more_body": False})
        except OSError as e:
            self._disconnected.set()
            logger.debug(f"Client gone before response end: {e}")

    def abort(self) -> None:
        """
        Give up on the response without ending the body.

        Staged bytes are discarded and close() becomes a no-op. The caller
        is expected to raise so the server drops the connection.
        """
        self._closed = True
        self._pending.clear()

    async def __aenter__(self) -> "ASGIResponseSink":
        self.start()
        return self

    async def __aexit__(self, *args) -> None:
        await self.stop()
        await self.close()


class MemorySink:
    """
    In-memory sink recording every flushed chunk.

    Attributes:
        chunks: Flushed chunks in order
        supports_flush: Reported flush capability
        fail_after: Number of successful flushes before the sink reports
            a disconnect (None = never)
        flush_delay: Seconds each flush takes
    """

    def __init__(
        self,
        supports_flush: bool = True,
        fail_after: Optional[int] = None,
        flush_delay: float = 0.0,
    ) -> None:
        self.supports_flush = supports_flush
        self.fail_after = fail_after
        self.flush_delay = flush_delay
        self.chunks: List[bytes] = []
        self.flush_count: int = 0
        self._pending: List[bytes] = []
        self._disconnected = asyncio.Event()

    @property
    def body(self) -> bytes:
        """All flushed bytes."""
        return b"".join(self.chunks)

    def disconnect(self) -> None:
        """Simulate the peer closing the connection."""
        self._disconnected.set()

    async def wait_disconnected(self) -> None:
        await self._disconnected.wait()

    async def write(self, data: bytes) -> None:
        if self._disconnected.is_set():
            raise ClientDisconnectedError("Client disconnected")
        self._pending.append(bytes(data))

    async def flush(self) -> None:
        if self.flush_delay:
            await asyncio.sleep(self.flush_delay)

        if self.fail_after is not None and self.flush_count >= self.fail_after:
            self._disconnected.set()
        if self._disconnected.is_set():
            raise ClientDisconnectedError("Client disconnected")

        self.chunks.append(b"".join(self._pending))
        self._pending.clear()
        self.flush_count += 1
