"""
Multipart Stream Parser
=======================

Incremental parser for `multipart/x-mixed-replace` bodies.

The parser accepts bytes in arbitrary chunks and returns every part that
became complete. Parts with a Content-Length header are cut by length;
parts without one end at the next delimiter.

Tolerated:
    - A leading CRLF (or any preamble) before the first delimiter
    - Transport padding after a delimiter
    - A delimiter both before and after each part
    - A missing close delimiter at the end of the stream

Example:
    parser = MultipartStreamParser("abcd4321")
    for chunk in response.iter_content(8192):
        for part in parser.feed(chunk):
            show(part.payload)
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from mjpeg_stream.stream.errors import MultipartParseError
from mjpeg_stream.stream.frame import DEFAULT_MIME_TYPE, Frame


logger = logging.getLogger(__name__)


CRLF = b"\r\n"
HEADER_END = b"\r\n\r\n"


@dataclass
class Part:
    """One decoded multipart part. Header names are lower-cased."""

    headers: Dict[str, str] = field(default_factory=dict)
    payload: bytes = b""

    @property
    def content_type(self) -> str:
        return self.headers.get("content-type", DEFAULT_MIME_TYPE)

    @property
    def content_length(self) -> Optional[int]:
        value = self.headers.get("content-length")
        return int(value) if value is not None else None

    def to_frame(self) -> Frame:
        return Frame(payload=self.payload, mime_type=self.content_type)


def boundary_from_content_type(content_type: str) -> str:
    """
    Extract the boundary parameter from a multipart Content-Type value.

    Raises:
        MultipartParseError: If the type is not multipart or has no boundary
    """
    media_type, _, params = content_type.partition(";")
    if not media_type.strip().lower().startswith("multipart/"):
        raise MultipartParseError(f"Not a multipart content type: {content_type!r}")

    for param in params.split(";"):
        name, _, value = param.strip().partition("=")
        if name.strip().lower() == "boundary":
            value = value.strip()
            if len(value) >= 2 and value[0] == value[-1] == '"':
                value = value[1:-1]
            if value:
                return value

    raise MultipartParseError(f"No boundary in content type: {content_type!r}")


class MultipartStreamParser:
    """
    Incremental multipart parser.

    Attributes:
        boundary: Boundary token (without leading dashes)
        max_part_size: Largest accepted part in bytes
        parts_parsed: Number of complete parts returned so far
        finished: True once the close delimiter has been seen
    """

    _SEEK = "seek"
    _HEADERS = "headers"
    _BODY = "body"

    def __init__(self, boundary: str, max_part_size: int = 16 * 1024 * 1024) -> None:
        if not boundary:
            raise ValueError("boundary must not be empty")

        self.boundary = boundary
        self.max_part_size = max_part_size
        self.parts_parsed: int = 0
        self.finished: bool = False

        self._dash_boundary = b"--" + boundary.encode("ascii")
        self._delimiter = CRLF + self._dash_boundary
        self._buffer = bytearray()
        self._state = self._SEEK
        self._headers: Dict[str, str] = {}
        self._length: Optional[int] = None

    def feed(self, data: bytes) -> List[Part]:
        """Add bytes and return all parts completed by them."""
        if self.finished:
            return []

        self._buffer.extend(data)
        parts: List[Part] = []

        while True:
            if self._state == self._SEEK:
                if not self._seek_delimiter():
                    break
            elif self._state == self._HEADERS:
                if not self._read_headers():
                    break
            else:
                part = self._read_body()
                if part is None:
                    break
                parts.append(part)

            if self.finished:
                break

        if len(self._buffer) > self.max_part_size + len(self._delimiter) + 1024:
            raise MultipartParseError(
                f"Part exceeds max size of {self.max_part_size} bytes"
            )

        return parts

    def finish(self) -> List[Part]:
        """
        Signal end of input.

        A part without Content-Length that was cut off by the end of the
        stream is returned as-is.
        """
        parts: List[Part] = []
        if (
            not self.finished
            and self._state == self._BODY
            and self._length is None
            and self._buffer
        ):
            parts.append(self._emit(bytes(self._buffer)))
        self._buffer.clear()
        self.finished = True
        return parts

    def _seek_delimiter(self) -> bool:
        index = self._buffer.find(self._dash_boundary)
        if index < 0:
            # Keep a tail that may hold the start of a split delimiter
            keep = len(self._dash_boundary) - 1
            if len(self._buffer) > keep:
                del self._buffer[:len(self._buffer) - keep]
            return False

        line_end = self._buffer.find(CRLF, index + len(self._dash_boundary))
        if line_end < 0:
            rest = self._buffer[index + len(self._dash_boundary):]
            if rest.startswith(b"--"):
                self.finished = True
                self._buffer.clear()
                return True
            if index > 0:
                del self._buffer[:index]
            return False

        suffix = bytes(self._buffer[index + len(self._dash_boundary):line_end])
        del self._buffer[:line_end + len(CRLF)]

        if suffix.startswith(b"--"):
            self.finished = True
            self._buffer.clear()
            return True
        if suffix.strip(b" \t"):
            raise MultipartParseError(f"Unexpected text after delimiter: {suffix!r}")

        self._state = self._HEADERS
        return True

    def _read_headers(self) -> bool:
        if self._buffer.startswith(CRLF):
            del self._buffer[:len(CRLF)]
            self._start_body({})
            return True

        end = self._buffer.find(HEADER_END)
        if end < 0:
            return False

        block = bytes(self._buffer[:end])
        del self._buffer[:end + len(HEADER_END)]
        self._start_body(self._parse_header_block(block))
        return True

    @staticmethod
    def _parse_header_block(block: bytes) -> Dict[str, str]:
        headers: Dict[str, str] = {}
        for raw_line in block.split(CRLF):
            if not raw_line:
                continue
            line = raw_line.decode("latin-1")
            name, sep, value = line.partition(":")
            if not sep or not name.strip():
                raise MultipartParseError(f"Malformed part header: {line!r}")
            headers[name.strip().lower()] = value.strip()
        return headers

    def _start_body(self, headers: Dict[str, str]) -> None:
        length: Optional[int] = None
        if "content-length" in headers:
            try:
                length = int(headers["content-length"])
            except ValueError:
                raise MultipartParseError(
                    f"Invalid Content-Length: {headers['content-length']!r}"
                )
            if length < 0 or length > self.max_part_size:
                raise MultipartParseError(f"Content-Length out of range: {length}")

        self._headers = headers
        self._length = length
        self._state = self._BODY

    def _read_body(self) -> Optional[Part]:
        if self._length is not None:
            if len(self._buffer) < self._length:
                return None
            payload = bytes(self._buffer[:self._length])
            del self._buffer[:self._length]
            return self._emit(payload)

        end = self._buffer.find(self._delimiter)
        if end < 0:
            return None
        payload = bytes(self._buffer[:end])
        # Leave the dash-boundary in place for the seek state
        del self._buffer[:end + len(CRLF)]
        return self._emit(payload)

    def _emit(self, payload: bytes) -> Part:
        part = Part(headers=self._headers, payload=payload)
        self._headers = {}
        self._length = None
        self._state = self._SEEK
        self.parts_parsed += 1
        return part


def parse_multipart(body: bytes, boundary: str) -> List[Part]:
    """Parse a complete multipart body."""
    parser = MultipartStreamParser(boundary)
    parts = parser.feed(body)
    parts.extend(parser.finish())
    return parts
