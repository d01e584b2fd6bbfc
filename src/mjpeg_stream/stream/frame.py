"""
Frame Data Model
=================

Encoded image frame passed from a frame source to the stream writer.

Design Rules:
    - Immutable; consumed exactly once by the writer
    - Does NOT decode or manipulate image data
    - Length is derived from the payload, never stored
"""

from dataclasses import dataclass


DEFAULT_MIME_TYPE = "image/jpeg"


@dataclass(frozen=True, slots=True)
class Frame:
    """
    One encoded image ready to be sent as a multipart part.

    Attributes:
        payload: Encoded image bytes (e.g. JPEG)
        mime_type: MIME type of the payload, sent as the part Content-Type
    """

    payload: bytes
    mime_type: str = DEFAULT_MIME_TYPE

    def __post_init__(self) -> None:
        if not isinstance(self.payload, (bytes, bytearray, memoryview)):
            raise TypeError(
                f"Frame payload must be bytes, got {type(self.payload).__name__}"
            )
        if not self.mime_type or not self.mime_type.strip():
            raise ValueError("Frame mime_type must not be empty")

    @property
    def length(self) -> int:
        """Payload size in bytes."""
        return len(self.payload)

    def __repr__(self) -> str:
        """Compact repr that doesn't dump the full image."""
        return f"Frame(mime_type={self.mime_type!r}, length={self.length})"
