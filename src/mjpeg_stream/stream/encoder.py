"""
Image Encoder
=============

JPEG helpers for the built-in frame sources.

Design Rules:
    - This is the ONLY place in the codebase that encodes or decodes images
    - Colours are given as RGB tuples; OpenCV works in BGR internally
    - Fails fast on encode/decode errors
"""

import logging
from typing import Tuple

import cv2
import numpy as np


logger = logging.getLogger(__name__)


RGB = Tuple[int, int, int]

BLUE: RGB = (0, 0, 255)
RED: RGB = (255, 0, 0)
GREEN: RGB = (0, 255, 0)


class ImageEncodeError(Exception):
    """Raised when image encoding or decoding fails."""
    pass


def _validate_quality(quality: int) -> None:
    if not 1 <= quality <= 100:
        raise ValueError(f"JPEG quality must be in [1, 100], got {quality}")


def encode_image(image: np.ndarray, quality: int = 90) -> bytes:
    """
    Encode a BGR image as JPEG.

    Args:
        image: BGR (H, W, 3) or grayscale (H, W) array, dtype=uint8
        quality: JPEG quality 1-100

    Returns:
        JPEG bytes

    Raises:
        ImageEncodeError: If OpenCV cannot encode the image
    """
    _validate_quality(quality)

    if image.dtype != np.uint8:
        raise ImageEncodeError(f"Invalid dtype for encoding: {image.dtype}")

    ok, buf = cv2.imencode(".jpg", image, [cv2.IMWRITE_JPEG_QUALITY, quality])
    if not ok:
        raise ImageEncodeError("cv2.imencode failed")

    return buf.tobytes()


def solid_color_image(width: int, height: int, color: RGB) -> np.ndarray:
    """Create a (height, width, 3) BGR image filled with an RGB colour."""
    if width <= 0 or height <= 0:
        raise ValueError(f"Invalid image size: {width}x{height}")

    r, g, b = color
    image = np.empty((height, width, 3), dtype=np.uint8)
    image[:, :] = (b, g, r)
    return image


def encode_solid_color(
    width: int,
    height: int,
    color: RGB,
    quality: int = 90,
) -> bytes:
    """
    Create a single-colour image and return it as JPEG bytes.

    Args:
        width: Image width in pixels
        height: Image height in pixels
        color: RGB colour tuple
        quality: JPEG quality 1-100
    """
    return encode_image(solid_color_image(width, height, color), quality)


def encode_labelled_color(
    width: int,
    height: int,
    color: RGB,
    label: str,
    quality: int = 90,
) -> bytes:
    """Solid colour image with a text label drawn in the top-left corner."""
    image = solid_color_image(width, height, color)

    # White text with a dark outline stays readable on any background
    origin = (8, 8 + 16)
    cv2.putText(image, label, origin, cv2.FONT_HERSHEY_SIMPLEX, 0.5,
                (0, 0, 0), 3, cv2.LINE_AA)
    cv2.putText(image, label, origin, cv2.FONT_HERSHEY_SIMPLEX, 0.5,
                (255, 255, 255), 1, cv2.LINE_AA)

    return encode_image(image, quality)


def decode_image(payload: bytes) -> np.ndarray:
    """
    Decode JPEG bytes to a BGR array.

    Raises:
        ImageEncodeError: If the payload is not a decodable image
    """
    nparr = np.frombuffer(payload, np.uint8)
    bgr = cv2.imdecode(nparr, cv2.IMREAD_COLOR)

    if bgr is None:
        raise ImageEncodeError("cv2.imdecode returned None")

    return bgr


def mean_color(payload: bytes) -> RGB:
    """Average RGB colour of an encoded image."""
    bgr = decode_image(payload)
    b, g, r = (int(round(c)) for c in bgr.reshape(-1, 3).mean(axis=0))
    return (r, g, b)
