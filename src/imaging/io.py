"""
Still-image loading for the photo detection path.
"""

from __future__ import annotations

import os

import cv2
import numpy as np

from models.errors import ImageDecodeError, ImageDimensionsError


def decode_image(data: bytes, source: str = "<bytes>") -> np.ndarray:
    """
    Decode encoded image bytes (JPEG, PNG, ...) to an HxWx3 RGB raster.

    Raises:
        ImageDecodeError: If the bytes are empty or not a decodable image.
    """
    if not data:
        raise ImageDecodeError("Empty image data", source=source)

    buffer = np.frombuffer(data, dtype=np.uint8)
    try:
        bgr = cv2.imdecode(buffer, cv2.IMREAD_COLOR)
    except cv2.error as e:
        raise ImageDecodeError(f"OpenCV failed to decode image: {e}", source=source) from e
    if bgr is None:
        raise ImageDecodeError("Unsupported or corrupt image data", source=source)

    return _bgr_to_rgb(bgr)


def load_image(path: str) -> np.ndarray:
    """Read an image file from disk and return it as an RGB raster."""
    if not os.path.isfile(path):
        raise ImageDecodeError(f"Image file not found: {path}", source=path)
    with open(path, "rb") as f:
        return decode_image(f.read(), source=path)


def _bgr_to_rgb(bgr: np.ndarray) -> np.ndarray:
    if bgr.ndim != 3 or bgr.shape[0] == 0 or bgr.shape[1] == 0:
        raise ImageDimensionsError(f"Decoded image has invalid shape {bgr.shape}")
    return cv2.cvtColor(bgr, cv2.COLOR_BGR2RGB)
