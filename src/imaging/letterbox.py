"""
Letterbox preprocessing: fit an RGB raster into the square model input.

The raster is resized uniformly (aspect ratio preserved), centred on a
grey canvas and normalised to [0, 1], written straight into the runtime's
pre-allocated input tensor.
"""

from __future__ import annotations

import cv2
import numpy as np

from models.detection import LetterboxTransform
from models.errors import ImageDimensionsError

PAD_VALUE = 114
PAD_FILL = PAD_VALUE / 255.0


def compute_transform(width: int, height: int, size: int) -> LetterboxTransform:
    """
    Compute the scale and padding that fit a width x height image into a
    size x size canvas.

    Raises:
        ImageDimensionsError: If any dimension is not positive.
    """
    if width <= 0 or height <= 0 or size <= 0:
        raise ImageDimensionsError(
            f"Cannot letterbox {width}x{height} image into {size}x{size}"
        )

    scale = min(size / width, size / height)
    new_width = min(size, max(1, int(round(width * scale))))
    new_height = min(size, max(1, int(round(height * scale))))
    return LetterboxTransform(
        scale=scale,
        pad_left=(size - new_width) // 2,
        pad_top=(size - new_height) // 2,
        new_width=new_width,
        new_height=new_height,
    )


def letterbox_into(rgb: np.ndarray, tensor: np.ndarray) -> LetterboxTransform:
    """
    Resize, pad and normalise an RGB raster into an existing input tensor.

    Args:
        rgb: HxWx3 uint8 raster.
        tensor: float32 array of shape (1, S, S, 3); overwritten in place.

    Returns:
        The LetterboxTransform needed to map boxes back to the raster.
    """
    if rgb is None or rgb.ndim != 3 or rgb.shape[2] != 3:
        shape = None if rgb is None else rgb.shape
        raise ImageDimensionsError(f"Expected an HxWx3 RGB raster, got shape {shape}")
    if tensor.ndim != 4 or tensor.shape[0] != 1 or tensor.shape[1] != tensor.shape[2]:
        raise ImageDimensionsError(f"Expected a (1, S, S, 3) tensor, got {tensor.shape}")

    height, width = rgb.shape[:2]
    size = tensor.shape[1]
    transform = compute_transform(width, height, size)

    if (transform.new_width, transform.new_height) != (width, height):
        resized = cv2.resize(
            rgb,
            (transform.new_width, transform.new_height),
            interpolation=cv2.INTER_LINEAR,
        )
    else:
        resized = rgb

    canvas = tensor[0]
    canvas.fill(PAD_FILL)
    top, left = transform.pad_top, transform.pad_left
    region = canvas[top:top + transform.new_height, left:left + transform.new_width]
    np.multiply(resized, 1.0 / 255.0, out=region, casting="unsafe")
    return transform


def letterbox(rgb: np.ndarray, size: int) -> tuple[np.ndarray, LetterboxTransform]:
    """Allocate a fresh (1, size, size, 3) tensor and letterbox into it."""
    tensor = np.empty((1, size, size, 3), dtype=np.float32)
    transform = letterbox_into(rgb, tensor)
    return tensor, transform
