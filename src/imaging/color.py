"""
YUV 4:2:0 to RGB conversion.

Two converters share one interface:
- OpenCVYuvConverter packs the planes into a contiguous I420 buffer and lets
  OpenCV's native routine do the math. Fast, but needs even dimensions and
  all three planes.
- NumpyYuvConverter is the portable path: a vectorised, stride-aware BT.601
  full-range transform that works for any plane layout (planar or
  interleaved chroma, padded rows).

Both apply the sensor rotation and front-camera mirror after conversion, so
callers always get an upright RGB raster.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Optional, Sequence

import cv2
import numpy as np

from models.errors import FrameConversionError
from models.frame import VALID_ORIENTATIONS, PlaneData, RawFrame

_ROTATIONS = {
    90: cv2.ROTATE_90_CLOCKWISE,
    180: cv2.ROTATE_180,
    270: cv2.ROTATE_90_COUNTERCLOCKWISE,
}


def orient(rgb: np.ndarray, sensor_orientation: int, is_front_camera: bool) -> np.ndarray:
    """
    Rotate clockwise by the sensor orientation, then mirror for front cameras.

    Args:
        rgb: HxWx3 raster.
        sensor_orientation: 0, 90, 180 or 270.
        is_front_camera: Flip horizontally after rotation.
    """
    if sensor_orientation not in VALID_ORIENTATIONS:
        raise FrameConversionError(f"Unsupported sensor orientation: {sensor_orientation}")

    rotate_code = _ROTATIONS.get(sensor_orientation)
    if rotate_code is not None:
        rgb = cv2.rotate(rgb, rotate_code)
    if is_front_camera:
        rgb = cv2.flip(rgb, 1)
    return rgb


def _plane_view(plane: PlaneData, rows: int, cols: int) -> np.ndarray:
    """Return a (rows, cols) view over a strided plane, bounds-checked."""
    data = np.ascontiguousarray(plane.data, dtype=np.uint8).reshape(-1)
    needed = (rows - 1) * plane.row_stride + (cols - 1) * plane.pixel_stride + 1
    if data.size < needed:
        raise FrameConversionError(
            f"Plane too small: need {needed} bytes, have {data.size}"
        )
    return np.lib.stride_tricks.as_strided(
        data,
        shape=(rows, cols),
        strides=(plane.row_stride, plane.pixel_stride),
        writeable=False,
    )


class YuvConverter(ABC):
    """
    Base class for YUV -> RGB converters.

    Subclasses implement _to_rgb() and raise FrameConversionError (or let
    OpenCV raise) on failure; convert() turns any failure into None so the
    caller can try the next converter.
    """

    name = "base"

    def convert(self, frame: RawFrame) -> Optional[np.ndarray]:
        """
        Convert a frame to an upright HxWx3 uint8 RGB raster.

        Returns:
            The raster, or None if this converter cannot handle the frame.
        """
        try:
            rgb = self._to_rgb(frame)
            return orient(rgb, frame.sensor_orientation, frame.is_front_camera)
        except (FrameConversionError, cv2.error, ValueError, IndexError) as e:
            logging.debug(f"{self.name} conversion failed for {frame.width}x{frame.height}: {e}")
            return None

    @abstractmethod
    def _to_rgb(self, frame: RawFrame) -> np.ndarray:
        pass


class OpenCVYuvConverter(YuvConverter):
    """Accelerated conversion through cv2.cvtColor(COLOR_YUV2RGB_I420)."""

    name = "opencv"

    def _to_rgb(self, frame: RawFrame) -> np.ndarray:
        if not frame.has_all_planes:
            raise FrameConversionError(f"Expected 3 planes, got {len(frame.planes)}")
        w, h = frame.width, frame.height
        if w <= 0 or h <= 0 or w % 2 or h % 2:
            raise FrameConversionError(f"I420 packing needs even dimensions, got {w}x{h}")

        y = _plane_view(frame.y_plane, h, w)
        u = _plane_view(frame.u_plane, h // 2, w // 2)
        v = _plane_view(frame.v_plane, h // 2, w // 2)

        packed = np.concatenate([y.reshape(-1), u.reshape(-1), v.reshape(-1)])
        return cv2.cvtColor(packed.reshape(h * 3 // 2, w), cv2.COLOR_YUV2RGB_I420)


class NumpyYuvConverter(YuvConverter):
    """
    Portable BT.601 full-range conversion.

    Samples whose luma or chroma index falls outside the plane buffers are
    left black instead of failing the whole frame.
    """

    name = "numpy"

    def _to_rgb(self, frame: RawFrame) -> np.ndarray:
        if not frame.has_all_planes:
            raise FrameConversionError(f"Expected 3 planes, got {len(frame.planes)}")
        w, h = frame.width, frame.height
        if w <= 0 or h <= 0:
            raise FrameConversionError(f"Invalid frame dimensions {w}x{h}")

        y_plane, u_plane, v_plane = frame.y_plane, frame.u_plane, frame.v_plane
        y_data = np.asarray(y_plane.data, dtype=np.uint8).reshape(-1)
        u_data = np.asarray(u_plane.data, dtype=np.uint8).reshape(-1)
        v_data = np.asarray(v_plane.data, dtype=np.uint8).reshape(-1)

        rows = np.arange(h, dtype=np.int64)[:, None]
        cols = np.arange(w, dtype=np.int64)[None, :]
        y_index = rows * y_plane.row_stride + cols
        uv_index = (rows // 2) * u_plane.row_stride + (cols // 2) * u_plane.pixel_stride

        valid = (
            (y_index < y_data.size)
            & (uv_index < u_data.size)
            & (uv_index < v_data.size)
        )
        if not valid.any():
            raise FrameConversionError("No pixel of the frame is inside the plane buffers")

        y_index = np.where(valid, y_index, 0)
        uv_index = np.where(valid, uv_index, 0)

        yp = y_data[y_index].astype(np.float32)
        up = u_data[uv_index].astype(np.float32) - 128.0
        vp = v_data[uv_index].astype(np.float32) - 128.0

        rgb = np.empty((h, w, 3), dtype=np.float32)
        rgb[..., 0] = yp + 1.402 * vp
        rgb[..., 1] = yp - 0.344136 * up - 0.714136 * vp
        rgb[..., 2] = yp + 1.772 * up

        # Round half away from zero, then clamp
        out = np.clip(np.floor(rgb + 0.5), 0, 255).astype(np.uint8)
        out[~valid] = 0
        return out


def convert_frame(
    frame: RawFrame,
    converters: Sequence[YuvConverter],
) -> Optional[np.ndarray]:
    """
    Try each converter in order and return the first successful raster.

    Returns:
        Upright RGB raster, or None if every converter failed (the frame
        should be dropped).
    """
    for index, converter in enumerate(converters):
        rgb = converter.convert(frame)
        if rgb is not None:
            if index > 0:
                logging.debug(f"Frame {frame.frame_index} converted by fallback '{converter.name}'")
            return rgb

    logging.warning(
        f"All YUV converters failed for {frame.width}x{frame.height} frame "
        f"(planes={len(frame.planes)}), dropping frame"
    )
    return None


def default_converters() -> Sequence[YuvConverter]:
    """Accelerated converter first, portable fallback second."""
    return (OpenCVYuvConverter(), NumpyYuvConverter())
