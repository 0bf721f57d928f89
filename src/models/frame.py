"""
Frame models for planar camera frames.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

VALID_ORIENTATIONS = (0, 90, 180, 270)


@dataclass(frozen=True, eq=False)
class PlaneData:
    """
    One plane of a planar YUV frame.

    Attributes:
        data: Flat uint8 buffer holding the plane bytes.
        row_stride: Bytes between the start of consecutive rows. May exceed
            the logical width when the platform pads rows.
        pixel_stride: Bytes between consecutive samples in a row (1 for fully
            planar chroma, 2 for interleaved NV12/NV21 chroma).
    """
    data: np.ndarray
    row_stride: int
    pixel_stride: int = 1

    @classmethod
    def from_bytes(cls, data: bytes, row_stride: int, pixel_stride: int = 1) -> "PlaneData":
        return cls(
            data=np.frombuffer(data, dtype=np.uint8),
            row_stride=row_stride,
            pixel_stride=pixel_stride,
        )

    @property
    def size(self) -> int:
        return int(self.data.size)


@dataclass
class RawFrame:
    """
    A YUV 4:2:0 camera frame as delivered by the camera callback.

    Attributes:
        width: Logical frame width in pixels (before rotation).
        height: Logical frame height in pixels (before rotation).
        planes: Luma plane followed by the U and V chroma planes.
        sensor_orientation: Clockwise rotation needed to display the frame upright.
        is_front_camera: Whether the frame comes from a front-facing camera
            (output is mirrored horizontally).
        timestamp: Unix timestamp when the frame was captured.
        frame_index: Sequential frame number since the source was opened.
        source: Identifier for the camera/video source.
    """
    width: int
    height: int
    planes: Tuple[PlaneData, ...]
    sensor_orientation: int = 0
    is_front_camera: bool = False
    timestamp: float = 0.0
    frame_index: int = 0
    source: Optional[str] = None

    @property
    def y_plane(self) -> PlaneData:
        return self.planes[0]

    @property
    def u_plane(self) -> PlaneData:
        return self.planes[1]

    @property
    def v_plane(self) -> PlaneData:
        return self.planes[2]

    @property
    def has_all_planes(self) -> bool:
        return len(self.planes) >= 3

    @property
    def output_size(self) -> Tuple[int, int]:
        """Return (width, height) after applying the sensor rotation."""
        if self.sensor_orientation in (90, 270):
            return (self.height, self.width)
        return (self.width, self.height)

    @classmethod
    def from_i420(
        cls,
        buffer: np.ndarray,
        width: int,
        height: int,
        sensor_orientation: int = 0,
        is_front_camera: bool = False,
        timestamp: float = 0.0,
        frame_index: int = 0,
        source: Optional[str] = None,
    ) -> "RawFrame":
        """
        Split a contiguous I420 buffer (as produced by
        ``cv2.cvtColor(bgr, cv2.COLOR_BGR2YUV_I420)``) into three planes.
        """
        flat = np.ascontiguousarray(buffer, dtype=np.uint8).reshape(-1)
        chroma_w = (width + 1) // 2
        chroma_h = (height + 1) // 2
        y_size = width * height
        c_size = chroma_w * chroma_h
        if flat.size < y_size + 2 * c_size:
            raise ValueError(
                f"I420 buffer too small for {width}x{height}: {flat.size} bytes"
            )
        y = PlaneData(flat[:y_size], row_stride=width)
        u = PlaneData(flat[y_size:y_size + c_size], row_stride=chroma_w)
        v = PlaneData(flat[y_size + c_size:y_size + 2 * c_size], row_stride=chroma_w)
        return cls(
            width=width,
            height=height,
            planes=(y, u, v),
            sensor_orientation=sensor_orientation,
            is_front_camera=is_front_camera,
            timestamp=timestamp,
            frame_index=frame_index,
            source=source,
        )
