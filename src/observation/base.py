"""
Frame source interface.

Sources hand out planar YUV 4:2:0 frames (RawFrame), the layout a phone
camera callback delivers, so everything downstream exercises the real
conversion path whether frames come from a webcam, a video file or a
synthetic generator in tests.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, Optional, Tuple

from models.frame import RawFrame


@dataclass
class ObservationConfig:
    """
    Settings shared by every frame source.

    Attributes:
        source_id: Name stamped on each frame (e.g. "main-camera").
        resolution: Requested (width, height); None keeps the device default.
        fps: Requested frame rate; None keeps the device default.
        sensor_orientation: Clockwise rotation stamped on each frame.
        is_front_camera: Stamp frames as mirrored front-camera output.
        metadata: Free-form source-specific settings.
    """
    source_id: str = "default"
    resolution: Optional[Tuple[int, int]] = None
    fps: Optional[int] = None
    sensor_orientation: int = 0
    is_front_camera: bool = False
    metadata: Dict[str, Any] = field(default_factory=dict)


class ObservationSource(ABC):
    """
    A camera-like producer of RawFrames.

    open() -> read()* -> close(); a closed source may be reopened, which is
    how the stream engine pauses and resumes the camera.

    Sources are context managers and iterables:
        with source:
            for frame in source:
                controller.submit_frame(frame)
    """

    def __init__(self, config: ObservationConfig):
        self._config = config
        self._is_open = False
        self._frame_index = 0

    @property
    def source_id(self) -> str:
        return self._config.source_id

    @property
    def is_open(self) -> bool:
        return self._is_open

    @property
    def frame_index(self) -> int:
        """Frames delivered since the last open()."""
        return self._frame_index

    @abstractmethod
    def open(self) -> None:
        """
        Acquire the underlying device or file.

        Raises:
            RuntimeError: The source cannot be acquired.
        """

    @abstractmethod
    def read(self) -> Optional[RawFrame]:
        """
        Return the next frame, or None when nothing is available (end of
        file, device error, or the source is closed).
        """

    @abstractmethod
    def close(self) -> None:
        """Release the device. Idempotent."""

    def __enter__(self) -> "ObservationSource":
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __iter__(self) -> Iterator[RawFrame]:
        if not self._is_open:
            raise RuntimeError("Source must be open before iterating")
        frame = self.read()
        while frame is not None:
            yield frame
            frame = self.read()
