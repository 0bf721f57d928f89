"""
Webcam and video-file frames through cv2.VideoCapture.

OpenCV decodes to BGR; each frame is re-encoded as planar I420 so the
detector receives the same YUV 4:2:0 planes a mobile camera produces.
"""

from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

import cv2
import numpy as np

from models.frame import RawFrame
from .base import ObservationSource, ObservationConfig

# Live cameras get this many reconnects in a row before read() gives up
MAX_RECONNECTS = 3


@dataclass
class OpenCVSourceConfig(ObservationConfig):
    """
    Attributes:
        device_id: Camera index, or a path to a video file.
        buffer_size: Capture queue length; 1 keeps live latency low.
        max_retries: Attempts to open the device before failing.
        loop: Rewind video files instead of ending the stream.
    """
    device_id: Union[int, str] = 0
    buffer_size: int = 1
    max_retries: int = 3
    loop: bool = False

    @classmethod
    def from_camera_config(cls, camera_cfg: Dict[str, Any], source_id: str = "camera") -> "OpenCVSourceConfig":
        """Build from the `camera` section of the YAML config."""
        resolution = camera_cfg.get("resolution")
        return cls(
            source_id=source_id,
            resolution=tuple(resolution) if resolution else None,
            fps=camera_cfg.get("fps"),
            sensor_orientation=camera_cfg.get("sensor_orientation", 0) or 0,
            is_front_camera=bool(camera_cfg.get("is_front_camera", False)),
            device_id=camera_cfg.get("device_id", 0),
            buffer_size=camera_cfg.get("buffer_size", 1),
            max_retries=camera_cfg.get("max_retries", 3),
            loop=bool(camera_cfg.get("loop", False)),
        )


def bgr_to_raw_frame(
    bgr: np.ndarray,
    sensor_orientation: int = 0,
    is_front_camera: bool = False,
    timestamp: float = 0.0,
    frame_index: int = 0,
    source: Optional[str] = None,
) -> RawFrame:
    """
    Encode a BGR image as a planar I420 RawFrame.

    I420 needs even dimensions, so an odd last row/column is cropped.
    """
    h, w = bgr.shape[:2]
    w -= w % 2
    h -= h % 2
    if w == 0 or h == 0:
        raise ValueError(f"Frame too small for I420: {bgr.shape[1]}x{bgr.shape[0]}")
    bgr = np.ascontiguousarray(bgr[:h, :w])
    i420 = cv2.cvtColor(bgr, cv2.COLOR_BGR2YUV_I420)
    return RawFrame.from_i420(
        i420,
        w,
        h,
        sensor_orientation=sensor_orientation,
        is_front_camera=is_front_camera,
        timestamp=timestamp,
        frame_index=frame_index,
        source=source,
    )


class OpenCVSource(ObservationSource):
    """
    Frame source backed by cv2.VideoCapture.

    Live cameras are reconnected after a failed read; video files either
    end the stream or rewind when `loop` is set.
    """

    def __init__(self, config: OpenCVSourceConfig):
        super().__init__(config)
        self._settings = config
        self._cap: Optional[cv2.VideoCapture] = None
        self._reconnects = 0

    @property
    def device_id(self) -> Union[int, str]:
        return self._settings.device_id

    @property
    def is_file(self) -> bool:
        return isinstance(self.device_id, str) and os.path.exists(self.device_id)

    def open(self) -> None:
        if self._is_open:
            return
        self._cap = self._connect()
        self._is_open = True
        self._frame_index = 0
        logging.info(
            f"Camera source '{self.source_id}' opened: device={self.device_id}, "
            f"resolution={self._settings.resolution}, orientation={self._settings.sensor_orientation}"
        )

    def _connect(self) -> cv2.VideoCapture:
        """Open the device, backing off between attempts."""
        attempts = max(1, self._settings.max_retries)
        for attempt in range(attempts):
            if attempt:
                delay = min(2 ** attempt, 10)
                logging.warning(
                    f"Cannot open {self.device_id}, attempt {attempt + 1}/{attempts} in {delay}s"
                )
                time.sleep(delay)

            cap = cv2.VideoCapture(self.device_id)
            if cap.isOpened():
                self._configure(cap)
                return cap
            cap.release()

        raise RuntimeError(f"Failed to open device {self.device_id} after {attempts} attempts")

    def _configure(self, cap: cv2.VideoCapture) -> None:
        """Request resolution, frame rate and buffering on live cameras."""
        if not isinstance(self.device_id, int) or not self._settings.resolution:
            return
        width, height = self._settings.resolution
        cap.set(cv2.CAP_PROP_FRAME_WIDTH, width)
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, height)
        if self._settings.fps:
            cap.set(cv2.CAP_PROP_FPS, self._settings.fps)
        cap.set(cv2.CAP_PROP_BUFFERSIZE, self._settings.buffer_size)
        logging.info(
            f"Camera granted {cap.get(cv2.CAP_PROP_FRAME_WIDTH)}x{cap.get(cv2.CAP_PROP_FRAME_HEIGHT)} "
            f"@ {cap.get(cv2.CAP_PROP_FPS)} fps"
        )

    def _grab(self) -> Optional[np.ndarray]:
        ok, bgr = self._cap.read()
        return bgr if ok and bgr is not None else None

    def _recover(self) -> Optional[np.ndarray]:
        """Try to get a frame after a failed read; None ends the stream."""
        if self.is_file:
            if not self._settings.loop:
                logging.info(f"Video file {self.device_id} finished")
                return None
            self._cap.set(cv2.CAP_PROP_POS_FRAMES, 0)
            return self._grab()

        if self._reconnects >= MAX_RECONNECTS:
            logging.error(f"Camera {self.device_id} keeps failing, giving up")
            return None
        self._reconnects += 1
        logging.warning(f"Camera read failed, reconnecting ({self._reconnects}/{MAX_RECONNECTS})")
        self._cap.release()
        try:
            self._cap = self._connect()
        except RuntimeError as e:
            logging.error(f"Camera reconnect failed: {e}")
            return None
        return self._grab()

    def read(self) -> Optional[RawFrame]:
        if not self._is_open or self._cap is None:
            return None

        bgr = self._grab()
        if bgr is None:
            bgr = self._recover()
            if bgr is None:
                return None

        self._reconnects = 0
        self._frame_index += 1
        return bgr_to_raw_frame(
            bgr,
            sensor_orientation=self._settings.sensor_orientation,
            is_front_camera=self._settings.is_front_camera,
            timestamp=time.time(),
            frame_index=self._frame_index,
            source=self.source_id,
        )

    def close(self) -> None:
        if self._cap is not None:
            self._cap.release()
            self._cap = None
        self._is_open = False
        logging.info(f"Camera source '{self.source_id}' closed")
