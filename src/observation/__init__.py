"""
Observation layer for pluggable camera sources.

This layer abstracts the source of frames (camera, video file) from the
detection pipeline. Each source implements the ObservationSource interface
and returns RawFrame objects.
"""

from typing import Any, Dict

from .base import ObservationSource, ObservationConfig
from .opencv_source import OpenCVSource, OpenCVSourceConfig, bgr_to_raw_frame


def create_source_from_config(camera_cfg: Dict[str, Any], source_id: str = "camera") -> ObservationSource:
    """Build an observation source from the camera section of the config."""
    return OpenCVSource(OpenCVSourceConfig.from_camera_config(camera_cfg, source_id=source_id))


__all__ = [
    "ObservationSource",
    "ObservationConfig",
    "OpenCVSource",
    "OpenCVSourceConfig",
    "bgr_to_raw_frame",
    "create_source_from_config",
]
