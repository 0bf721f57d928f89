"""
Typed models for the detection pipeline.

Frames, detections, metrics, configuration and the error hierarchy shared
by every other package.
"""

from .frame import PlaneData, RawFrame
from .detection import BoundingBox, Detection, LetterboxTransform
from .metrics import RuntimeMetrics, StageTimings
from .config import (
    Config,
    ModelConfig,
    DetectionConfig,
    CameraConfig,
    DebugConfig,
    WebConfig,
)

__all__ = [
    # Frame
    "PlaneData",
    "RawFrame",
    # Detection
    "BoundingBox",
    "Detection",
    "LetterboxTransform",
    # Metrics
    "RuntimeMetrics",
    "StageTimings",
    # Config
    "Config",
    "ModelConfig",
    "DetectionConfig",
    "CameraConfig",
    "DebugConfig",
    "WebConfig",
]
