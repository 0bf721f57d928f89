"""
Typed configuration models matching the YAML config structure.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Union

DEFAULT_ACCELERATED_PROVIDERS = [
    "CUDAExecutionProvider",
    "CoreMLExecutionProvider",
    "DmlExecutionProvider",
    "NnapiExecutionProvider",
    "XnnpackExecutionProvider",
]


@dataclass
class ModelConfig:
    """Detector asset and backend configuration."""
    path: str = "assets/models/detector.onnx"
    labels_path: str = "assets/labels/labels.txt"
    input_size: int = 640
    num_classes: int = 83
    num_predictions: int = 8400
    backends: List[str] = field(default_factory=lambda: ["accelerated", "cpu"])
    accelerated_providers: List[str] = field(
        default_factory=lambda: list(DEFAULT_ACCELERATED_PROVIDERS)
    )
    cpu_threads: int = 4

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "ModelConfig":
        """Adapter: Create from config dictionary."""
        return cls(
            path=d.get("path", "assets/models/detector.onnx"),
            labels_path=d.get("labels_path", "assets/labels/labels.txt"),
            input_size=d.get("input_size", 640),
            num_classes=d.get("num_classes", 83),
            num_predictions=d.get("num_predictions", 8400),
            backends=list(d.get("backends", ["accelerated", "cpu"])),
            accelerated_providers=list(
                d.get("accelerated_providers", DEFAULT_ACCELERATED_PROVIDERS)
            ),
            cpu_threads=d.get("cpu_threads", 4),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "labels_path": self.labels_path,
            "input_size": self.input_size,
            "num_classes": self.num_classes,
            "num_predictions": self.num_predictions,
            "backends": list(self.backends),
            "accelerated_providers": list(self.accelerated_providers),
            "cpu_threads": self.cpu_threads,
        }


@dataclass
class DetectionConfig:
    """Thresholds and admission-control settings."""
    confidence_threshold: float = 0.40
    realtime_confidence_threshold: float = 0.50
    iou_threshold: float = 0.45
    max_detections_before_nms: int = 200
    frame_skip: int = 4
    min_inference_interval_ms: float = 100.0
    metrics_window: int = 30

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "DetectionConfig":
        return cls(
            confidence_threshold=d.get("confidence_threshold", 0.40),
            realtime_confidence_threshold=d.get("realtime_confidence_threshold", 0.50),
            iou_threshold=d.get("iou_threshold", 0.45),
            max_detections_before_nms=d.get("max_detections_before_nms", 200),
            frame_skip=d.get("frame_skip", 4),
            min_inference_interval_ms=d.get("min_inference_interval_ms", 100.0),
            metrics_window=d.get("metrics_window", 30),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "confidence_threshold": self.confidence_threshold,
            "realtime_confidence_threshold": self.realtime_confidence_threshold,
            "iou_threshold": self.iou_threshold,
            "max_detections_before_nms": self.max_detections_before_nms,
            "frame_skip": self.frame_skip,
            "min_inference_interval_ms": self.min_inference_interval_ms,
            "metrics_window": self.metrics_window,
        }


@dataclass
class CameraConfig:
    """Camera configuration."""
    device_id: Union[int, str] = 0
    resolution: List[int] = field(default_factory=lambda: [1280, 720])
    fps: int = 30
    sensor_orientation: int = 0
    is_front_camera: bool = False

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "CameraConfig":
        return cls(
            device_id=d.get("device_id", 0),
            resolution=d.get("resolution", [1280, 720]),
            fps=d.get("fps", 30),
            sensor_orientation=d.get("sensor_orientation", 0),
            is_front_camera=d.get("is_front_camera", False),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "device_id": self.device_id,
            "resolution": self.resolution,
            "fps": self.fps,
            "sensor_orientation": self.sensor_orientation,
            "is_front_camera": self.is_front_camera,
        }


@dataclass
class DebugConfig:
    """Debug image dumping (off unless explicitly enabled)."""
    enabled: bool = False
    output_dir: str = "output/debug"
    max_images_per_kind: int = 5

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "DebugConfig":
        return cls(
            enabled=d.get("enabled", False),
            output_dir=d.get("output_dir", "output/debug"),
            max_images_per_kind=d.get("max_images_per_kind", 5),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "enabled": self.enabled,
            "output_dir": self.output_dir,
            "max_images_per_kind": self.max_images_per_kind,
        }


@dataclass
class WebConfig:
    """HTTP API configuration."""
    host: str = "0.0.0.0"
    port: int = 5000

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "WebConfig":
        return cls(host=d.get("host", "0.0.0.0"), port=d.get("port", 5000))

    def to_dict(self) -> Dict[str, Any]:
        return {"host": self.host, "port": self.port}


@dataclass
class Config:
    """
    Complete application configuration.

    This is a typed representation of the YAML config structure.
    """
    model: ModelConfig = field(default_factory=ModelConfig)
    detection: DetectionConfig = field(default_factory=DetectionConfig)
    camera: CameraConfig = field(default_factory=CameraConfig)
    debug: DebugConfig = field(default_factory=DebugConfig)
    web: WebConfig = field(default_factory=WebConfig)
    log_path: str = "logs/detector.log"
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Config":
        """Adapter: Create Config from raw dictionary (e.g., from load_config)."""
        return cls(
            model=ModelConfig.from_dict(d.get("model", {}) or {}),
            detection=DetectionConfig.from_dict(d.get("detection", {}) or {}),
            camera=CameraConfig.from_dict(d.get("camera", {}) or {}),
            debug=DebugConfig.from_dict(d.get("debug", {}) or {}),
            web=WebConfig.from_dict(d.get("web", {}) or {}),
            log_path=d.get("log_path", "logs/detector.log"),
            log_level=d.get("log_level", "INFO"),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert back to dictionary (for saving or passing to existing code)."""
        return {
            "model": self.model.to_dict(),
            "detection": self.detection.to_dict(),
            "camera": self.camera.to_dict(),
            "debug": self.debug.to_dict(),
            "web": self.web.to_dict(),
            "log_path": self.log_path,
            "log_level": self.log_level,
        }
