from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field

from models.detection import Detection
from models.metrics import RuntimeMetrics


class DetectionModel(BaseModel):
    x1: float
    y1: float
    x2: float
    y2: float
    confidence: float = Field(..., ge=0.0, le=1.0)
    class_id: int
    label: str

    @classmethod
    def from_detection(cls, det: Detection) -> "DetectionModel":
        return cls(**det.to_dict())


class DetectResponse(BaseModel):
    count: int
    width: int
    height: int
    detections: List[DetectionModel]


class LatestDetectionsResponse(BaseModel):
    count: int
    detections: List[DetectionModel]


class MetricsResponse(BaseModel):
    avg_fps: float
    avg_latency_ms: float
    min_latency_ms: float
    max_latency_ms: float
    avg_confidence: float
    total_frames_processed: int
    session_duration_s: float

    @classmethod
    def from_metrics(cls, metrics: RuntimeMetrics) -> "MetricsResponse":
        return cls(**metrics.to_dict())


class DetectionStatusResponse(BaseModel):
    state: str = Field(..., description="uninitialized|initializing|idle|active|disposed")
    active: bool


class HealthResponse(BaseModel):
    status: str = Field(..., description="ok|degraded")
    state: Optional[str] = Field(None, description="Detector state, None if no controller")
    backend: Optional[str] = Field(None, description="Inference backend in use")
    uptime_seconds: int
    last_detection_age_s: Optional[float] = None
