"""
Performance metric models: per-frame stage timings and rolling runtime metrics.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List


@dataclass(frozen=True)
class StageTimings:
    """
    Wall-clock time spent in each stage of one frame.

    Attributes:
        conversion_ms: YUV -> RGB conversion (0 for still images).
        preprocess_ms: Letterbox resize + normalization.
        inference_ms: Detector run.
        postprocess_ms: Decoding + NMS.
        total_ms: End-to-end time for the frame.
    """
    conversion_ms: float = 0.0
    preprocess_ms: float = 0.0
    inference_ms: float = 0.0
    postprocess_ms: float = 0.0
    total_ms: float = 0.0

    @property
    def fps(self) -> float:
        return 1000.0 / self.total_ms if self.total_ms > 0 else 0.0

    def _percent(self, value: float) -> float:
        return (value / self.total_ms) * 100 if self.total_ms > 0 else 0.0

    @property
    def conversion_percent(self) -> float:
        return self._percent(self.conversion_ms)

    @property
    def preprocess_percent(self) -> float:
        return self._percent(self.preprocess_ms)

    @property
    def inference_percent(self) -> float:
        return self._percent(self.inference_ms)

    @property
    def postprocess_percent(self) -> float:
        return self._percent(self.postprocess_ms)

    def to_log_lines(self) -> List[str]:
        return [
            f"Total: {self.total_ms:.1f}ms ({self.fps:.1f} FPS)",
            f"YUV->RGB: {self.conversion_ms:.1f}ms ({self.conversion_percent:.1f}%)",
            f"Preprocess: {self.preprocess_ms:.1f}ms ({self.preprocess_percent:.1f}%)",
            f"Inference: {self.inference_ms:.1f}ms ({self.inference_percent:.1f}%)",
            f"Postprocess: {self.postprocess_ms:.1f}ms ({self.postprocess_percent:.1f}%)",
        ]

    def to_dict(self) -> Dict[str, float]:
        return {
            "conversion_ms": self.conversion_ms,
            "preprocess_ms": self.preprocess_ms,
            "inference_ms": self.inference_ms,
            "postprocess_ms": self.postprocess_ms,
            "total_ms": self.total_ms,
        }


@dataclass(frozen=True)
class RuntimeMetrics:
    """Read-only snapshot of the controller's rolling metrics window."""
    avg_fps: float
    avg_latency_ms: float
    min_latency_ms: float
    max_latency_ms: float
    avg_confidence: float
    total_frames_processed: int
    session_duration_s: float

    @classmethod
    def empty(cls) -> "RuntimeMetrics":
        return cls(
            avg_fps=0.0,
            avg_latency_ms=0.0,
            min_latency_ms=0.0,
            max_latency_ms=0.0,
            avg_confidence=0.0,
            total_frames_processed=0,
            session_duration_s=0.0,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "avg_fps": self.avg_fps,
            "avg_latency_ms": self.avg_latency_ms,
            "min_latency_ms": self.min_latency_ms,
            "max_latency_ms": self.max_latency_ms,
            "avg_confidence": self.avg_confidence,
            "total_frames_processed": self.total_frames_processed,
            "session_duration_s": self.session_duration_s,
        }

    def __str__(self) -> str:
        return (
            f"RuntimeMetrics(fps: {self.avg_fps:.1f}, "
            f"latency: {self.avg_latency_ms:.0f}ms "
            f"[{self.min_latency_ms:.0f}-{self.max_latency_ms:.0f}], "
            f"confidence: {self.avg_confidence * 100:.1f}%, "
            f"frames: {self.total_frames_processed}, "
            f"duration: {self.session_duration_s:.0f}s)"
        )
