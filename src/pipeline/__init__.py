"""
Pipeline module for the detection system.

The pipeline orchestrates the full processing flow:
- Frame admission and detector lifecycle (DetectionController)
- Per-frame conversion, letterbox, inference and decoding (FrameProcessor)
- Source-driven read loop with pause/resume (StreamEngine)
"""

from .frame_processor import FrameProcessor, ProcessingResult
from .controller import DetectionController, DetectorState, FrameOutcome
from .engine import StreamEngine, EngineConfig, create_engine_from_config

__all__ = [
    "FrameProcessor",
    "ProcessingResult",
    "DetectionController",
    "DetectorState",
    "FrameOutcome",
    "StreamEngine",
    "EngineConfig",
    "create_engine_from_config",
]
