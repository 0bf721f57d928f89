"""
Exception hierarchy for the detection pipeline.

Every error carries a short machine-readable code and, when it wraps a
lower-level failure, the original exception as ``__cause__``.
"""

from __future__ import annotations

from typing import Optional


class DetectionError(Exception):
    """Base class for all pipeline errors."""

    code = "detection_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


# ---------------------------------------------------------------------------
# Model / asset errors
# ---------------------------------------------------------------------------


class ModelError(DetectionError):
    code = "model_error"


class ModelLoadError(ModelError):
    code = "model_load_error"

    def __init__(self, message: str, model_path: Optional[str] = None):
        super().__init__(message)
        self.model_path = model_path


class LabelsLoadError(ModelError):
    code = "labels_load_error"

    def __init__(self, message: str, labels_path: Optional[str] = None):
        super().__init__(message)
        self.labels_path = labels_path


class BackendUnavailableError(ModelError):
    """Every backend in the fallback chain failed to initialize."""

    code = "backend_unavailable"


class ModelNotInitializedError(ModelError):
    code = "model_not_initialized"

    def __init__(self, message: str = "Detector has not been initialized; call initialize() first"):
        super().__init__(message)


class ModelDisposedError(ModelError):
    code = "model_disposed"

    def __init__(self, message: str = "Detector has been disposed and can no longer be used"):
        super().__init__(message)


class ControllerDisposedError(DetectionError):
    code = "controller_disposed"

    def __init__(self, message: str = "Detection controller has been disposed"):
        super().__init__(message)


# ---------------------------------------------------------------------------
# Per-frame errors
# ---------------------------------------------------------------------------


class InferenceError(DetectionError):
    code = "inference_error"


class PreprocessingError(InferenceError):
    code = "preprocessing_error"


class PostprocessingError(InferenceError):
    code = "postprocessing_error"


class FrameConversionError(DetectionError):
    code = "frame_conversion_error"


class FrameProcessingError(DetectionError):
    """A single camera frame failed in one pipeline stage."""

    code = "frame_processing_error"

    def __init__(self, message: str, stage: str, width: int, height: int):
        super().__init__(f"{stage} failed for {width}x{height} frame: {message}")
        self.stage = stage
        self.width = width
        self.height = height


# ---------------------------------------------------------------------------
# Image input errors
# ---------------------------------------------------------------------------


class ImageError(DetectionError):
    code = "image_error"


class ImageDecodeError(ImageError):
    code = "image_decode_error"

    def __init__(self, message: str, source: Optional[str] = None):
        super().__init__(message)
        self.source = source


class ImageDimensionsError(ImageError):
    code = "image_dimensions_error"
