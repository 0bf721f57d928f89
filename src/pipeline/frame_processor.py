"""
Frame processor: one frame through conversion, letterbox, inference and
decoding.

Runs entirely on the caller's thread; the detection controller calls it
from its single worker so the runtime's tensors are never shared.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

import cv2
import numpy as np

from imaging.color import YuvConverter, convert_frame, default_converters
from imaging.debug import DebugSink, NullDebugSink
from imaging.letterbox import letterbox_into
from inference.decoder import postprocess
from inference.runtime import InferenceRuntime
from models.detection import Detection, LetterboxTransform
from models.errors import (
    FrameProcessingError,
    ImageError,
    InferenceError,
    PreprocessingError,
)
from models.frame import RawFrame
from models.metrics import StageTimings


@dataclass
class ProcessingResult:
    """
    Output of one processed camera frame.

    Attributes:
        detections: Final detections, highest confidence first.
        inference_time_ms: End-to-end processing time for the frame.
        output_width: Width of the upright (rotated) raster the boxes refer to.
        output_height: Height of the upright raster.
        timings: Per-stage breakdown.
    """
    detections: List[Detection]
    inference_time_ms: float
    output_width: int
    output_height: int
    timings: StageTimings

    @property
    def count(self) -> int:
        return len(self.detections)

    @property
    def estimated_fps(self) -> float:
        return 1000.0 / self.inference_time_ms if self.inference_time_ms > 0 else 0.0


class FrameProcessor:
    """
    Stateless per-frame pipeline around an initialized InferenceRuntime.

    Args:
        runtime: Initialized runtime; its tensors are reused for every frame.
        converters: YUV converters tried in order (accelerated first).
        debug_sink: Receives the converted raster and the model input.
        max_detections_before_nms: Pre-NMS candidate cap.
        clock: Monotonic seconds, used for stage timings.
    """

    def __init__(
        self,
        runtime: InferenceRuntime,
        converters: Optional[Sequence[YuvConverter]] = None,
        debug_sink: Optional[DebugSink] = None,
        max_detections_before_nms: int = 200,
        clock: Callable[[], float] = time.perf_counter,
    ):
        self.runtime = runtime
        self.converters = tuple(converters) if converters is not None else tuple(default_converters())
        self.debug_sink = debug_sink or NullDebugSink()
        self.max_detections_before_nms = max_detections_before_nms
        self._clock = clock

    def _ms_since(self, start: float) -> float:
        return (self._clock() - start) * 1000.0

    def process(
        self,
        frame: RawFrame,
        confidence_threshold: float,
        iou_threshold: float,
    ) -> Optional[ProcessingResult]:
        """
        Process one camera frame.

        Returns:
            ProcessingResult, or None if no converter could handle the frame.

        Raises:
            FrameProcessingError: A later stage failed for this frame.
            ModelNotInitializedError / ModelDisposedError: Runtime not usable.
        """
        self.runtime.ensure_ready()
        start = self._clock()

        rgb = convert_frame(frame, self.converters)
        if rgb is None:
            return None
        conversion_ms = self._ms_since(start)
        self.debug_sink.save_raster("converted", rgb)

        out_h, out_w = rgb.shape[:2]
        stage = "preprocess"
        try:
            transform, preprocess_ms = self._preprocess(rgb)
            stage = "inference"
            output, inference_ms = self._infer()
            stage = "postprocess"
            detections, postprocess_ms = self._postprocess(
                output, transform, out_w, out_h, confidence_threshold, iou_threshold
            )
        except (ImageError, InferenceError) as e:
            logging.error(f"Frame {frame.frame_index} failed in {stage}: {e}", exc_info=True)
            raise FrameProcessingError(e.message, stage, out_w, out_h) from e

        total_ms = self._ms_since(start)
        timings = StageTimings(
            conversion_ms=conversion_ms,
            preprocess_ms=preprocess_ms,
            inference_ms=inference_ms,
            postprocess_ms=postprocess_ms,
            total_ms=total_ms,
        )
        for line in timings.to_log_lines():
            logging.debug(line)

        return ProcessingResult(
            detections=detections,
            inference_time_ms=total_ms,
            output_width=out_w,
            output_height=out_h,
            timings=timings,
        )

    def detect_rgb(
        self,
        rgb: np.ndarray,
        confidence_threshold: float,
        iou_threshold: float,
    ) -> Tuple[List[Detection], StageTimings]:
        """
        Still-image path: run an RGB raster through the detector.

        Stage errors are raised as-is (ImageDimensionsError,
        PreprocessingError, InferenceError, PostprocessingError).
        """
        self.runtime.ensure_ready()
        start = self._clock()

        transform, preprocess_ms = self._preprocess(rgb)
        output, inference_ms = self._infer()
        height, width = rgb.shape[:2]
        detections, postprocess_ms = self._postprocess(
            output, transform, width, height, confidence_threshold, iou_threshold
        )

        timings = StageTimings(
            preprocess_ms=preprocess_ms,
            inference_ms=inference_ms,
            postprocess_ms=postprocess_ms,
            total_ms=self._ms_since(start),
        )
        return detections, timings

    def _preprocess(self, rgb: np.ndarray) -> Tuple[LetterboxTransform, float]:
        start = self._clock()
        try:
            transform = letterbox_into(rgb, self.runtime.input_tensor)
        except (cv2.error, ValueError) as e:
            raise PreprocessingError(f"Letterbox failed: {e}") from e
        elapsed = self._ms_since(start)
        self.debug_sink.save_tensor("model_input", self.runtime.input_tensor)
        return transform, elapsed

    def _infer(self) -> Tuple[np.ndarray, float]:
        start = self._clock()
        output = self.runtime.run()
        return output, self._ms_since(start)

    def _postprocess(
        self,
        output: np.ndarray,
        transform: LetterboxTransform,
        width: int,
        height: int,
        confidence_threshold: float,
        iou_threshold: float,
    ) -> Tuple[List[Detection], float]:
        start = self._clock()
        detections = postprocess(
            output,
            transform,
            image_width=width,
            image_height=height,
            input_size=self.runtime.input_size,
            confidence_threshold=confidence_threshold,
            iou_threshold=iou_threshold,
            labels=self.runtime.labels,
            num_classes=self.runtime.config.num_classes,
            max_detections=self.max_detections_before_nms,
        )
        return detections, self._ms_since(start)
