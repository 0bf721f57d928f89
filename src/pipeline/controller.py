"""
Detection controller: lifecycle, admission control and runtime metrics for
a continuous camera stream.

States:
    UNINITIALIZED -> INITIALIZING -> IDLE <-> ACTIVE -> DISPOSED

The detector is loaded lazily on the first start_detection() or
detect_image() call and stays resident across stop/start. All inference
runs on one worker thread, which doubles as the single-slot channel: while
a frame is in flight, new camera frames are dropped rather than queued.
"""

from __future__ import annotations

import dataclasses
import logging
import threading
import time
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from enum import Enum
from typing import Callable, Deque, List, Optional, Sequence

import numpy as np

from imaging.color import YuvConverter
from imaging.debug import DebugSink
from inference.backend import SessionFactory
from inference.runtime import InferenceRuntime
from models.config import DetectionConfig, ModelConfig
from models.detection import Detection
from models.errors import ControllerDisposedError, DetectionError
from models.frame import RawFrame
from models.metrics import RuntimeMetrics, StageTimings
from .frame_processor import FrameProcessor, ProcessingResult

DetectionsCallback = Callable[[List[Detection], RuntimeMetrics], None]
ErrorCallback = Callable[[Exception], None]
InitializingCallback = Callable[[bool], None]


class DetectorState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    IDLE = "idle"
    ACTIVE = "active"
    DISPOSED = "disposed"


@dataclasses.dataclass
class FrameOutcome:
    """Result of an admitted camera frame, with the metrics after it."""
    detections: List[Detection]
    inference_time_ms: float
    output_width: int
    output_height: int
    timings: StageTimings
    metrics: RuntimeMetrics


class DetectionController:
    """
    Owns the inference runtime and gates camera frames into it.

    Args:
        model_config: Detector assets and backend chain.
        detection_config: Thresholds, frame skip, interval and metrics window.
        runtime_factory: Builds a fresh InferenceRuntime. Called again after
            a failed initialization so a later start can retry.
        session_factory: Passed to the default runtime factory.
        converters: YUV converters for the frame processor.
        debug_sink: Optional debug image collaborator.
        clock: Monotonic seconds; drives the interval guard and metrics.

    Example:
        controller = DetectionController(cfg.model, cfg.detection)
        controller.register_callbacks(on_detections=show)
        controller.start_detection()
        for frame in source:
            controller.submit_frame(frame)
    """

    def __init__(
        self,
        model_config: ModelConfig,
        detection_config: Optional[DetectionConfig] = None,
        runtime_factory: Optional[Callable[[], InferenceRuntime]] = None,
        session_factory: Optional[SessionFactory] = None,
        converters: Optional[Sequence[YuvConverter]] = None,
        debug_sink: Optional[DebugSink] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.model_config = model_config
        self.detection_config = detection_config or DetectionConfig()
        self._runtime_factory = runtime_factory or (
            lambda: InferenceRuntime(model_config, session_factory=session_factory)
        )
        self._converters = converters
        self._debug_sink = debug_sink
        self._clock = clock

        self._lock = threading.Lock()
        self._state = DetectorState.UNINITIALIZED
        self._init_future: Optional[Future] = None
        self._runtime: Optional[InferenceRuntime] = None
        self._processor: Optional[FrameProcessor] = None

        self._worker_ident: Optional[int] = None
        self._executor = ThreadPoolExecutor(
            max_workers=1,
            thread_name_prefix="detector",
            initializer=self._mark_worker,
        )

        # Admission control
        self._busy = False
        self._frame_counter = 0
        self._last_inference_time: Optional[float] = None
        self._generation = 0

        # Session metrics
        window = max(1, self.detection_config.metrics_window)
        self._latencies: Deque[float] = deque(maxlen=window)
        self._confidences: Deque[float] = deque(maxlen=window)
        self._total_frames = 0
        self._session_start: Optional[float] = None

        self._on_detections: Optional[DetectionsCallback] = None
        self._on_error: Optional[ErrorCallback] = None
        self._on_initializing_changed: Optional[InitializingCallback] = None

    def _mark_worker(self) -> None:
        self._worker_ident = threading.get_ident()

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> DetectorState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state == DetectorState.ACTIVE

    @property
    def is_initialized(self) -> bool:
        return self._state in (DetectorState.IDLE, DetectorState.ACTIVE)

    @property
    def is_initializing(self) -> bool:
        return self._state == DetectorState.INITIALIZING

    @property
    def is_busy(self) -> bool:
        return self._busy

    @property
    def runtime(self) -> Optional[InferenceRuntime]:
        return self._runtime

    def register_callbacks(
        self,
        on_detections: Optional[DetectionsCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        on_initializing_changed: Optional[InitializingCallback] = None,
    ) -> None:
        """
        Register consumer callbacks.

        on_detections and on_error are invoked from the worker thread for
        frames handed over with submit_frame().
        """
        self._on_detections = on_detections
        self._on_error = on_error
        self._on_initializing_changed = on_initializing_changed

    def _notify(self, callback: Optional[Callable], *args) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception as e:
            logging.warning(f"Callback error: {e}")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _ensure_initialized(self) -> FrameProcessor:
        """
        Load the detector once. Concurrent callers wait for the in-flight
        initialization and see the same outcome.
        """
        with self._lock:
            if self._state == DetectorState.DISPOSED:
                raise ControllerDisposedError()
            if self._processor is not None:
                return self._processor
            if self._init_future is None:
                future: Future = Future()
                self._init_future = future
                self._state = DetectorState.INITIALIZING
                owner = True
            else:
                future = self._init_future
                owner = False

        if not owner:
            return future.result()

        self._notify(self._on_initializing_changed, True)
        logging.info(f"Initializing detector: model={self.model_config.path}")
        runtime = None
        try:
            runtime = self._runtime_factory()
            runtime.initialize()
        except BaseException as e:
            if runtime is not None:
                runtime.dispose()
            with self._lock:
                if self._state != DetectorState.DISPOSED:
                    self._state = DetectorState.UNINITIALIZED
                self._init_future = None
            logging.error(f"Detector initialization failed: {e}")
            future.set_exception(e)
            self._notify(self._on_initializing_changed, False)
            raise

        processor = FrameProcessor(
            runtime,
            converters=self._converters,
            debug_sink=self._debug_sink,
            max_detections_before_nms=self.detection_config.max_detections_before_nms,
        )
        with self._lock:
            disposed = self._state == DetectorState.DISPOSED
            if not disposed:
                self._runtime = runtime
                self._processor = processor
                self._state = DetectorState.IDLE
            self._init_future = None

        if disposed:
            runtime.dispose()
            error = ControllerDisposedError("Controller was disposed during initialization")
            future.set_exception(error)
            self._notify(self._on_initializing_changed, False)
            raise error

        future.set_result(processor)
        self._notify(self._on_initializing_changed, False)
        return processor

    def start_detection(self) -> None:
        """
        Activate real-time detection, loading the detector on first use.

        Raises:
            ControllerDisposedError: After dispose().
            ModelLoadError, LabelsLoadError, BackendUnavailableError: Loading
                failed; the controller returns to UNINITIALIZED.
        """
        with self._lock:
            if self._state == DetectorState.DISPOSED:
                raise ControllerDisposedError()
            if self._state == DetectorState.ACTIVE:
                logging.debug("Detection already active")
                return

        self._ensure_initialized()

        with self._lock:
            if self._state == DetectorState.DISPOSED:
                raise ControllerDisposedError()
            if self._state == DetectorState.ACTIVE:
                return
            self._state = DetectorState.ACTIVE
            self._generation += 1
            self._frame_counter = 0
            self._total_frames = 0
            self._latencies.clear()
            self._confidences.clear()
            self._session_start = self._clock()

        logging.info("Real-time detection started")

    def stop_detection(self) -> None:
        """Deactivate detection; the detector stays loaded for a fast restart."""
        with self._lock:
            if self._state == DetectorState.DISPOSED:
                raise ControllerDisposedError()
            if self._state != DetectorState.ACTIVE:
                logging.debug("Detection already stopped")
                return
            self._state = DetectorState.IDLE
            self._generation += 1
            self._latencies.clear()
            self._confidences.clear()

        logging.info("Real-time detection stopped (model kept in memory)")

    def toggle_detection(self) -> None:
        if self.is_active:
            self.stop_detection()
        else:
            self.start_detection()

    def dispose(self) -> None:
        """
        Stop detection and release the detector and worker for good.

        An inference already in flight is allowed to finish; its result is
        discarded.
        """
        with self._lock:
            if self._state == DetectorState.DISPOSED:
                return
            self._state = DetectorState.DISPOSED
            self._generation += 1
            self._latencies.clear()
            self._confidences.clear()
            runtime = self._runtime
            self._runtime = None
            self._processor = None

        if runtime is not None:
            self._executor.submit(runtime.dispose)
        wait = threading.get_ident() != self._worker_ident
        self._executor.shutdown(wait=wait)
        logging.info("Detection controller disposed")

    # ------------------------------------------------------------------
    # Camera frames
    # ------------------------------------------------------------------

    def _admit(self, frame_skip: int):
        """
        Run the admission guards. On success marks the controller busy and
        returns (generation, start_time); otherwise returns None.
        """
        with self._lock:
            if self._state != DetectorState.ACTIVE:
                return None
            if self._busy:
                return None

            self._frame_counter += 1
            if self._frame_counter < frame_skip:
                return None
            self._frame_counter = 0

            now = self._clock()
            if self._last_inference_time is not None:
                elapsed_ms = (now - self._last_inference_time) * 1000.0
                if elapsed_ms < self.detection_config.min_inference_interval_ms:
                    return None

            self._busy = True
            return self._generation, now

    def _prepare(
        self,
        frame: RawFrame,
        sensor_orientation: Optional[int],
        is_front_camera: Optional[bool],
    ) -> RawFrame:
        changes = {}
        if sensor_orientation is not None:
            changes["sensor_orientation"] = sensor_orientation
        if is_front_camera is not None:
            changes["is_front_camera"] = is_front_camera
        return dataclasses.replace(frame, **changes) if changes else frame

    def _complete(
        self,
        result: Optional[ProcessingResult],
        generation: int,
        start: float,
    ) -> Optional[FrameOutcome]:
        """Record a finished frame and release the busy flag."""
        with self._lock:
            self._busy = False
            if result is None:
                return None
            if generation != self._generation or self._state != DetectorState.ACTIVE:
                logging.debug("Discarding result from a stopped detection session")
                return None

            now = self._clock()
            self._last_inference_time = now
            latency_ms = (now - start) * 1000.0
            self._latencies.append(latency_ms)
            if result.detections:
                self._confidences.append(
                    sum(d.confidence for d in result.detections) / len(result.detections)
                )
            self._total_frames += 1
            metrics = self._calculate_metrics(now)

        return FrameOutcome(
            detections=result.detections,
            inference_time_ms=latency_ms,
            output_width=result.output_width,
            output_height=result.output_height,
            timings=result.timings,
            metrics=metrics,
        )

    def _release(self) -> None:
        with self._lock:
            self._busy = False

    def process_frame(
        self,
        frame: RawFrame,
        sensor_orientation: Optional[int] = None,
        is_front_camera: Optional[bool] = None,
        frame_skip: Optional[int] = None,
        confidence_threshold: Optional[float] = None,
        iou_threshold: Optional[float] = None,
    ) -> Optional[FrameOutcome]:
        """
        Process one camera frame if it passes the admission guards.

        Guards, in order: detection active; no inference in flight; frame
        skip counter reached; minimum interval since the last completed
        inference.

        Returns:
            FrameOutcome, or None if the frame was dropped.

        Raises:
            FrameProcessingError: The frame failed in a pipeline stage.
        """
        cfg = self.detection_config
        skip = frame_skip if frame_skip is not None else cfg.frame_skip
        admitted = self._admit(skip)
        if admitted is None:
            return None
        generation, start = admitted

        conf = confidence_threshold if confidence_threshold is not None else cfg.realtime_confidence_threshold
        iou = iou_threshold if iou_threshold is not None else cfg.iou_threshold
        frame = self._prepare(frame, sensor_orientation, is_front_camera)

        processor = self._processor
        if processor is None:
            self._release()
            return None
        try:
            future = self._executor.submit(processor.process, frame, conf, iou)
        except RuntimeError:
            # Executor shut down by a concurrent dispose()
            self._release()
            return None

        try:
            result = future.result()
        except Exception:
            self._release()
            raise

        outcome = self._complete(result, generation, start)
        if outcome is not None:
            self._notify(self._on_detections, outcome.detections, outcome.metrics)
        return outcome

    def submit_frame(
        self,
        frame: RawFrame,
        sensor_orientation: Optional[int] = None,
        is_front_camera: Optional[bool] = None,
        frame_skip: Optional[int] = None,
        confidence_threshold: Optional[float] = None,
        iou_threshold: Optional[float] = None,
    ) -> bool:
        """
        Non-blocking variant of process_frame().

        Returns:
            True if the frame was admitted. Its detections arrive through
            the on_detections callback, failures through on_error.
        """
        cfg = self.detection_config
        skip = frame_skip if frame_skip is not None else cfg.frame_skip
        admitted = self._admit(skip)
        if admitted is None:
            return False
        generation, start = admitted

        conf = confidence_threshold if confidence_threshold is not None else cfg.realtime_confidence_threshold
        iou = iou_threshold if iou_threshold is not None else cfg.iou_threshold
        frame = self._prepare(frame, sensor_orientation, is_front_camera)

        processor = self._processor
        if processor is None:
            self._release()
            return False
        try:
            future = self._executor.submit(processor.process, frame, conf, iou)
        except RuntimeError:
            self._release()
            return False

        def on_done(f: Future) -> None:
            try:
                result = f.result()
            except Exception as e:
                self._release()
                if not isinstance(e, DetectionError):
                    logging.exception("Unexpected error while processing frame")
                self._notify(self._on_error, e)
                return
            outcome = self._complete(result, generation, start)
            if outcome is not None:
                self._notify(self._on_detections, outcome.detections, outcome.metrics)

        future.add_done_callback(on_done)
        return True

    # ------------------------------------------------------------------
    # Still images
    # ------------------------------------------------------------------

    def detect_image(
        self,
        rgb: np.ndarray,
        confidence_threshold: Optional[float] = None,
        iou_threshold: Optional[float] = None,
    ) -> List[Detection]:
        """
        Detect objects in a still RGB image. Bypasses the admission gate and
        does not touch the session metrics.

        Raises:
            ControllerDisposedError: After dispose().
            ImageDimensionsError: Not an HxWx3 raster.
        """
        processor = self._ensure_initialized()
        cfg = self.detection_config
        conf = confidence_threshold if confidence_threshold is not None else cfg.confidence_threshold
        iou = iou_threshold if iou_threshold is not None else cfg.iou_threshold

        try:
            future = self._executor.submit(processor.detect_rgb, rgb, conf, iou)
        except RuntimeError as e:
            raise ControllerDisposedError() from e
        detections, timings = future.result()
        logging.info(
            f"Still image: {len(detections)} detections in {timings.total_ms:.1f}ms "
            f"({rgb.shape[1]}x{rgb.shape[0]})"
        )
        return detections

    # ------------------------------------------------------------------
    # Metrics
    # ------------------------------------------------------------------

    def _calculate_metrics(self, now: float) -> RuntimeMetrics:
        if not self._latencies:
            return RuntimeMetrics.empty()

        latencies = list(self._latencies)
        avg_latency = sum(latencies) / len(latencies)
        avg_confidence = (
            sum(self._confidences) / len(self._confidences) if self._confidences else 0.0
        )
        duration = now - self._session_start if self._session_start is not None else 0.0
        return RuntimeMetrics(
            avg_fps=1000.0 / avg_latency if avg_latency > 0 else 0.0,
            avg_latency_ms=avg_latency,
            min_latency_ms=min(latencies),
            max_latency_ms=max(latencies),
            avg_confidence=avg_confidence,
            total_frames_processed=self._total_frames,
            session_duration_s=duration,
        )

    @property
    def metrics(self) -> RuntimeMetrics:
        """Snapshot of the current session's metrics."""
        with self._lock:
            return self._calculate_metrics(self._clock())

    def reset_metrics(self) -> None:
        with self._lock:
            self._latencies.clear()
            self._confidences.clear()
            self._total_frames = 0
            self._session_start = self._clock() if self._state == DetectorState.ACTIVE else None
        logging.debug("Detection metrics reset")
