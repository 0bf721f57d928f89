"""
Stream engine: drives an observation source into the detection controller.

The engine owns the read loop and the host-side lifecycle (pause/resume),
while the controller decides which frames actually reach the detector.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from models.errors import DetectionError
from models.frame import RawFrame
from observation import ObservationSource, create_source_from_config
from .controller import DetectionController, FrameOutcome


@dataclass
class EngineConfig:
    """
    Configuration for the stream engine.

    Attributes:
        max_consecutive_failures: Max frame read failures before stopping.
        stats_log_interval: Seconds between status log messages.
        blocking: Wait for each admitted frame (process_frame) instead of
            handing it to the worker (submit_frame).
        retry_delay: Seconds to sleep after a failed read.
    """
    max_consecutive_failures: int = 10
    stats_log_interval: float = 60.0
    blocking: bool = True
    retry_delay: float = 0.5


@dataclass
class EngineStats:
    """Runtime statistics for the engine."""
    frame_count: int = 0
    admitted_count: int = 0
    detection_count: int = 0
    error_count: int = 0
    start_time: float = field(default_factory=time.time)
    last_stats_log_time: float = field(default_factory=time.time)
    consecutive_failures: int = 0


class StreamEngine:
    """
    Main loop reading frames from any ObservationSource.

    This engine:
    - Starts detection on the controller and opens the source
    - Feeds every frame to the controller (which drops most of them)
    - Calls registered callbacks with each FrameOutcome
    - Supports pause()/resume() without reloading the model

    Example:
        source = OpenCVSource(OpenCVSourceConfig(device_id=0))
        engine = StreamEngine(source, controller, EngineConfig())
        engine.run()
    """

    def __init__(
        self,
        source: ObservationSource,
        controller: DetectionController,
        config: Optional[EngineConfig] = None,
    ):
        self.source = source
        self.controller = controller
        self.config = config or EngineConfig()
        self.stats = EngineStats()
        self._running = False
        self._paused = threading.Event()
        self._lifecycle_lock = threading.Lock()
        self._callbacks: List[Callable[[RawFrame, FrameOutcome], None]] = []

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def is_paused(self) -> bool:
        return self._paused.is_set()

    def add_callback(self, callback: Callable[[RawFrame, FrameOutcome], None]) -> None:
        """
        Add a callback to be called for each frame that produced detections.

        Only used in blocking mode; in non-blocking mode register
        on_detections on the controller instead.

        Args:
            callback: Function taking (frame, outcome) as arguments.
        """
        self._callbacks.append(callback)

    def run(self) -> None:
        """
        Run the main processing loop.

        Starts detection, opens the source, processes frames until stopped
        or exhausted, then closes resources.
        """
        self._running = True
        self.stats = EngineStats()

        try:
            self.controller.start_detection()
            self.source.open()
            logging.info(f"Stream engine started: source={self.source.source_id}")

            while self._running:
                if self._paused.is_set():
                    time.sleep(0.05)
                    continue

                frame = self.source.read()

                if frame is None:
                    if self._paused.is_set() or not self._running:
                        continue
                    if not self.source.is_open:
                        break
                    self.stats.consecutive_failures += 1
                    if self.stats.consecutive_failures >= self.config.max_consecutive_failures:
                        logging.error(
                            f"Too many consecutive failures ({self.stats.consecutive_failures}), stopping"
                        )
                        break
                    logging.warning(
                        f"Frame read failed ({self.stats.consecutive_failures}/"
                        f"{self.config.max_consecutive_failures})"
                    )
                    time.sleep(self.config.retry_delay)
                    continue

                self.stats.consecutive_failures = 0
                self._process_frame(frame)
                self._handle_periodic_tasks()

        except KeyboardInterrupt:
            logging.info("Stream engine interrupted by user")
        except DetectionError as e:
            logging.error(f"Stream engine error: {e}")
            raise
        finally:
            self._cleanup()

    def stop(self) -> None:
        """Signal the engine to stop after the current frame."""
        self._running = False

    def pause(self) -> None:
        """Stop the camera and detection together; the model stays loaded."""
        with self._lifecycle_lock:
            if self._paused.is_set():
                return
            self._paused.set()
            self.controller.stop_detection()
            self.source.close()
        logging.info("Stream engine paused")

    def resume(self) -> None:
        """Reopen the camera and restart detection."""
        with self._lifecycle_lock:
            if not self._paused.is_set():
                return
            self.source.open()
            self.controller.start_detection()
            self._paused.clear()
        logging.info("Stream engine resumed")

    def _process_frame(self, frame: RawFrame) -> Optional[FrameOutcome]:
        self.stats.frame_count += 1

        if not self.config.blocking:
            if self.controller.submit_frame(frame):
                self.stats.admitted_count += 1
            return None

        try:
            outcome = self.controller.process_frame(frame)
        except DetectionError as e:
            self.stats.error_count += 1
            logging.warning(f"Frame {frame.frame_index} dropped: {e}")
            return None
        except Exception as e:
            self.stats.error_count += 1
            logging.error(f"Frame {frame.frame_index} dropped after unexpected error: {e}", exc_info=True)
            return None

        if outcome is None:
            return None

        self.stats.admitted_count += 1
        self.stats.detection_count += len(outcome.detections)
        for callback in self._callbacks:
            try:
                callback(frame, outcome)
            except Exception as e:
                logging.warning(f"Callback error: {e}")
        return outcome

    def _handle_periodic_tasks(self) -> None:
        now = time.time()
        if now - self.stats.last_stats_log_time >= self.config.stats_log_interval:
            logging.info(
                f"Stream stats: frames={self.stats.frame_count}, "
                f"admitted={self.stats.admitted_count}, "
                f"detections={self.stats.detection_count}, "
                f"{self.controller.metrics}"
            )
            self.stats.last_stats_log_time = now

    def _cleanup(self) -> None:
        self._running = False

        try:
            self.source.close()
        except Exception as e:
            logging.warning(f"Error closing source: {e}")

        try:
            if self.controller.is_active:
                self.controller.stop_detection()
        except DetectionError as e:
            logging.warning(f"Error stopping detection: {e}")

        logging.info("Stream engine stopped")


def create_engine_from_config(
    config: Dict[str, Any],
    controller: DetectionController,
    blocking: bool = True,
) -> StreamEngine:
    """
    Factory function to create a StreamEngine from the config dict.

    Args:
        config: Full application config dict.
        controller: Detection controller to feed.
        blocking: Wait for each admitted frame instead of submitting it.
    """
    camera_cfg = config.get("camera", {})
    source = create_source_from_config(camera_cfg, source_id="main-camera")
    return StreamEngine(source, controller, EngineConfig(blocking=blocking))
