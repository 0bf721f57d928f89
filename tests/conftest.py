"""
Pytest configuration and shared fixtures.
"""

import os
import sys
import threading
from types import SimpleNamespace

import numpy as np
import pytest

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from models.config import DetectionConfig, ModelConfig  # noqa: E402
from models.frame import PlaneData, RawFrame  # noqa: E402

# Small geometry keeps tensors cheap: S=64, C=3, N=16
INPUT_SIZE = 64
NUM_CLASSES = 3
NUM_PREDICTIONS = 16
LABELS = ["apple", "banana", "carrot"]


class FakeClock:
    """Manually advanced monotonic clock (seconds)."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self._lock = threading.Lock()

    def __call__(self) -> float:
        with self._lock:
            return self.now

    def advance(self, seconds: float) -> None:
        with self._lock:
            self.now += seconds


class FakeSession:
    """
    Stand-in for onnxruntime.InferenceSession.

    Returns `output` (a (1, 4+C, N) array) from every run. `on_run` is called
    inside run(), e.g. to advance a fake clock or block on an event.
    """

    def __init__(self, input_shape, output_shape, output=None, on_run=None, fail_run=False):
        self.input_shape = list(input_shape)
        self.output_shape = list(output_shape)
        self.output = output if output is not None else np.zeros(output_shape, dtype=np.float32)
        self.on_run = on_run
        self.fail_run = fail_run
        self.run_count = 0
        self.last_input = None

    def get_inputs(self):
        return [SimpleNamespace(name="images", shape=self.input_shape)]

    def get_outputs(self):
        return [SimpleNamespace(name="output0", shape=self.output_shape)]

    def run(self, output_names, feeds):
        self.run_count += 1
        self.last_input = np.array(feeds["images"], copy=True)
        if self.on_run is not None:
            self.on_run()
        if self.fail_run:
            raise RuntimeError("kernel crashed")
        return [np.array(self.output, copy=True)]


class FakeSessionFactory:
    """
    Session factory recording every (model_path, spec) call.

    Args:
        output: Output tensor returned by created sessions.
        fail_kinds: Backend kind values ("accelerated", "cpu") that fail to load.
        input_shape / output_shape: Shapes the fake model reports.
        delay_event: If set, session creation waits on it (for single-flight tests).
    """

    def __init__(
        self,
        output=None,
        fail_kinds=(),
        input_shape=(1, INPUT_SIZE, INPUT_SIZE, 3),
        output_shape=(1, 4 + NUM_CLASSES, NUM_PREDICTIONS),
        delay_event=None,
    ):
        self.output = output
        self.fail_kinds = set(fail_kinds)
        self.input_shape = input_shape
        self.output_shape = output_shape
        self.delay_event = delay_event
        self.calls = []
        self.sessions = []
        self.on_run = None
        self.fail_run = False

    def __call__(self, model_path, spec):
        self.calls.append((model_path, spec))
        if self.delay_event is not None:
            self.delay_event.wait(timeout=5)
        if spec.kind.value in self.fail_kinds:
            raise RuntimeError(f"{spec.kind.value} provider not available")
        session = FakeSession(
            self.input_shape,
            self.output_shape,
            output=self.output,
            on_run=lambda: self.on_run() if self.on_run else None,
            fail_run=self.fail_run,
        )
        self.sessions.append(session)
        return session

    @property
    def session(self):
        return self.sessions[-1] if self.sessions else None


def make_output(boxes, num_classes=NUM_CLASSES, num_predictions=NUM_PREDICTIONS, input_size=INPUT_SIZE):
    """
    Build a (1, 4+C, N) output tensor.

    Args:
        boxes: List of (cx, cy, w, h, class_id, score) in model pixels.
    """
    out = np.zeros((1, 4 + num_classes, num_predictions), dtype=np.float32)
    for i, (cx, cy, w, h, class_id, score) in enumerate(boxes):
        out[0, 0:4, i] = np.array([cx, cy, w, h], dtype=np.float32) / input_size
        out[0, 4 + class_id, i] = score
    return out


def make_yuv_frame(width, height, y=128, u=128, v=128, row_padding=0, **kwargs):
    """Build a uniform I420 RawFrame, optionally with padded rows."""
    cw, ch = (width + 1) // 2, (height + 1) // 2
    y_stride = width + row_padding
    c_stride = cw + row_padding
    y_plane = np.full(y_stride * height, 255, dtype=np.uint8).reshape(height, y_stride)
    y_plane[:, :width] = y
    u_plane = np.full(c_stride * ch, 255, dtype=np.uint8).reshape(ch, c_stride)
    u_plane[:, :cw] = u
    v_plane = np.full(c_stride * ch, 255, dtype=np.uint8).reshape(ch, c_stride)
    v_plane[:, :cw] = v
    return RawFrame(
        width=width,
        height=height,
        planes=(
            PlaneData(y_plane.reshape(-1), row_stride=y_stride),
            PlaneData(u_plane.reshape(-1), row_stride=c_stride),
            PlaneData(v_plane.reshape(-1), row_stride=c_stride),
        ),
        **kwargs,
    )


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def model_files(tmp_path):
    """Create a placeholder model file and a label file."""
    model_path = tmp_path / "detector.onnx"
    model_path.write_bytes(b"not-a-real-model")
    labels_path = tmp_path / "labels.txt"
    labels_path.write_text("\n".join(LABELS) + "\n")
    return str(model_path), str(labels_path)


@pytest.fixture
def model_config(model_files):
    model_path, labels_path = model_files
    return ModelConfig(
        path=model_path,
        labels_path=labels_path,
        input_size=INPUT_SIZE,
        num_classes=NUM_CLASSES,
        num_predictions=NUM_PREDICTIONS,
        backends=["accelerated", "cpu"],
    )


@pytest.fixture
def detection_config():
    """Admission guards relaxed so every frame is eligible."""
    return DetectionConfig(frame_skip=1, min_inference_interval_ms=0)


@pytest.fixture
def session_factory():
    return FakeSessionFactory()


@pytest.fixture
def temp_config_dir(tmp_path):
    """Create a temporary config directory with default.yaml."""
    config_dir = tmp_path / "config"
    config_dir.mkdir()

    default_yaml = config_dir / "default.yaml"
    default_yaml.write_text("""
model:
  path: "assets/models/detector.onnx"
  labels_path: "assets/labels/labels.txt"
  input_size: 640
  num_classes: 83
  num_predictions: 8400
  backends: ["accelerated", "cpu"]

detection:
  confidence_threshold: 0.40
  realtime_confidence_threshold: 0.50
  iou_threshold: 0.45
  frame_skip: 4
  min_inference_interval_ms: 100

camera:
  device_id: 0
  resolution: [640, 480]
  fps: 30

log_path: "logs/test.log"
log_level: "INFO"
""")

    return config_dir


@pytest.fixture
def valid_config():
    """Return a valid configuration dictionary."""
    return {
        "model": {
            "path": "assets/models/detector.onnx",
            "labels_path": "assets/labels/labels.txt",
            "input_size": 640,
            "num_classes": 83,
            "num_predictions": 8400,
            "backends": ["accelerated", "cpu"],
            "cpu_threads": 4,
        },
        "detection": {
            "confidence_threshold": 0.40,
            "realtime_confidence_threshold": 0.50,
            "iou_threshold": 0.45,
            "max_detections_before_nms": 200,
            "frame_skip": 4,
            "min_inference_interval_ms": 100,
            "metrics_window": 30,
        },
        "camera": {
            "device_id": 0,
            "resolution": [1280, 720],
            "fps": 30,
            "sensor_orientation": 0,
        },
        "log_path": "logs/test.log",
        "log_level": "INFO",
    }
