"""
Tests for observation layer.
"""

import time
from typing import Optional

import cv2
import numpy as np
import pytest

from conftest import make_yuv_frame
from models.frame import RawFrame
from observation import create_source_from_config
from observation.base import ObservationSource, ObservationConfig
from observation.opencv_source import OpenCVSource, OpenCVSourceConfig, bgr_to_raw_frame


class MockSource(ObservationSource):
    """Mock observation source for testing."""

    def __init__(self, config: ObservationConfig, count: int = 0):
        super().__init__(config)
        self._count = count
        self._pos = 0

    def open(self) -> None:
        self._is_open = True
        self._pos = 0
        self._frame_index = 0

    def read(self) -> Optional[RawFrame]:
        if not self._is_open or self._pos >= self._count:
            return None

        self._pos += 1
        self._frame_index += 1
        return make_yuv_frame(
            8, 6,
            timestamp=time.time(),
            frame_index=self._frame_index,
            source=self.source_id,
        )

    def close(self) -> None:
        self._is_open = False


class FakeCapture:
    """Stand-in for cv2.VideoCapture yielding a fixed number of BGR frames."""

    def __init__(self, device_id, frames=3, opened=True):
        self.device_id = device_id
        self._frames = frames
        self._opened = opened
        self.released = False
        self.props = {}

    def isOpened(self):
        return self._opened

    def read(self):
        if self._frames <= 0:
            return False, None
        self._frames -= 1
        return True, np.full((6, 8, 3), 90, dtype=np.uint8)

    def set(self, prop, value):
        self.props[prop] = value
        return True

    def get(self, prop):
        return self.props.get(prop, 0)

    def release(self):
        self.released = True


class TestObservationConfig:
    def test_default_config(self):
        config = ObservationConfig()
        assert config.source_id == "default"
        assert config.resolution is None
        assert config.fps is None
        assert config.sensor_orientation == 0
        assert config.is_front_camera is False

    def test_custom_config(self):
        config = ObservationConfig(
            source_id="cam-01",
            resolution=(1920, 1080),
            fps=30,
            sensor_orientation=90,
            metadata={"location": "kitchen"},
        )
        assert config.source_id == "cam-01"
        assert config.resolution == (1920, 1080)
        assert config.sensor_orientation == 90
        assert config.metadata["location"] == "kitchen"


class TestOpenCVSourceConfig:
    def test_from_camera_config(self):
        camera_cfg = {
            "device_id": "videos/pantry.mp4",
            "resolution": [1280, 720],
            "fps": 30,
            "sensor_orientation": 270,
            "is_front_camera": True,
            "loop": True,
        }
        config = OpenCVSourceConfig.from_camera_config(camera_cfg, source_id="pantry-cam")

        assert config.source_id == "pantry-cam"
        assert config.device_id == "videos/pantry.mp4"
        assert config.resolution == (1280, 720)
        assert config.fps == 30
        assert config.sensor_orientation == 270
        assert config.is_front_camera is True
        assert config.loop is True

    def test_defaults_when_keys_missing(self):
        config = OpenCVSourceConfig.from_camera_config({})
        assert config.device_id == 0
        assert config.resolution is None
        assert config.sensor_orientation == 0
        assert config.buffer_size == 1
        assert config.max_retries == 3


class TestBgrToRawFrame:
    def test_plane_sizes(self):
        bgr = np.zeros((480, 640, 3), dtype=np.uint8)
        frame = bgr_to_raw_frame(bgr, sensor_orientation=90, frame_index=7, source="cam")

        assert (frame.width, frame.height) == (640, 480)
        assert frame.has_all_planes
        assert frame.y_plane.size == 640 * 480
        assert frame.u_plane.size == 320 * 240
        assert frame.v_plane.size == 320 * 240
        assert frame.sensor_orientation == 90
        assert frame.frame_index == 7
        assert frame.source == "cam"

    def test_odd_dimensions_are_cropped(self):
        bgr = np.zeros((11, 15, 3), dtype=np.uint8)
        frame = bgr_to_raw_frame(bgr)
        assert (frame.width, frame.height) == (14, 10)

    def test_gray_luma(self):
        bgr = np.full((4, 4, 3), 128, dtype=np.uint8)
        frame = bgr_to_raw_frame(bgr)
        # Neutral grey keeps chroma centred
        assert abs(int(frame.u_plane.data[0]) - 128) <= 1
        assert abs(int(frame.v_plane.data[0]) - 128) <= 1

    def test_too_small(self):
        with pytest.raises(ValueError):
            bgr_to_raw_frame(np.zeros((1, 1, 3), dtype=np.uint8))


class TestMockSource:
    def test_source_lifecycle(self):
        config = ObservationConfig(source_id="test")
        source = MockSource(config, count=3)

        assert not source.is_open
        source.open()
        assert source.is_open
        assert source.frame_index == 0

        frame = source.read()
        assert frame is not None
        assert frame.source == "test"
        assert frame.frame_index == 1
        assert source.frame_index == 1

        source.close()
        assert not source.is_open

    def test_context_manager(self):
        config = ObservationConfig(source_id="ctx-test")

        with MockSource(config, count=2) as source:
            assert source.is_open
            count = sum(1 for _ in source)
            assert count == 2

        assert not source.is_open

    def test_iteration(self):
        config = ObservationConfig(source_id="iter-test")

        with MockSource(config, count=5) as source:
            collected = list(source)

        assert len(collected) == 5
        for i, frame in enumerate(collected):
            assert frame.frame_index == i + 1
            assert frame.source == "iter-test"

    def test_empty_source(self):
        with MockSource(ObservationConfig()) as source:
            assert source.read() is None

    def test_iteration_requires_open(self):
        source = MockSource(ObservationConfig())

        with pytest.raises(RuntimeError, match="must be open"):
            list(source)


class TestOpenCVSource:
    def test_usb_camera_detection(self):
        source = OpenCVSource(OpenCVSourceConfig(device_id=0))
        assert source.is_file is False

    def test_file_detection(self, tmp_path):
        video = tmp_path / "clip.mp4"
        video.write_bytes(b"")
        source = OpenCVSource(OpenCVSourceConfig(device_id=str(video)))
        assert source.is_file is True

    def test_source_id_property(self):
        source = OpenCVSource(OpenCVSourceConfig(source_id="my-camera", device_id=0))
        assert source.source_id == "my-camera"

    def test_reads_raw_frames(self, monkeypatch, tmp_path):
        video = tmp_path / "clip.mp4"
        video.write_bytes(b"")
        monkeypatch.setattr(cv2, "VideoCapture", lambda device: FakeCapture(device, frames=2))

        config = OpenCVSourceConfig(source_id="clip", device_id=str(video), sensor_orientation=180)
        with OpenCVSource(config) as source:
            frames = list(source)

        assert len(frames) == 2
        assert frames[0].sensor_orientation == 180
        assert frames[1].frame_index == 2
        assert (frames[0].width, frames[0].height) == (8, 6)

    def test_open_fails_after_retries(self, monkeypatch):
        monkeypatch.setattr(cv2, "VideoCapture", lambda device: FakeCapture(device, opened=False))
        monkeypatch.setattr(time, "sleep", lambda s: None)

        source = OpenCVSource(OpenCVSourceConfig(device_id=3, max_retries=2))
        with pytest.raises(RuntimeError, match="after 2 attempts"):
            source.open()
        assert not source.is_open

    def test_usb_camera_applies_resolution(self, monkeypatch):
        captures = []

        def make_capture(device):
            cap = FakeCapture(device)
            captures.append(cap)
            return cap

        monkeypatch.setattr(cv2, "VideoCapture", make_capture)
        source = OpenCVSource(OpenCVSourceConfig(device_id=0, resolution=(320, 240), fps=15))
        source.open()

        props = captures[-1].props
        assert props[cv2.CAP_PROP_FRAME_WIDTH] == 320
        assert props[cv2.CAP_PROP_FRAME_HEIGHT] == 240
        assert props[cv2.CAP_PROP_FPS] == 15

        source.close()
        assert captures[-1].released


def test_create_source_from_config():
    source = create_source_from_config({"device_id": 1, "sensor_orientation": 90}, source_id="rear")
    assert isinstance(source, OpenCVSource)
    assert source.source_id == "rear"
    assert source.device_id == 1
