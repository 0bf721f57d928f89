"""
Smoke tests for configuration loading and validation.
"""

import pytest

from main import load_config, validate_config
from models.config import Config, DetectionConfig, ModelConfig


class TestValidateConfig:
    """Tests for validate_config function."""

    def test_valid_config_passes(self, valid_config):
        """A complete valid config passes validation."""
        is_valid, error = validate_config(valid_config)

        assert is_valid is True
        assert error is None

    @pytest.mark.parametrize("section", ["model", "detection", "camera", "log_path", "log_level"])
    def test_missing_required_section(self, valid_config, section):
        del valid_config[section]

        is_valid, error = validate_config(valid_config)

        assert is_valid is False
        assert section in error

    def test_missing_model_path(self, valid_config):
        valid_config["model"]["path"] = ""

        is_valid, error = validate_config(valid_config)

        assert is_valid is False
        assert "model.path" in error

    def test_non_positive_input_size(self, valid_config):
        valid_config["model"]["input_size"] = 0

        is_valid, error = validate_config(valid_config)

        assert is_valid is False
        assert "input_size" in error

    def test_unknown_backend(self, valid_config):
        valid_config["model"]["backends"] = ["accelerated", "tpu"]

        is_valid, error = validate_config(valid_config)

        assert is_valid is False
        assert "backends" in error

    def test_empty_backend_list(self, valid_config):
        valid_config["model"]["backends"] = []

        is_valid, error = validate_config(valid_config)

        assert is_valid is False

    def test_confidence_out_of_range(self, valid_config):
        valid_config["detection"]["confidence_threshold"] = 1.5

        is_valid, error = validate_config(valid_config)

        assert is_valid is False
        assert "confidence_threshold" in error

    def test_iou_out_of_range(self, valid_config):
        valid_config["detection"]["iou_threshold"] = -0.1

        is_valid, error = validate_config(valid_config)

        assert is_valid is False
        assert "iou_threshold" in error

    def test_frame_skip_must_be_positive(self, valid_config):
        valid_config["detection"]["frame_skip"] = 0

        is_valid, error = validate_config(valid_config)

        assert is_valid is False
        assert "frame_skip" in error

    def test_negative_interval(self, valid_config):
        valid_config["detection"]["min_inference_interval_ms"] = -1

        is_valid, error = validate_config(valid_config)

        assert is_valid is False
        assert "min_inference_interval_ms" in error

    def test_zero_interval_is_valid(self, valid_config):
        valid_config["detection"]["min_inference_interval_ms"] = 0

        is_valid, _ = validate_config(valid_config)

        assert is_valid is True

    def test_invalid_device_id_type(self, valid_config):
        valid_config["camera"]["device_id"] = [0]

        is_valid, error = validate_config(valid_config)

        assert is_valid is False
        assert "device_id" in error

    def test_negative_device_id(self, valid_config):
        valid_config["camera"]["device_id"] = -1

        is_valid, error = validate_config(valid_config)

        assert is_valid is False

    def test_string_device_id_valid(self, valid_config):
        valid_config["camera"]["device_id"] = "videos/kitchen.mp4"

        is_valid, _ = validate_config(valid_config)

        assert is_valid is True

    def test_invalid_resolution_length(self, valid_config):
        valid_config["camera"]["resolution"] = [1280]

        is_valid, error = validate_config(valid_config)

        assert is_valid is False
        assert "resolution" in error

    def test_invalid_sensor_orientation(self, valid_config):
        valid_config["camera"]["sensor_orientation"] = 45

        is_valid, error = validate_config(valid_config)

        assert is_valid is False
        assert "sensor_orientation" in error

    def test_invalid_log_level(self, valid_config):
        valid_config["log_level"] = "VERBOSE"

        is_valid, error = validate_config(valid_config)

        assert is_valid is False
        assert "log_level" in error


class TestLoadConfig:
    """Tests for load_config function."""

    def test_loads_default_yaml(self, temp_config_dir):
        """Config loads from default.yaml when only it exists."""
        config_path = str(temp_config_dir / "config.yaml")

        config = load_config(config_path)

        assert config["model"]["input_size"] == 640
        assert config["detection"]["frame_skip"] == 4
        assert config["camera"]["resolution"] == [640, 480]

    def test_local_overrides_merge(self, temp_config_dir):
        """Local config.yaml overrides default.yaml."""
        config_yaml = temp_config_dir / "config.yaml"
        config_yaml.write_text("""
detection:
  frame_skip: 2
  realtime_confidence_threshold: 0.6
""")

        config = load_config(str(config_yaml))

        assert config["detection"]["frame_skip"] == 2
        assert config["detection"]["realtime_confidence_threshold"] == 0.6
        # Original values preserved
        assert config["detection"]["iou_threshold"] == 0.45
        assert config["model"]["num_classes"] == 83

    def test_explicit_config_applied_last(self, temp_config_dir):
        (temp_config_dir / "config.yaml").write_text("""
detection:
  frame_skip: 2
""")
        explicit = temp_config_dir / "bench.yaml"
        explicit.write_text("""
detection:
  frame_skip: 8
model:
  backends: ["cpu"]
""")

        config = load_config(str(explicit))

        assert config["detection"]["frame_skip"] == 8
        assert config["model"]["backends"] == ["cpu"]
        assert config["model"]["input_size"] == 640

    def test_malformed_yaml_exits(self, temp_config_dir):
        (temp_config_dir / "config.yaml").write_text("detection: [unclosed\n")

        with pytest.raises(SystemExit):
            load_config(str(temp_config_dir / "config.yaml"))

    def test_loaded_defaults_validate(self, temp_config_dir):
        config = load_config(str(temp_config_dir / "config.yaml"))

        is_valid, error = validate_config(config)

        assert is_valid is True, error


class TestTypedConfig:
    def test_defaults(self):
        cfg = Config()
        assert cfg.model.input_size == 640
        assert cfg.model.num_classes == 83
        assert cfg.model.num_predictions == 8400
        assert cfg.detection.confidence_threshold == 0.40
        assert cfg.detection.realtime_confidence_threshold == 0.50
        assert cfg.detection.iou_threshold == 0.45
        assert cfg.detection.frame_skip == 4
        assert cfg.detection.min_inference_interval_ms == 100
        assert cfg.detection.max_detections_before_nms == 200
        assert cfg.detection.metrics_window == 30

    def test_from_dict(self, valid_config):
        cfg = Config.from_dict(valid_config)
        assert isinstance(cfg.model, ModelConfig)
        assert isinstance(cfg.detection, DetectionConfig)
        assert cfg.model.backends == ["accelerated", "cpu"]
        assert cfg.camera.resolution == [1280, 720]
        assert cfg.log_level == "INFO"

    def test_missing_sections_use_defaults(self):
        cfg = Config.from_dict({"log_level": "DEBUG"})
        assert cfg.detection.frame_skip == 4
        assert cfg.debug.enabled is False
        assert cfg.web.port == 5000

    def test_to_dict_round_trip(self, valid_config):
        cfg = Config.from_dict(valid_config)
        again = Config.from_dict(cfg.to_dict())
        assert again == cfg
