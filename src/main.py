"""
Main application: real-time object detection.

Loads the layered configuration, sets up logging and the detection
controller, then either detects objects in a single image or runs the
camera stream (optionally with the HTTP API alongside).

Usage:
    python src/main.py --config config/config.yaml
    python src/main.py --image photo.jpg
    python src/main.py --serve
    python src/main.py --serve --no-camera

Arguments:
    --config: Path to configuration file
    --image: Detect objects in one image and print them as JSON
    --serve: Start the HTTP API
    --no-camera: With --serve, run the API without the camera stream
"""

import os
import sys
import argparse
import json
import logging
import threading
from typing import Any, Dict, Optional, Tuple

import yaml
import uvicorn

from imaging.debug import ImageDumpSink
from imaging.io import load_image
from models.config import Config
from models.errors import DetectionError
from models.frame import VALID_ORIENTATIONS
from ops.logging import setup_logging, VALID_LOG_LEVELS
from pipeline.controller import DetectionController
from pipeline.engine import create_engine_from_config
from web.app import create_app
from web.state import state as web_state

VALID_BACKENDS = ("accelerated", "cpu")


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Merge override into base in place; nested sections merge key by key."""
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
    return base


def _read_yaml(path: str) -> Dict[str, Any]:
    if not os.path.exists(path):
        return {}
    with open(path, "r") as f:
        return yaml.safe_load(f) or {}


def load_config(config_path: str) -> Dict[str, Any]:
    """
    Merge the config layers found next to `config_path`, later ones winning:
    default.yaml (checked in), config.yaml (local overrides), then
    `config_path` itself when it names some other file.

    Exits the process if a layer cannot be read or parsed.
    """
    config_dir = os.path.dirname(config_path)
    layers = [
        os.path.join(config_dir, "default.yaml"),
        os.path.join(config_dir, "config.yaml"),
    ]
    if os.path.abspath(config_path) not in {os.path.abspath(p) for p in layers}:
        layers.append(config_path)

    merged: Dict[str, Any] = {}
    for path in layers:
        try:
            _deep_merge(merged, _read_yaml(path))
        except (OSError, yaml.YAMLError) as e:
            logging.error(f"Failed to load configuration from {path}: {e}")
            sys.exit(1)
    return merged


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_positive_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def validate_config(config: Dict[str, Any]) -> Tuple[bool, Optional[str]]:
    """
    Validate configuration file structure and values.

    Args:
        config: Configuration dictionary

    Returns:
        Tuple of (is_valid, error_message)
    """
    # Required top-level sections
    required_sections = ['model', 'detection', 'camera', 'log_path', 'log_level']
    for section in required_sections:
        if section not in config:
            return False, f"Missing required configuration section: {section}"

    # Validate model settings
    model = config.get('model') or {}
    if not isinstance(model.get('path'), str) or not model.get('path'):
        return False, "model.path must be a non-empty string"
    if not isinstance(model.get('labels_path'), str) or not model.get('labels_path'):
        return False, "model.labels_path must be a non-empty string"
    for key in ('input_size', 'num_classes', 'num_predictions', 'cpu_threads'):
        if key in model and not _is_positive_int(model[key]):
            return False, f"model.{key} must be a positive integer"

    backends = model.get('backends', list(VALID_BACKENDS))
    if not isinstance(backends, list) or not backends:
        return False, "model.backends must be a non-empty list"
    for name in backends:
        if name not in VALID_BACKENDS:
            return False, f"model.backends entries must be one of: {', '.join(VALID_BACKENDS)}"

    # Validate detection settings
    detection = config.get('detection') or {}
    for key in ('confidence_threshold', 'realtime_confidence_threshold', 'iou_threshold'):
        if key in detection:
            value = detection[key]
            if not _is_number(value) or not (0 <= value <= 1):
                return False, f"detection.{key} must be between 0 and 1"
    for key in ('frame_skip', 'max_detections_before_nms', 'metrics_window'):
        if key in detection and not _is_positive_int(detection[key]):
            return False, f"detection.{key} must be a positive integer"
    if 'min_inference_interval_ms' in detection:
        interval = detection['min_inference_interval_ms']
        if not _is_number(interval) or interval < 0:
            return False, "detection.min_inference_interval_ms must be a non-negative number"

    # Validate camera settings
    camera = config.get('camera') or {}
    if 'device_id' not in camera:
        return False, "Missing camera.device_id"
    if not isinstance(camera['device_id'], (int, str)):
        return False, "camera.device_id must be an integer (index) or string (file path)"
    if isinstance(camera['device_id'], int) and camera['device_id'] < 0:
        return False, "camera.device_id integer must be non-negative"

    if 'resolution' in camera:
        if not isinstance(camera['resolution'], list) or len(camera['resolution']) != 2:
            return False, "camera.resolution must be a list of [width, height]"
        if not all(_is_positive_int(x) for x in camera['resolution']):
            return False, "camera.resolution values must be positive integers"

    if 'fps' in camera and not _is_positive_int(camera['fps']):
        return False, "camera.fps must be a positive integer"

    if camera.get('sensor_orientation', 0) not in VALID_ORIENTATIONS:
        return False, "camera.sensor_orientation must be one of: 0, 90, 180, 270"

    # Validate log settings
    if config['log_level'] not in VALID_LOG_LEVELS:
        return False, f"log_level must be one of: {', '.join(VALID_LOG_LEVELS)}"

    return True, None


def build_controller(cfg: Config) -> DetectionController:
    """Create the detection controller (the model loads lazily)."""
    debug_sink = None
    if cfg.debug.enabled:
        debug_sink = ImageDumpSink(cfg.debug.output_dir, cfg.debug.max_images_per_kind)
        logging.info(f"Debug image dumping enabled: {cfg.debug.output_dir}")

    return DetectionController(cfg.model, cfg.detection, debug_sink=debug_sink)


def run_image(controller: DetectionController, image_path: str) -> int:
    """Detect objects in one image and print them as JSON. Returns an exit code."""
    try:
        rgb = load_image(image_path)
        detections = controller.detect_image(rgb)
    except DetectionError as e:
        logging.error(f"Detection failed for {image_path}: {e}")
        return 1

    print(json.dumps(
        {
            "image": image_path,
            "width": int(rgb.shape[1]),
            "height": int(rgb.shape[0]),
            "detections": [d.to_dict() for d in detections],
        },
        indent=2,
    ))
    return 0


def start_web_thread(cfg: Config) -> threading.Thread:
    def run_web_app():
        uvicorn.run(
            create_app(),
            host=cfg.web.host,
            port=cfg.web.port,
            log_level="info",
        )

    web_thread = threading.Thread(target=run_web_app, daemon=True)
    web_thread.start()
    logging.info(f"Web interface started on port {cfg.web.port}")
    return web_thread


def main():
    """Main application function."""
    parser = argparse.ArgumentParser(description='Real-time object detection')
    parser.add_argument('--config', type=str, default='config/config.yaml',
                        help='Path to configuration file')
    parser.add_argument('--image', type=str, default=None,
                        help='Detect objects in a single image and exit')
    parser.add_argument('--serve', action='store_true',
                        help='Start the HTTP API')
    parser.add_argument('--no-camera', action='store_true',
                        help='With --serve, do not start the camera stream')
    args = parser.parse_args()

    # Load configuration
    config = load_config(args.config)

    # Validate configuration
    is_valid, error_msg = validate_config(config)
    if not is_valid:
        logging.error(f"Configuration validation failed: {error_msg}")
        sys.exit(1)

    # Setup logging
    setup_logging(config['log_path'], config['log_level'])

    cfg = Config.from_dict(config)
    controller = build_controller(cfg)

    try:
        if args.image:
            sys.exit(run_image(controller, args.image))

        web_state.set_controller(controller)

        if args.serve and args.no_camera:
            logging.info("Starting HTTP API without camera stream")
            uvicorn.run(create_app(), host=cfg.web.host, port=cfg.web.port, log_level="info")
            return

        if args.serve:
            start_web_thread(cfg)

        def publish(detections, metrics):
            web_state.set_detections(detections)

        controller.register_callbacks(on_detections=publish)

        logging.info("Starting real-time detection")
        engine = create_engine_from_config(config, controller)
        engine.run()
    except DetectionError as e:
        logging.error(f"Fatal detection error: {e}")
        sys.exit(1)
    finally:
        controller.dispose()


if __name__ == "__main__":
    main()
