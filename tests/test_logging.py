"""
Tests for logging setup.
"""

import logging

import pytest

from ops.logging import setup_logging


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers = handlers
    root.setLevel(level)


def test_creates_log_dir_and_writes(tmp_path, restore_root_logger):
    log_path = tmp_path / "logs" / "detector.log"

    setup_logging(str(log_path), "debug")
    logging.info("Detector ready")
    for handler in logging.getLogger().handlers:
        handler.flush()

    assert logging.getLogger().level == logging.DEBUG
    assert "Detector ready" in log_path.read_text()


def test_quiets_access_log(tmp_path, restore_root_logger):
    setup_logging(str(tmp_path / "detector.log"), "INFO")
    assert logging.getLogger("uvicorn.access").level == logging.WARNING


def test_rejects_unknown_level(tmp_path):
    with pytest.raises(ValueError, match="log_level"):
        setup_logging(str(tmp_path / "detector.log"), "VERBOSE")
